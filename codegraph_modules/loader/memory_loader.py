"""
In-memory Loader

Loader implementation backed by a dict. Used by tests and by embedders that
already hold module sources.
"""

from dataclasses import dataclass

from codegraph_modules.errors import ModuleFetchError
from codegraph_modules.models import CacheSetting, LoadResponse, ModuleResponse, RedirectResponse
from codegraph_modules.specifier import ModuleSpecifier, parse_specifier


@dataclass(frozen=True)
class LoadRequest:
    specifier: ModuleSpecifier
    cache_setting: CacheSetting
    checksum: str | None


class InMemoryLoader:
    """
    Loader Fake.

    Sources are registered by specifier; redirects and failures can be
    registered too. Every request is recorded in `requests`.
    """

    def __init__(self):
        self._sources: dict[ModuleSpecifier, ModuleResponse] = {}
        self._redirects: dict[ModuleSpecifier, ModuleSpecifier] = {}
        self._failures: dict[ModuleSpecifier, str] = {}
        self.requests: list[LoadRequest] = []

    def add(
        self,
        specifier: str,
        text: str | bytes,
        headers: dict[str, str] | None = None,
    ) -> "InMemoryLoader":
        specifier = parse_specifier(specifier)
        content = text.encode("utf-8") if isinstance(text, str) else text
        self._sources[specifier] = ModuleResponse(specifier=specifier, content=content, headers=headers)
        return self

    def add_redirect(self, source: str, target: str) -> "InMemoryLoader":
        self._redirects[parse_specifier(source)] = parse_specifier(target)
        return self

    def add_failure(self, specifier: str, message: str) -> "InMemoryLoader":
        self._failures[parse_specifier(specifier)] = message
        return self

    def requested(self, specifier: str) -> int:
        """Number of times a specifier was requested"""
        specifier = parse_specifier(specifier)
        return sum(1 for request in self.requests if request.specifier == specifier)

    async def load(
        self,
        specifier: ModuleSpecifier,
        cache_setting: CacheSetting = CacheSetting.USE,
        checksum: str | None = None,
    ) -> LoadResponse | None:
        self.requests.append(LoadRequest(specifier, cache_setting, checksum))
        if specifier in self._failures:
            raise ModuleFetchError(self._failures[specifier], specifier=specifier)
        if specifier in self._redirects:
            return RedirectResponse(specifier=self._redirects[specifier])
        return self._sources.get(specifier)
