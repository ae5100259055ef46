"""
Default Loader

Fetches `file:`, `http(s):` and `data:` specifiers.

HTTP redirects are not followed by the client: a 3xx response is returned
as a RedirectResponse so that the graph records every hop.
"""

import asyncio
import base64
import hashlib
from pathlib import Path
from urllib.parse import unquote, unquote_to_bytes, urlsplit
from urllib.request import url2pathname

import httpx

from codegraph_modules.config import ModuleGraphSettings, get_settings
from codegraph_modules.errors import ModuleFetchError
from codegraph_modules.models import CacheSetting, LoadResponse, ModuleResponse, RedirectResponse
from codegraph_modules.observability import get_logger
from codegraph_modules.specifier import ModuleSpecifier, join_specifier, specifier_scheme

logger = get_logger(__name__)


def specifier_to_file_path(specifier: ModuleSpecifier) -> Path:
    """Convert a `file:` specifier to a local path."""
    parts = urlsplit(specifier)
    if parts.netloc and parts.netloc != "localhost":
        return Path(url2pathname(f"//{parts.netloc}{unquote(parts.path)}"))
    return Path(url2pathname(unquote(parts.path)))


class DefaultLoader:
    """
    file/http(s)/data loader.

    Attributes:
        settings: Module graph settings (timeout, user agent)
        client: httpx.AsyncClient used for remote modules
    """

    def __init__(self, settings: ModuleGraphSettings | None = None, client: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        self.client = client or httpx.AsyncClient(
            timeout=self.settings.http_timeout,
            follow_redirects=False,
            headers={"User-Agent": self.settings.user_agent},
        )
        self._cache: dict[ModuleSpecifier, LoadResponse | None] = {}

    async def load(
        self,
        specifier: ModuleSpecifier,
        cache_setting: CacheSetting = CacheSetting.USE,
        checksum: str | None = None,
    ) -> LoadResponse | None:
        if cache_setting != CacheSetting.RELOAD and specifier in self._cache:
            response = self._cache[specifier]
        elif cache_setting == CacheSetting.ONLY:
            return None
        else:
            response = await self._fetch(specifier)
            self._cache[specifier] = response

        if checksum is not None and isinstance(response, ModuleResponse):
            actual = hashlib.sha256(response.content).hexdigest()
            if actual != checksum.lower():
                raise ModuleFetchError(
                    f"Integrity check failed for {specifier}\n\nActual: {actual}\nExpected: {checksum}",
                    specifier=specifier,
                )
        return response

    async def _fetch(self, specifier: ModuleSpecifier) -> LoadResponse | None:
        scheme = specifier_scheme(specifier)
        if scheme == "file":
            return await self._load_file(specifier)
        if scheme in ("http", "https"):
            return await self._load_remote(specifier)
        if scheme == "data":
            return self._load_data_url(specifier)
        raise ModuleFetchError(f"Unsupported scheme \"{scheme}\" for module \"{specifier}\".", specifier=specifier)

    async def _load_file(self, specifier: ModuleSpecifier) -> LoadResponse | None:
        path = specifier_to_file_path(specifier)
        try:
            content = await asyncio.to_thread(path.read_bytes)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None
        except OSError as e:
            raise ModuleFetchError(f"Unable to read {path}: {e}", specifier=specifier) from e
        logger.debug("file_loaded", specifier=specifier, size=len(content))
        return ModuleResponse(specifier=specifier, content=content)

    async def _load_remote(self, specifier: ModuleSpecifier) -> LoadResponse | None:
        try:
            response = await self.client.get(specifier)
        except httpx.HTTPError as e:
            logger.warning("remote_load_failed", specifier=specifier, error=str(e))
            raise ModuleFetchError(f"Import '{specifier}' failed: {e}", specifier=specifier) from e

        if response.is_redirect:
            location = response.headers.get("location")
            if not location:
                raise ModuleFetchError(
                    f"Redirect from {specifier} did not provide a location.",
                    specifier=specifier,
                )
            target = join_specifier(specifier, location)
            logger.debug("remote_redirect", specifier=specifier, target=target)
            return RedirectResponse(specifier=target)
        if response.status_code == 404:
            return None
        if response.is_error:
            raise ModuleFetchError(
                f"Import '{specifier}' failed: {response.status_code} {response.reason_phrase}",
                specifier=specifier,
            )

        logger.debug("remote_loaded", specifier=specifier, status=response.status_code)
        return ModuleResponse(
            specifier=specifier,
            content=response.content,
            headers=dict(response.headers),
        )

    @staticmethod
    def _load_data_url(specifier: ModuleSpecifier) -> LoadResponse:
        header, sep, data = specifier[len("data:") :].partition(",")
        if not sep:
            raise ModuleFetchError(f"Invalid data URL: {specifier}", specifier=specifier)
        mime = header.partition(";")[0]
        if header.endswith(";base64"):
            try:
                content = base64.b64decode(unquote(data), validate=False)
            except ValueError as e:
                raise ModuleFetchError(f"Invalid base64 data URL: {specifier}", specifier=specifier) from e
        else:
            content = unquote_to_bytes(data)
        return ModuleResponse(
            specifier=specifier,
            content=content,
            headers={"content-type": mime or "text/plain"},
        )

    async def aclose(self) -> None:
        await self.client.aclose()
