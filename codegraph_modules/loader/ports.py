"""
Loader Protocols - Interface Definitions

Purpose: Define the fetch and specifier-mapping contracts the graph builder
depends on, without implementation.
"""

from typing import Protocol

from codegraph_modules.models import CacheSetting, LoadResponse, PackageMapping
from codegraph_modules.specifier import ModuleSpecifier


class Loader(Protocol):
    """
    Content-fetching collaborator.

    Implementations:
    - codegraph_modules.loader.default_loader.DefaultLoader
    - codegraph_modules.loader.memory_loader.InMemoryLoader
    - codegraph_modules.loader.source_loader.SourceLoader (wraps another loader)
    """

    async def load(
        self,
        specifier: ModuleSpecifier,
        cache_setting: CacheSetting = CacheSetting.USE,
        checksum: str | None = None,
    ) -> LoadResponse | None:
        """Load a specifier; None means the module does not exist"""
        ...


class SpecifierMapper(Protocol):
    """
    Recognizes specifiers that should be provided by a package instead of fetched.

    Implementations:
    - codegraph_modules.loader.specifier_mappers
    """

    def map(self, specifier: ModuleSpecifier) -> PackageMapping | None:
        """Package for the specifier, or None when not handled"""
        ...
