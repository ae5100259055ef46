"""
Specifier Loader Adapter

Wraps the real loader. Every request is first checked against the caller's
specifier mappings and the registered specifier mappers; only unmapped
specifiers reach the wrapped loader. Mappings that were hit are recorded so
the graph can later check that every declared mapping was used.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from codegraph_modules.loader.ports import Loader, SpecifierMapper
from codegraph_modules.models import (
    CacheSetting,
    ExternalResponse,
    LoadResponse,
    MappedSpecifier,
    ModuleMapping,
    PackageMapping,
    RedirectResponse,
)
from codegraph_modules.observability import get_logger
from codegraph_modules.specifier import ModuleSpecifier

logger = get_logger(__name__)


@dataclass
class LoaderSpecifiers:
    """Mappings the loader observed during one build."""

    mapped_packages: dict[ModuleSpecifier, PackageMapping] = field(default_factory=dict)
    mapped_modules: dict[ModuleSpecifier, ModuleSpecifier] = field(default_factory=dict)


class SourceLoader:
    """Loader adapter applying specifier mappings before delegating."""

    def __init__(
        self,
        loader: Loader,
        specifier_mappers: Sequence[SpecifierMapper],
        specifier_mappings: Mapping[ModuleSpecifier, MappedSpecifier],
    ):
        self._loader = loader
        self._specifier_mappers = list(specifier_mappers)
        self._specifier_mappings = specifier_mappings
        self._specifiers = LoaderSpecifiers()

    async def load(
        self,
        specifier: ModuleSpecifier,
        cache_setting: CacheSetting = CacheSetting.USE,
        checksum: str | None = None,
    ) -> LoadResponse | None:
        mapping = self._specifier_mappings.get(specifier)
        if isinstance(mapping, PackageMapping):
            self._add_package_mapping(specifier, mapping)
            return ExternalResponse(specifier=specifier)
        if isinstance(mapping, ModuleMapping):
            self._specifiers.mapped_modules[specifier] = mapping.target
            logger.debug("module_mapping_used", specifier=specifier, target=mapping.target)
            return RedirectResponse(specifier=mapping.target)

        for mapper in self._specifier_mappers:
            package = mapper.map(specifier)
            if package is not None:
                self._add_package_mapping(specifier, package)
                return ExternalResponse(specifier=specifier)

        return await self._loader.load(specifier, cache_setting, checksum)

    def _add_package_mapping(self, specifier: ModuleSpecifier, mapping: PackageMapping) -> None:
        self._specifiers.mapped_packages[specifier] = mapping
        logger.debug("package_mapping_used", specifier=specifier, package=mapping.name, version=mapping.version)

    def into_specifiers(self) -> LoaderSpecifiers:
        return self._specifiers
