"""
Module Graph

Builds the resolved dependency graph of a set of entry points and exposes
read-only queries over it.

Example:
    options = ModuleGraphOptions(
        entry_points=["file:///project/mod.ts"],
        specifier_mappings={"https://deno.land/x/foo/mod.ts": PackageMapping("foo", "1.0.0")},
    )
    graph, specifiers = await ModuleGraph.build_with_specifiers(options)
    module = graph.get(graph.resolve("file:///project/mod.ts"))
"""

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field

from codegraph_modules.config import ModuleGraphSettings, get_settings
from codegraph_modules.errors import (
    ModuleError,
    ModuleGraphBug,
    ModuleGraphBuildError,
    UnusedModuleMappingError,
    UnusedPackageMappingError,
)
from codegraph_modules.graph.builder import GraphBuilder
from codegraph_modules.graph.specifiers import Specifiers, get_specifiers
from codegraph_modules.import_map import ImportMapResolver
from codegraph_modules.loader.default_loader import DefaultLoader
from codegraph_modules.loader.ports import Loader, SpecifierMapper
from codegraph_modules.loader.source_loader import SourceLoader
from codegraph_modules.loader.specifier_mappers import default_specifier_mappers
from codegraph_modules.models import MappedSpecifier, Module, ModuleMapping, PackageMapping
from codegraph_modules.observability import get_logger
from codegraph_modules.parsing.analyzer import CapturingModuleAnalyzer
from codegraph_modules.parsing.parsed_source import ParsedSource
from codegraph_modules.specifier import (
    ModuleSpecifier,
    SpecifierError,
    is_builtin_specifier,
    join_specifier,
    parse_specifier,
)

logger = get_logger(__name__)


@dataclass
class ModuleGraphOptions:
    """
    Build inputs.

    Attributes:
        entry_points: Main entry points
        test_entry_points: Entry points traversed alongside but reported separately
        loader: Content loader (a DefaultLoader owned by the build when omitted)
        specifier_mappings: Specifier → package or module substitute
        import_map: Import map location
        specifier_mappers: Mappers recognizing package specifiers (built-in CDN mappers when omitted)
        settings: Build settings (environment settings when omitted)
    """

    entry_points: list[ModuleSpecifier]
    test_entry_points: list[ModuleSpecifier] = field(default_factory=list)
    loader: Loader | None = None
    specifier_mappings: Mapping[ModuleSpecifier, MappedSpecifier] = field(default_factory=dict)
    import_map: ModuleSpecifier | None = None
    specifier_mappers: Sequence[SpecifierMapper] | None = None
    settings: ModuleGraphSettings | None = None


def format_module_error(error: ModuleError) -> str:
    """`message`, `\\n    at range` when the referrer is known, ` (specifier)` when not already named."""
    text = error.message
    if error.maybe_referrer is not None:
        text = f"{text}\n    at {error.maybe_referrer}"
    if error.specifier not in text:
        text = f"{text} ({error.specifier})"
    return text


def aggregate_module_errors(errors: list[ModuleError]) -> ModuleGraphBuildError | None:
    """One build error listing every distinct formatted error, sorted by specifier."""
    entries: dict[str, ModuleError] = {}
    for error in sorted(errors, key=lambda error: (error.specifier, format_module_error(error))):
        entries.setdefault(format_module_error(error), error)
    if not entries:
        return None
    return ModuleGraphBuildError("\n\n".join(entries), list(entries.values()))


class ModuleGraph:
    """
    Resolved module graph.

    Read-only after `build_with_specifiers`; modules are looked up by
    canonical specifier (see `resolve`).
    """

    def __init__(
        self,
        modules: dict[ModuleSpecifier, Module],
        redirects: dict[ModuleSpecifier, ModuleSpecifier],
        analyzer: CapturingModuleAnalyzer,
    ):
        self._modules = modules
        self._redirects = dict(sorted(redirects.items()))
        self._analyzer = analyzer

    @classmethod
    async def build_with_specifiers(cls, options: ModuleGraphOptions) -> tuple["ModuleGraph", Specifiers]:
        """
        Build the graph of the entry points and partition its specifiers.

        Raises:
            ImportMapLoadError: If the import map cannot be loaded
            ModuleGraphBuildError: If any module failed to resolve, load or parse
            UnusedModuleMappingError: If a module mapping was never reached
            UnusedPackageMappingError: If a package mapping was never reached
        """
        settings = options.settings or get_settings()
        owned_loader = options.loader is None
        loader = options.loader if options.loader is not None else DefaultLoader(settings)
        try:
            return await cls._build(options, loader, settings)
        finally:
            if owned_loader:
                await loader.aclose()

    @classmethod
    async def _build(
        cls,
        options: ModuleGraphOptions,
        loader: Loader,
        settings: ModuleGraphSettings,
    ) -> tuple["ModuleGraph", Specifiers]:
        entry_points = [parse_specifier(specifier) for specifier in options.entry_points]
        test_entry_points = [parse_specifier(specifier) for specifier in options.test_entry_points]
        specifier_mappings = {
            parse_specifier(specifier): mapping for specifier, mapping in options.specifier_mappings.items()
        }

        resolver = None
        if options.import_map is not None:
            resolver = await ImportMapResolver.load(parse_specifier(options.import_map), loader, settings)

        specifier_mappers = options.specifier_mappers
        if specifier_mappers is None:
            specifier_mappers = default_specifier_mappers()
        source_loader = SourceLoader(loader, specifier_mappers, specifier_mappings)
        analyzer = CapturingModuleAnalyzer()
        builder = GraphBuilder(source_loader, analyzer, settings, resolver)
        await builder.build([*entry_points, *test_entry_points])

        build_error = aggregate_module_errors(builder.errors())
        if build_error is not None:
            logger.warning("graph_build_failed", errors=len(build_error.errors))
            raise build_error

        graph = cls(builder.modules, builder.redirects, analyzer)
        loader_specifiers = source_loader.into_specifiers()

        unused_modules = [
            specifier
            for specifier, mapping in specifier_mappings.items()
            if isinstance(mapping, ModuleMapping) and specifier not in loader_specifiers.mapped_modules
        ]
        if unused_modules:
            raise UnusedModuleMappingError(unused_modules)

        specifiers = get_specifiers(entry_points, loader_specifiers, graph, graph.all_modules())

        unused_packages = [
            specifier
            for specifier, mapping in specifier_mappings.items()
            if isinstance(mapping, PackageMapping) and not specifiers.has_mapped(specifier)
        ]
        if unused_packages:
            raise UnusedPackageMappingError(unused_packages)

        logger.info(
            "graph_built",
            modules=len(graph._modules),
            redirects=len(graph._redirects),
            local=len(specifiers.local),
            remote=len(specifiers.remote),
            mapped_packages=len(specifiers.main.mapped) + len(specifiers.test.mapped),
            mapped_modules=len(specifiers.mapped_modules),
        )
        return graph, specifiers

    # ============================================================
    # Queries
    # ============================================================

    def redirects(self) -> dict[ModuleSpecifier, ModuleSpecifier]:
        """Recorded redirect hops, sorted by source specifier."""
        return self._redirects

    def resolve(self, specifier: ModuleSpecifier) -> ModuleSpecifier:
        """Terminal canonical specifier, following every redirect hop."""
        seen = {specifier}
        current = specifier
        while current in self._redirects:
            current = self._redirects[current]
            if current in seen:
                break
            seen.add(current)
        return current

    def get(self, specifier: ModuleSpecifier) -> Module:
        module = self._modules.get(specifier)
        if module is None:
            raise ModuleGraphBug(f"Did not find specifier: {specifier}")
        return module

    def get_parsed_source(self, specifier: ModuleSpecifier) -> ParsedSource:
        specifier = self.resolve(specifier)
        parsed = self._analyzer.get_parsed_source(specifier)
        if parsed is None:
            raise ModuleGraphBug(f"Did not find parsed source for specifier: {specifier}")
        return parsed

    def resolve_dependency(self, value: str, referrer: ModuleSpecifier) -> ModuleSpecifier | None:
        """
        Specifier a dependency of referrer points to.

        Uses the dependency recorded during the build; otherwise absolute
        `http(s)://` / `file://` text is parsed and `./` / `../` text is joined
        to the referrer. Builtin (`node:`) results are never returned.
        """
        resolved = None
        module = self._modules.get(self.resolve(referrer))
        if module is not None:
            dependency = module.dependencies.get(value)
            if dependency is not None and dependency.maybe_specifier is not None:
                resolved = self.resolve(dependency.maybe_specifier)

        if resolved is None:
            value_lower = value.lower()
            try:
                if value_lower.startswith(("https://", "http://", "file://")):
                    resolved = parse_specifier(value)
                elif value_lower.startswith(("./", "../")):
                    resolved = join_specifier(referrer, value)
            except SpecifierError:
                resolved = None

        if resolved is not None and is_builtin_specifier(resolved):
            return None
        return resolved

    def all_modules(self) -> list[Module]:
        """Modules sorted by specifier."""
        return [self._modules[specifier] for specifier in sorted(self._modules)]

    def walk(self, roots: Sequence[ModuleSpecifier]) -> Iterator[ModuleSpecifier]:
        """Canonical specifiers of the modules reachable from roots, depth-first."""
        seen: set[ModuleSpecifier] = set()
        stack = [self.resolve(root) for root in reversed(roots)]
        while stack:
            specifier = stack.pop()
            if specifier in seen:
                continue
            seen.add(specifier)
            module = self._modules.get(specifier)
            if module is None:
                continue
            yield specifier
            for dependency in reversed(list(module.dependencies.values())):
                target = dependency.maybe_specifier
                if target is not None and not is_builtin_specifier(target):
                    stack.append(self.resolve(target))

    def __contains__(self, specifier: ModuleSpecifier) -> bool:
        return self.resolve(specifier) in self._modules

    def __len__(self) -> int:
        return len(self._modules)
