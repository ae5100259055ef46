"""
Module graph traversal

Drives loading from the entry points. Loader calls run as asyncio tasks
bounded by a semaphore; every result is merged by the driving coroutine, so
the module table, redirect table and analyzer cache are only ever mutated
from one place.

Per-module problems are recorded and traversal continues, so a single build
reports every independent problem.
"""

import asyncio
from dataclasses import dataclass

from codegraph_modules.config import ModuleGraphSettings
from codegraph_modules.errors import (
    ImportMapError,
    ModuleError,
    ModuleFetchError,
    ModuleMissingError,
    ModuleResolutionError,
    RedirectCycleError,
    TooManyRedirectsError,
)
from codegraph_modules.import_map import ImportMapResolver
from codegraph_modules.loader.source_loader import SourceLoader
from codegraph_modules.media_type import MediaType
from codegraph_modules.models import (
    CacheSetting,
    Dependency,
    DependencyDescriptor,
    ExternalModule,
    ExternalResponse,
    JsModule,
    JsonModule,
    LoadResponse,
    Module,
    ModuleResponse,
    Range,
    RedirectResponse,
)
from codegraph_modules.observability import get_logger
from codegraph_modules.parsing.analyzer import CapturingModuleAnalyzer
from codegraph_modules.specifier import (
    ModuleSpecifier,
    SpecifierError,
    has_scheme,
    is_builtin_specifier,
    is_relative_specifier,
    join_specifier,
    parse_specifier,
)

logger = get_logger(__name__)


@dataclass
class _LoadResult:
    """Outcome of one loader call."""

    specifier: ModuleSpecifier
    hops: int
    response: LoadResponse | None = None
    error: ModuleError | None = None


def resolve_default(specifier: str, referrer: ModuleSpecifier) -> ModuleSpecifier:
    """
    Resolution without an import map: absolute URLs and `/`, `./`, `../` text.

    Raises:
        SpecifierError: If the text is bare or not a valid URL
    """
    if has_scheme(specifier):
        return parse_specifier(specifier)
    if is_relative_specifier(specifier):
        return join_specifier(referrer, specifier)
    raise SpecifierError(f"Relative import path \"{specifier}\" not prefixed with / or ./ or ../")


class GraphBuilder:
    """
    One traversal over a SourceLoader.

    Attributes:
        modules: Canonical specifier → module
        redirects: Requested specifier → specifier it redirected to (one hop)
        module_errors: Specifier → error that prevented the module from loading
        resolution_errors: Dependency resolution failures, in discovery order
    """

    def __init__(
        self,
        loader: SourceLoader,
        analyzer: CapturingModuleAnalyzer,
        settings: ModuleGraphSettings,
        resolver: ImportMapResolver | None = None,
    ):
        self._loader = loader
        self._analyzer = analyzer
        self._settings = settings
        self._resolver = resolver
        self._semaphore = asyncio.Semaphore(settings.max_concurrent_loads)
        self._pending: set[asyncio.Task] = set()
        self._requested: set[ModuleSpecifier] = set()
        self._referrers: dict[ModuleSpecifier, list[Range]] = {}

        self.modules: dict[ModuleSpecifier, Module] = {}
        self.redirects: dict[ModuleSpecifier, ModuleSpecifier] = {}
        self.module_errors: dict[ModuleSpecifier, ModuleError] = {}
        self.resolution_errors: list[ModuleResolutionError] = []

    async def build(self, roots: list[ModuleSpecifier]) -> None:
        for root in roots:
            self._enqueue(root, None, hops=0)

        try:
            while self._pending:
                done, self._pending = await asyncio.wait(self._pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    self._merge(task.result())
            self._check_roots(roots)
        finally:
            for task in self._pending:
                task.cancel()

    def errors(self) -> list[ModuleError]:
        """Module errors with their referrer range, then resolution errors."""
        for specifier, error in self.module_errors.items():
            error.with_referrer(self._referrer_of(specifier))
        return [*self.module_errors.values(), *self.resolution_errors]

    # ============================================================
    # Loading
    # ============================================================

    def _enqueue(self, specifier: ModuleSpecifier, referrer: Range | None, hops: int) -> None:
        if referrer is not None:
            self._referrers.setdefault(specifier, []).append(referrer)
        if specifier in self._requested:
            return
        self._requested.add(specifier)
        self._pending.add(asyncio.create_task(self._load(specifier, hops)))

    async def _load(self, specifier: ModuleSpecifier, hops: int) -> _LoadResult:
        async with self._semaphore:
            try:
                response = await self._loader.load(specifier, CacheSetting.USE, None)
            except ModuleError as e:
                return _LoadResult(specifier, hops, error=e)
            except Exception as e:
                error = ModuleFetchError(str(e) or type(e).__name__, specifier=specifier, details={"cause": type(e).__name__})
                error.__cause__ = e
                return _LoadResult(specifier, hops, error=error)
        return _LoadResult(specifier, hops, response=response)

    # ============================================================
    # Merging (driving task only)
    # ============================================================

    def _merge(self, result: _LoadResult) -> None:
        specifier = result.specifier
        if result.error is not None:
            self._record_module_error(specifier, result.error)
            return

        response = result.response
        if response is None:
            self._record_module_error(specifier, ModuleMissingError(f"Module not found \"{specifier}\".", specifier=specifier))
            return

        if isinstance(response, RedirectResponse):
            if result.hops >= self._settings.max_redirects:
                self._record_module_error(
                    specifier,
                    TooManyRedirectsError(
                        f"Too many redirects ({result.hops + 1}) while loading \"{specifier}\".",
                        specifier=specifier,
                        details={"max_redirects": self._settings.max_redirects},
                    ),
                )
                return
            self._redirect(specifier, response.specifier, result.hops + 1)
            return

        if response.specifier != specifier:
            # the loader followed a redirect itself
            self._add_redirect(specifier, response.specifier)
            if response.specifier in self._requested:
                return
            self._requested.add(response.specifier)
            specifier = response.specifier

        if isinstance(response, ExternalResponse):
            self.modules[specifier] = ExternalModule(specifier=specifier)
            logger.debug("external_module_recorded", specifier=specifier)
            return

        self._add_module(specifier, response)

    def _redirect(self, source: ModuleSpecifier, target: ModuleSpecifier, hops: int) -> None:
        try:
            target = parse_specifier(target)
        except SpecifierError as e:
            error = ModuleFetchError(f"Invalid redirect target \"{target}\": {e}", specifier=source)
            error.__cause__ = e
            self._record_module_error(source, error)
            return
        self._add_redirect(source, target)
        chain = self._redirect_chain(target)
        if source in chain:
            cycle = [source, *chain[: chain.index(source) + 1]]
            self._record_module_error(
                source,
                RedirectCycleError(
                    f"Redirect cycle while loading \"{source}\": {' -> '.join(cycle)}.",
                    specifier=source,
                ),
            )
            return
        self._enqueue(target, None, hops)

    def _add_redirect(self, source: ModuleSpecifier, target: ModuleSpecifier) -> None:
        if source == target:
            return
        self.redirects[source] = target
        logger.debug("redirect_recorded", source=source, target=target)

    def _add_module(self, specifier: ModuleSpecifier, response: ModuleResponse) -> None:
        media_type = MediaType.from_specifier_and_headers(specifier, response.headers)
        try:
            source = response.content.decode("utf-8").lstrip("\ufeff")
        except UnicodeDecodeError as e:
            error = ModuleFetchError(f"The module's source is not valid UTF-8: {e}", specifier=specifier)
            error.__cause__ = e
            self._record_module_error(specifier, error)
            return

        if media_type == MediaType.JSON:
            self.modules[specifier] = JsonModule(specifier=specifier, source=source)
            logger.debug("module_loaded", specifier=specifier, media_type=media_type.value)
            return

        try:
            descriptors = self._analyzer.analyze(specifier, source, media_type)
        except ModuleError as e:
            self._record_module_error(specifier, e)
            return

        module = JsModule(specifier=specifier, media_type=media_type, source=source)
        for descriptor in descriptors:
            if descriptor.specifier in module.dependencies:
                continue
            module.dependencies[descriptor.specifier] = self._resolve_dependency(descriptor, specifier)
        self.modules[specifier] = module
        logger.debug(
            "module_loaded",
            specifier=specifier,
            media_type=media_type.value,
            dependencies=len(module.dependencies),
        )

        for dependency in module.dependencies.values():
            target = dependency.maybe_specifier
            if target is not None and not is_builtin_specifier(target):
                self._enqueue(target, dependency.range, hops=0)

    def _resolve_dependency(self, descriptor: DependencyDescriptor, referrer: ModuleSpecifier) -> Dependency:
        dependency = Dependency(
            specifier=descriptor.specifier,
            kind=descriptor.kind,
            range=descriptor.range,
            is_type_only=descriptor.is_type_only,
            attribute_type=descriptor.attribute_type,
        )
        try:
            if self._resolver is not None:
                dependency.maybe_specifier = self._resolver.resolve(descriptor.specifier, referrer)
            else:
                dependency.maybe_specifier = resolve_default(descriptor.specifier, referrer)
        except (ImportMapError, SpecifierError) as e:
            error = ModuleResolutionError(
                str(e),
                specifier=descriptor.specifier,
                maybe_referrer=descriptor.range,
            )
            error.__cause__ = e
            dependency.maybe_error = error
            self.resolution_errors.append(error)
            logger.debug("module_error_recorded", specifier=descriptor.specifier, error=str(e), kind="resolution")
        return dependency

    def _record_module_error(self, specifier: ModuleSpecifier, error: ModuleError) -> None:
        self.module_errors.setdefault(specifier, error)
        logger.debug(
            "module_error_recorded",
            specifier=specifier,
            error=error.message,
            kind=type(error).__name__,
        )

    # ============================================================
    # Post-traversal
    # ============================================================

    def _redirect_chain(self, specifier: ModuleSpecifier) -> list[ModuleSpecifier]:
        """`specifier` followed by its redirect targets, stopping before a repeat."""
        chain = [specifier]
        while specifier in self.redirects and self.redirects[specifier] not in chain:
            specifier = self.redirects[specifier]
            chain.append(specifier)
        return chain

    def _check_roots(self, roots: list[ModuleSpecifier]) -> None:
        for root in roots:
            chain = self._redirect_chain(root)
            if not any(specifier in self.modules or specifier in self.module_errors for specifier in chain):
                self._record_module_error(root, ModuleMissingError(f"Module not found \"{root}\".", specifier=root))

    def _referrer_of(self, specifier: ModuleSpecifier) -> Range | None:
        """Smallest range referencing the specifier directly or through a redirect."""
        ranges = [
            referrer
            for source, referrers in self._referrers.items()
            if specifier in self._redirect_chain(source)
            for referrer in referrers
        ]
        return min(ranges, key=lambda referrer: (referrer.specifier, referrer.start, referrer.end), default=None)
