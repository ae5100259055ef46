"""
Module Graph Exception Hierarchy

Usage guide:
    1. Per-module problems (fetch, parse, resolve) → recorded, traversal continues
    2. Build-level problems (aggregate, unused mappings, import map) → raised to the caller
    3. External errors → wrapped in a ModuleGraphError subclass with `raise ... from`

Example:
    try:
        response = await loader.load(specifier, CacheSetting.USE, None)
    except httpx.HTTPError as e:
        raise ModuleFetchError(str(e), specifier=specifier) from e
"""

from typing import Any

from codegraph_modules.models import Range


class ModuleGraphError(Exception):
    """Base exception for all module graph errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """
        Initialize module graph error.

        Args:
            message: Human-readable error message
            details: Optional additional details for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# ============================================================
# Import Map Errors
# ============================================================


class ImportMapError(ModuleGraphError):
    """Import map parse or resolution failure."""

    pass


class ImportMapLoadError(ModuleGraphError):
    """The import map could not be fetched or parsed. Aborts the build."""

    pass


# ============================================================
# Per-Module Errors (aggregated during traversal)
# ============================================================


class ModuleError(ModuleGraphError):
    """An error attached to one specifier, optionally with the range that referenced it."""

    def __init__(
        self,
        message: str,
        specifier: str,
        maybe_referrer: Range | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.specifier = specifier
        self.maybe_referrer = maybe_referrer

    def with_referrer(self, referrer: Range | None) -> "ModuleError":
        if referrer is not None and self.maybe_referrer is None:
            self.maybe_referrer = referrer
        return self


class ModuleResolutionError(ModuleError):
    """An import specifier could not be resolved."""

    pass


class ModuleFetchError(ModuleError):
    """Content retrieval failed."""

    pass


class ModuleMissingError(ModuleFetchError):
    """The loader reported that the module does not exist."""

    pass


class TooManyRedirectsError(ModuleFetchError):
    """The redirect chain exceeded the configured limit."""

    pass


class RedirectCycleError(ModuleFetchError):
    """A redirect chain leads back to a specifier it already passed through."""

    pass


class ModuleParseError(ModuleError):
    """Syntax error in fetched source."""

    pass


class UnsupportedMediaTypeError(ModuleError):
    """The module is neither JavaScript, TypeScript nor JSON."""

    pass


# ============================================================
# Build Errors
# ============================================================


class ModuleGraphBuildError(ModuleGraphError):
    """One or more module errors were collected during traversal."""

    def __init__(self, message: str, errors: list[ModuleError]):
        super().__init__(message, {"error_count": len(errors)})
        self.errors = errors


class UnusedMappingError(ModuleGraphError):
    """Specifier mappings that were declared but never exercised by the graph."""

    kind = "mapped"

    def __init__(self, specifiers: list[str]):
        self.specifiers = sorted(specifiers)
        lines = "\n".join(f"  * {specifier}" for specifier in self.specifiers)
        super().__init__(
            f"The following specifiers were indicated to be {self.kind}, but were not found:\n{lines}",
            {"specifiers": self.specifiers},
        )


class UnusedModuleMappingError(UnusedMappingError):
    kind = "mapped to a module"


class UnusedPackageMappingError(UnusedMappingError):
    kind = "mapped to a package"


# ============================================================
# Internal Errors
# ============================================================


class ModuleGraphBug(RuntimeError):
    """
    Internal inconsistency in the module graph.

    Not a ModuleGraphError: handlers for bad input must never catch it.
    """

    def __init__(self, message: str):
        super().__init__(f"codegraph-modules bug - {message}")
