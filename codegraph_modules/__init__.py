"""
codegraph-modules

Module dependency graph builder for JavaScript/TypeScript sources:
redirect-aware traversal, import maps, specifier mappings, tree-sitter
scope analysis and aggregated error reporting.
"""

from codegraph_modules.config import ModuleGraphSettings, get_settings
from codegraph_modules.errors import (
    ImportMapError,
    ImportMapLoadError,
    ModuleError,
    ModuleFetchError,
    ModuleGraphBug,
    ModuleGraphBuildError,
    ModuleGraphError,
    ModuleMissingError,
    ModuleParseError,
    ModuleResolutionError,
    RedirectCycleError,
    TooManyRedirectsError,
    UnsupportedMediaTypeError,
    UnusedMappingError,
    UnusedModuleMappingError,
    UnusedPackageMappingError,
)
from codegraph_modules.graph import EnvironmentSpecifiers, ModuleGraph, ModuleGraphOptions, Specifiers
from codegraph_modules.import_map import ImportMap, ImportMapResolver
from codegraph_modules.loader import DefaultLoader, InMemoryLoader, Loader, SourceLoader, SpecifierMapper
from codegraph_modules.media_type import MediaType
from codegraph_modules.models import (
    CacheSetting,
    Dependency,
    DependencyKind,
    ExternalModule,
    ExternalResponse,
    JsModule,
    JsonModule,
    ModuleMapping,
    ModuleResponse,
    PackageMapping,
    Position,
    Range,
    RedirectResponse,
)
from codegraph_modules.observability import get_logger, setup_logging
from codegraph_modules.parsing import CapturingModuleAnalyzer, ParsedSource, ScopeAnalysisParser
from codegraph_modules.specifier import ModuleSpecifier, join_specifier, parse_specifier

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Graph
    "ModuleGraph",
    "ModuleGraphOptions",
    "Specifiers",
    "EnvironmentSpecifiers",
    # Loading
    "Loader",
    "SpecifierMapper",
    "SourceLoader",
    "DefaultLoader",
    "InMemoryLoader",
    "CacheSetting",
    "ModuleResponse",
    "RedirectResponse",
    "ExternalResponse",
    "PackageMapping",
    "ModuleMapping",
    # Import maps
    "ImportMap",
    "ImportMapResolver",
    # Parsing
    "ScopeAnalysisParser",
    "CapturingModuleAnalyzer",
    "ParsedSource",
    # Model
    "ModuleSpecifier",
    "parse_specifier",
    "join_specifier",
    "MediaType",
    "Position",
    "Range",
    "Dependency",
    "DependencyKind",
    "JsModule",
    "JsonModule",
    "ExternalModule",
    # Errors
    "ModuleGraphError",
    "ImportMapError",
    "ImportMapLoadError",
    "ModuleError",
    "ModuleResolutionError",
    "ModuleFetchError",
    "ModuleMissingError",
    "RedirectCycleError",
    "TooManyRedirectsError",
    "ModuleParseError",
    "UnsupportedMediaTypeError",
    "ModuleGraphBuildError",
    "UnusedMappingError",
    "UnusedModuleMappingError",
    "UnusedPackageMappingError",
    "ModuleGraphBug",
    # Configuration
    "ModuleGraphSettings",
    "get_settings",
    "setup_logging",
    "get_logger",
]
