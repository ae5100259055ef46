"""
Module graph data model

Positions, ranges, loader responses, specifier mappings, dependencies and
the module variants stored in a ModuleGraph.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Union

from codegraph_modules.media_type import MediaType
from codegraph_modules.specifier import ModuleSpecifier

if TYPE_CHECKING:
    from codegraph_modules.errors import ModuleResolutionError


@dataclass(frozen=True, order=True)
class Position:
    """Zero-based line and column."""

    line: int
    column: int

    @classmethod
    def at_byte(cls, source_bytes: bytes, line: int, byte_offset: int) -> "Position":
        """Position of a byte offset on `line`, with the column counted in characters."""
        line_start = source_bytes.rfind(b"\n", 0, byte_offset) + 1
        return cls(line, len(source_bytes[line_start:byte_offset].decode("utf-8", errors="replace")))


@dataclass(frozen=True)
class Range:
    """Source location used for diagnostics."""

    specifier: ModuleSpecifier
    start: Position
    end: Position

    def __str__(self) -> str:
        return f"{self.specifier}:{self.start.line + 1}:{self.start.column + 1}"


# ============================================================
# Loader Responses
# ============================================================


class CacheSetting(str, Enum):
    ONLY = "only"  # never fetch; cached content or nothing
    USE = "use"
    RELOAD = "reload"


@dataclass(frozen=True)
class ModuleResponse:
    """
    Fetched module content.

    `specifier` is the final location, which may differ from the requested one.
    """

    specifier: ModuleSpecifier
    content: bytes
    headers: dict[str, str] | None = None


@dataclass(frozen=True)
class RedirectResponse:
    """The requested specifier lives elsewhere; the graph requests `specifier` next."""

    specifier: ModuleSpecifier


@dataclass(frozen=True)
class ExternalResponse:
    """Provided outside of the graph (e.g. an npm package); not traversed."""

    specifier: ModuleSpecifier


LoadResponse = Union[ModuleResponse, RedirectResponse, ExternalResponse]


# ============================================================
# Specifier Mappings
# ============================================================


@dataclass(frozen=True)
class PackageMapping:
    """Treat a specifier as an external package dependency."""

    name: str
    version: str | None = None
    sub_path: str | None = None
    peer_dependency: bool = False


@dataclass(frozen=True)
class ModuleMapping:
    """Substitute a specifier with a different module."""

    target: ModuleSpecifier


MappedSpecifier = Union[PackageMapping, ModuleMapping]


# ============================================================
# Dependencies
# ============================================================


class DependencyKind(str, Enum):
    IMPORT = "import"
    EXPORT = "export"
    DYNAMIC = "dynamic"
    REQUIRE = "require"
    REFERENCE = "reference"  # /// <reference path|types="..." />


@dataclass(frozen=True)
class DependencyDescriptor:
    """A dependency as written in source, before resolution."""

    specifier: str
    kind: DependencyKind
    range: Range
    is_type_only: bool = False
    attribute_type: str | None = None

    @property
    def is_dynamic(self) -> bool:
        return self.kind == DependencyKind.DYNAMIC


@dataclass
class Dependency:
    """A dependency edge of a module together with its resolution."""

    specifier: str
    kind: DependencyKind
    range: Range
    is_type_only: bool = False
    attribute_type: str | None = None
    maybe_specifier: ModuleSpecifier | None = None
    maybe_error: "ModuleResolutionError | None" = None

    @property
    def is_dynamic(self) -> bool:
        return self.kind == DependencyKind.DYNAMIC


# ============================================================
# Modules
# ============================================================


@dataclass
class JsModule:
    specifier: ModuleSpecifier
    media_type: MediaType
    source: str
    dependencies: dict[str, Dependency] = field(default_factory=dict)


@dataclass
class JsonModule:
    specifier: ModuleSpecifier
    source: str
    media_type: MediaType = MediaType.JSON

    @property
    def dependencies(self) -> dict[str, Dependency]:
        return {}


@dataclass
class ExternalModule:
    specifier: ModuleSpecifier

    @property
    def dependencies(self) -> dict[str, Dependency]:
        return {}


Module = Union[JsModule, JsonModule, ExternalModule]
