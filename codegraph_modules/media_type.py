"""
Media types

Classifies a module from its specifier extension and, for remote modules,
the content-type header. The tree-sitter grammar used to parse a module is
derived from its media type.
"""

from enum import Enum
from urllib.parse import unquote, urlsplit

from codegraph_modules.specifier import ModuleSpecifier, specifier_scheme


class MediaType(str, Enum):
    JAVASCRIPT = "JavaScript"
    JSX = "JSX"
    MJS = "Mjs"
    CJS = "Cjs"
    TYPESCRIPT = "TypeScript"
    MTS = "Mts"
    CTS = "Cts"
    DTS = "Dts"
    DMTS = "Dmts"
    DCTS = "Dcts"
    TSX = "TSX"
    JSON = "Json"
    WASM = "Wasm"
    UNKNOWN = "Unknown"

    @property
    def is_javascript_like(self) -> bool:
        return self in _CODE_LANGUAGE

    @property
    def is_declaration(self) -> bool:
        return self in (MediaType.DTS, MediaType.DMTS, MediaType.DCTS)

    @property
    def language(self) -> str | None:
        """tree-sitter grammar name, or None when the media type is not code"""
        return _CODE_LANGUAGE.get(self)

    @classmethod
    def from_path(cls, path: str) -> "MediaType":
        lowered = path.lower()
        for suffix, media_type in _DECLARATION_SUFFIXES:
            if lowered.endswith(suffix):
                return media_type
        dot = lowered.rfind(".")
        if dot == -1 or "/" in lowered[dot:]:
            return cls.UNKNOWN
        return _EXTENSIONS.get(lowered[dot:], cls.UNKNOWN)

    @classmethod
    def from_specifier(cls, specifier: ModuleSpecifier) -> "MediaType":
        if specifier_scheme(specifier) == "data":
            header = specifier[len("data:") :].split(",", 1)[0]
            return cls.from_content_type(specifier, header.split(";", 1)[0])
        return cls.from_path(unquote(urlsplit(specifier).path))

    @classmethod
    def from_content_type(cls, specifier: ModuleSpecifier, content_type: str) -> "MediaType":
        mime = content_type.split(";", 1)[0].strip().lower()
        if specifier_scheme(specifier) == "data":
            path_type = cls.UNKNOWN
        else:
            path_type = cls.from_path(unquote(urlsplit(specifier).path))

        if mime in _TYPESCRIPT_MIMES:
            if path_type in (cls.DTS, cls.DMTS, cls.DCTS, cls.TSX, cls.MTS, cls.CTS):
                return path_type
            return cls.TYPESCRIPT
        if mime in _JAVASCRIPT_MIMES:
            if path_type in (cls.JSX, cls.MJS, cls.CJS):
                return path_type
            return cls.JAVASCRIPT
        if mime == "text/jsx":
            return cls.JSX
        if mime == "text/tsx":
            return cls.TSX
        if mime in ("application/json", "text/json"):
            return cls.JSON
        if mime == "application/wasm":
            return cls.WASM
        if mime in ("", "text/plain", "application/octet-stream"):
            return path_type
        return cls.UNKNOWN

    @classmethod
    def from_specifier_and_headers(
        cls, specifier: ModuleSpecifier, headers: dict[str, str] | None
    ) -> "MediaType":
        if headers:
            for key, value in headers.items():
                if key.lower() == "content-type":
                    return cls.from_content_type(specifier, value)
        return cls.from_specifier(specifier)


_DECLARATION_SUFFIXES = (
    (".d.ts", MediaType.DTS),
    (".d.mts", MediaType.DMTS),
    (".d.cts", MediaType.DCTS),
)

_EXTENSIONS = {
    ".ts": MediaType.TYPESCRIPT,
    ".mts": MediaType.MTS,
    ".cts": MediaType.CTS,
    ".tsx": MediaType.TSX,
    ".js": MediaType.JAVASCRIPT,
    ".jsx": MediaType.JSX,
    ".mjs": MediaType.MJS,
    ".cjs": MediaType.CJS,
    ".json": MediaType.JSON,
    ".wasm": MediaType.WASM,
}

_CODE_LANGUAGE = {
    MediaType.JAVASCRIPT: "javascript",
    MediaType.JSX: "javascript",
    MediaType.MJS: "javascript",
    MediaType.CJS: "javascript",
    MediaType.TYPESCRIPT: "typescript",
    MediaType.MTS: "typescript",
    MediaType.CTS: "typescript",
    MediaType.DTS: "typescript",
    MediaType.DMTS: "typescript",
    MediaType.DCTS: "typescript",
    MediaType.TSX: "tsx",
}

_TYPESCRIPT_MIMES = frozenset(
    {
        "application/typescript",
        "text/typescript",
        "video/vnd.dlna.mpeg-tts",
        "video/mp2t",
        "application/x-typescript",
    }
)

_JAVASCRIPT_MIMES = frozenset(
    {
        "application/javascript",
        "text/javascript",
        "application/ecmascript",
        "text/ecmascript",
        "application/x-javascript",
        "application/node",
    }
)
