"""
Import Map Resolver

Parses an import map document (JSON with comments, trailing commas and
unquoted keys) and resolves import text following the WICG import maps
algorithm:

1. URL-like text (`/`, `./`, `../`, or an absolute URL) is normalized first
2. Scopes matching the referrer are tried, most specific first
3. Then the top-level `imports`
4. Then the URL-like form itself

Within a specifier map an exact key wins, otherwise the longest key ending
with `/` that prefixes the text.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import json5

from codegraph_modules.config import ModuleGraphSettings, get_settings
from codegraph_modules.errors import ImportMapError, ImportMapLoadError
from codegraph_modules.loader.ports import Loader
from codegraph_modules.models import CacheSetting, ExternalResponse, ModuleResponse, RedirectResponse
from codegraph_modules.observability import get_logger
from codegraph_modules.specifier import (
    ModuleSpecifier,
    SpecifierError,
    has_scheme,
    is_relative_specifier,
    is_special_scheme,
    join_specifier,
    parse_specifier,
)

logger = get_logger(__name__)

# key → address; None marks a blocked (null or invalid) entry
SpecifierMap = dict[str, ModuleSpecifier | None]

_TOP_LEVEL_KEYS = frozenset({"imports", "scopes"})


def _parse_url_like(text: str, base: ModuleSpecifier) -> ModuleSpecifier | None:
    try:
        if is_relative_specifier(text):
            return join_specifier(base, text)
        if has_scheme(text):
            return parse_specifier(text)
    except SpecifierError:
        return None
    return None


def _sorted_map(entries: dict[str, Any]) -> dict[str, Any]:
    # Longest/most specific keys first (descending code point order).
    return {key: entries[key] for key in sorted(entries, reverse=True)}


def expand_imports(imports: Mapping[str, Any]) -> dict[str, Any]:
    """
    Add `key/` entries for bare `npm:` and `jsr:` package keys.

    {"express": "npm:express@4"} also maps "express/" to "npm:/express@4/"
    so that "express/router" resolves inside the package.
    """
    expanded = dict(imports)
    for key, value in imports.items():
        if not isinstance(value, str) or key.endswith("/") or is_relative_specifier(key) or has_scheme(key):
            continue
        key_with_slash = f"{key}/"
        if key_with_slash in expanded:
            continue
        for scheme in ("npm:", "jsr:"):
            if value.startswith(scheme):
                package = value[len(scheme) :].lstrip("/").rstrip("/")
                expanded[key_with_slash] = f"{scheme}/{package}/"
                break
    return expanded


@dataclass
class ImportMap:
    """Parsed import map."""

    base_url: ModuleSpecifier
    imports: SpecifierMap = field(default_factory=dict)
    scopes: dict[ModuleSpecifier, SpecifierMap] = field(default_factory=dict)
    diagnostics: list[str] = field(default_factory=list)

    @classmethod
    def parse_from_value(cls, base_url: ModuleSpecifier, value: Any, expand: bool = True) -> "ImportMap":
        """
        Build an import map from a parsed JSON value.

        Raises:
            ImportMapError: If the document structure is invalid
        """
        if not isinstance(value, dict):
            raise ImportMapError("Import map JSON must be an object")

        import_map = cls(base_url=base_url)
        for key in value:
            if key not in _TOP_LEVEL_KEYS:
                import_map.diagnostics.append(f"Invalid top-level key \"{key}\". Only \"imports\" and \"scopes\" can be present.")

        imports = value.get("imports", {})
        if not isinstance(imports, dict):
            raise ImportMapError("Import map's 'imports' must be an object")
        if expand:
            imports = expand_imports(imports)
        import_map.imports = import_map._normalize_specifier_map(imports, base_url)

        scopes = value.get("scopes", {})
        if not isinstance(scopes, dict):
            raise ImportMapError("Import map's 'scopes' must be an object")
        normalized_scopes: dict[ModuleSpecifier, SpecifierMap] = {}
        for scope_prefix, scope_imports in scopes.items():
            if not isinstance(scope_imports, dict):
                raise ImportMapError(f"The value for the \"{scope_prefix}\" scope prefix must be an object")
            try:
                scope_url = join_specifier(base_url, scope_prefix)
            except SpecifierError:
                import_map.diagnostics.append(f"Invalid scope \"{scope_prefix}\" (parsed against base URL \"{base_url}\").")
                continue
            normalized_scopes[scope_url] = import_map._normalize_specifier_map(scope_imports, base_url)
        import_map.scopes = _sorted_map(normalized_scopes)
        return import_map

    def _normalize_specifier_map(self, entries: dict[str, Any], base_url: ModuleSpecifier) -> SpecifierMap:
        normalized: SpecifierMap = {}
        for key, value in entries.items():
            if key == "":
                self.diagnostics.append("Invalid empty string specifier.")
                continue
            normalized_key = _parse_url_like(key, base_url) or key

            if not isinstance(value, str):
                self.diagnostics.append(f"Invalid address {value!r} for the specifier key \"{key}\". Addresses must be strings.")
                normalized[normalized_key] = None
                continue

            address = _parse_url_like(value, base_url)
            if address is None:
                self.diagnostics.append(f"Invalid address \"{value}\" for the specifier key \"{key}\".")
                normalized[normalized_key] = None
                continue

            if key.endswith("/") and not address.endswith("/"):
                self.diagnostics.append(
                    f"Invalid target address \"{address}\" for package specifier \"{key}\". "
                    "Package address targets must end with \"/\"."
                )
                normalized[normalized_key] = None
                continue

            if normalized_key in normalized:
                self.diagnostics.append(f"Duplicate specifier key \"{key}\"; the later entry wins.")
            normalized[normalized_key] = address
        return _sorted_map(normalized)

    def resolve(self, specifier: str, referrer: ModuleSpecifier) -> ModuleSpecifier:
        """
        Resolve import text from a referrer.

        Raises:
            ImportMapError: If the text is blocked, backtracks, or is an unmapped bare specifier
        """
        as_url = _parse_url_like(specifier, referrer)
        normalized = as_url or specifier

        for scope_prefix, scope_imports in self.scopes.items():
            if scope_prefix == referrer or (scope_prefix.endswith("/") and referrer.startswith(scope_prefix)):
                resolved = _resolve_imports_match(normalized, as_url, scope_imports)
                if resolved is not None:
                    return resolved

        resolved = _resolve_imports_match(normalized, as_url, self.imports)
        if resolved is not None:
            return resolved
        if as_url is not None:
            return as_url
        raise ImportMapError(
            f"Relative import path \"{specifier}\" not prefixed with / or ./ or ../ "
            f"and not in import map from \"{referrer}\""
        )


def _resolve_imports_match(
    normalized: str,
    as_url: ModuleSpecifier | None,
    specifier_map: SpecifierMap,
) -> ModuleSpecifier | None:
    for key, address in specifier_map.items():
        if key == normalized:
            if address is None:
                raise ImportMapError(f"Blocked by null entry for \"{key}\"")
            return address

        if key.endswith("/") and normalized.startswith(key) and (as_url is None or is_special_scheme(as_url)):
            if address is None:
                raise ImportMapError(f"Blocked by null entry for \"{key}\"")
            after_prefix = normalized[len(key) :]
            try:
                url = join_specifier(address, after_prefix)
            except SpecifierError as e:
                raise ImportMapError(f"Failed to resolve the specifier \"{normalized}\" as its after-prefix portion \"{after_prefix}\" could not be URL-parsed relative to the URL prefix \"{address}\" mapped to by the prefix \"{key}\"") from e
            if not url.startswith(address):
                raise ImportMapError(f"The specifier \"{normalized}\" backtracks above its prefix \"{key}\"")
            return url
    return None


class ImportMapResolver:
    """Resolver backed by an import map loaded through the raw loader."""

    def __init__(self, import_map: ImportMap):
        self.import_map = import_map

    @classmethod
    async def load(
        cls,
        import_map_url: ModuleSpecifier,
        loader: Loader,
        settings: ModuleGraphSettings | None = None,
    ) -> "ImportMapResolver":
        """
        Fetch and parse an import map.

        Raises:
            ImportMapLoadError: If the document cannot be fetched or parsed
        """
        settings = settings or get_settings()
        try:
            text = await cls._fetch_text(import_map_url, loader, settings.max_redirects)
            value = json5.loads(text) if text.strip() else {}
            import_map = ImportMap.parse_from_value(import_map_url, value, expand=True)
        except ImportMapLoadError:
            raise
        except Exception as e:
            raise ImportMapLoadError(f"Error loading import map: {e}", {"import_map": import_map_url}) from e

        if import_map.diagnostics and settings.surface_import_map_diagnostics:
            for diagnostic in import_map.diagnostics:
                logger.warning("import_map_diagnostic", import_map=import_map_url, diagnostic=diagnostic)

        logger.debug(
            "import_map_loaded",
            import_map=import_map_url,
            imports=len(import_map.imports),
            scopes=len(import_map.scopes),
        )
        return cls(import_map)

    @staticmethod
    async def _fetch_text(import_map_url: ModuleSpecifier, loader: Loader, max_redirects: int) -> str:
        specifier = import_map_url
        for _ in range(max_redirects + 1):
            response = await loader.load(specifier, CacheSetting.USE, None)
            if response is None or isinstance(response, ExternalResponse):
                raise ImportMapLoadError(f"Error loading import map: Could not find {import_map_url}")
            if isinstance(response, RedirectResponse):
                specifier = response.specifier
                continue
            if isinstance(response, ModuleResponse):
                return response.content.decode("utf-8").lstrip("\ufeff")
        raise ImportMapLoadError(f"Error loading import map: Too many redirects for {import_map_url}")

    def resolve(self, specifier: str, referrer: ModuleSpecifier) -> ModuleSpecifier:
        return self.import_map.resolve(specifier, referrer)
