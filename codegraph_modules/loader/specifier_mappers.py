"""
CDN specifier mappers

Pinned CDN URLs of npm packages are mapped back to the package itself:

    https://esm.sh/preact@10.5.0/hooks      → preact@10.5.0, sub path "hooks"
    https://cdn.skypack.dev/@scope/pkg@1.0  → @scope/pkg@1.0
    https://cdn.jsdelivr.net/npm/lodash@4   → lodash@4
    https://unpkg.com/react@18.2.0          → react@18.2.0

URLs without an explicit version are left alone and fetched normally.
"""

import re

from codegraph_modules.models import PackageMapping
from codegraph_modules.specifier import ModuleSpecifier

_PACKAGE = r"(?P<name>(?:@[^/@?#]+/)?[^/@?#]+)@(?P<version>[^/?#]+)(?:/(?P<sub_path>[^?#]*))?(?:[?#].*)?$"


class CdnSpecifierMapper:
    """Maps `<prefix><name>@<version>[/<sub_path>]` URLs to npm packages."""

    def __init__(self, name: str, prefix_pattern: str):
        self.name = name
        self._pattern = re.compile(prefix_pattern + _PACKAGE)

    def map(self, specifier: ModuleSpecifier) -> PackageMapping | None:
        match = self._pattern.match(specifier)
        if match is None:
            return None
        sub_path = match.group("sub_path") or None
        if sub_path is not None:
            sub_path = sub_path.rstrip("/") or None
        return PackageMapping(
            name=match.group("name"),
            version=match.group("version"),
            sub_path=sub_path,
        )

    def __repr__(self) -> str:
        return f"CdnSpecifierMapper({self.name!r})"


def default_specifier_mappers() -> list[CdnSpecifierMapper]:
    """Mappers used when a build does not pass its own."""
    return [
        CdnSpecifierMapper("esm.sh", r"^https://esm\.sh/(?:v\d+/)?"),
        CdnSpecifierMapper("skypack", r"^https://cdn\.skypack\.dev/"),
        CdnSpecifierMapper("jsdelivr", r"^https://cdn\.jsdelivr\.net/npm/"),
        CdnSpecifierMapper("unpkg", r"^https://unpkg\.com/"),
    ]
