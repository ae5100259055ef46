"""
Module specifiers

A specifier is an absolute, URL-shaped module identifier kept as a plain
string in canonical form (lowercase scheme and host, dot segments removed,
non-empty path for hierarchical URLs). Joining works for every scheme whose
path is hierarchical, so `npm:/express@4/` + `router` gives
`npm:/express@4/router`.
"""

import re
from urllib.parse import urlsplit

ModuleSpecifier = str

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")

# Schemes whose targets are provided by the runtime, never fetched.
BUILTIN_SCHEMES = frozenset({"node"})

# Schemes with an authority and a path that always starts with "/".
_SPECIAL_SCHEMES = frozenset({"http", "https", "file", "ws", "wss", "ftp"})


class SpecifierError(ValueError):
    """Text could not be turned into an absolute specifier."""

    pass


def has_scheme(text: str) -> bool:
    """Whether text starts with a URL scheme (`https:`, `file:`, `npm:`...)."""
    return _SCHEME_RE.match(text) is not None


def is_relative_specifier(text: str) -> bool:
    """Relative import text: `/`, `./` or `../` prefixed."""
    return text.startswith(("/", "./", "../"))


def specifier_scheme(specifier: ModuleSpecifier) -> str:
    match = _SCHEME_RE.match(specifier)
    if match is None:
        raise SpecifierError(f"Not an absolute specifier: {specifier}")
    return match.group(0)[:-1].lower()


def is_special_scheme(specifier: ModuleSpecifier) -> bool:
    return has_scheme(specifier) and specifier_scheme(specifier) in _SPECIAL_SCHEMES


def is_builtin_specifier(specifier: ModuleSpecifier) -> bool:
    return has_scheme(specifier) and specifier_scheme(specifier) in BUILTIN_SCHEMES


def _remove_dot_segments(path: str) -> str:
    segments = path.split("/")
    output: list[str] = []
    last = len(segments) - 1
    for index, segment in enumerate(segments):
        if segment == "..":
            if len(output) > 1 or (output and output[0] != ""):
                output.pop()
            if index == last:
                output.append("")
        elif segment == ".":
            if index == last:
                output.append("")
        else:
            output.append(segment)
    result = "/".join(output)
    if path.startswith("/") and not result.startswith("/"):
        result = "/" + result
    return result


def _build(scheme: str, netloc: str | None, path: str, query: str, fragment: str) -> str:
    text = f"{scheme}:"
    if netloc is not None:
        text += f"//{netloc}"
    text += path
    if query:
        text += f"?{query}"
    if fragment:
        text += f"#{fragment}"
    return text


def _split(text: str) -> tuple[str, str | None, str, str, str]:
    parts = urlsplit(text)
    scheme = parts.scheme.lower()
    rest = text[len(parts.scheme) + 1 :]
    netloc = parts.netloc if rest.startswith("//") else None
    return scheme, netloc, parts.path, parts.query, parts.fragment


def parse_specifier(text: str) -> ModuleSpecifier:
    """
    Parse absolute URL text into a canonical specifier.

    Raises:
        SpecifierError: If text has no scheme or is not a valid URL
    """
    text = text.strip()
    if not has_scheme(text):
        raise SpecifierError(f"Relative import path \"{text}\" not prefixed with / or ./ or ../")
    try:
        scheme, netloc, path, query, fragment = _split(text)
    except ValueError as e:
        raise SpecifierError(f"Invalid URL \"{text}\": {e}") from e

    if scheme in _SPECIAL_SCHEMES:
        if netloc is None:
            # "file:/a.ts" and "file:a.ts" both mean "file:///a.ts"
            netloc = ""
            if not path.startswith("/"):
                path = "/" + path
        netloc = netloc.lower()
        if scheme != "file" and not netloc:
            raise SpecifierError(f"Invalid URL \"{text}\": empty host")
        if not path:
            path = "/"
        path = _remove_dot_segments(path)
    elif path.startswith("/"):
        path = _remove_dot_segments(path)
    if netloc is not None and scheme not in _SPECIAL_SCHEMES:
        netloc = netloc.lower()
    return _build(scheme, netloc, path, query, fragment)


def join_specifier(base: ModuleSpecifier, reference: str) -> ModuleSpecifier:
    """
    Resolve reference text against an absolute base (RFC 3986 section 5.2).

    Raises:
        SpecifierError: If the base cannot be used as a base
    """
    if has_scheme(reference):
        return parse_specifier(reference)

    scheme, netloc, base_path, base_query, _ = _split(base)
    if netloc is None and not base_path.startswith("/"):
        raise SpecifierError(f"Cannot resolve \"{reference}\" against non-hierarchical \"{base}\"")

    ref = urlsplit(reference)
    if reference.startswith("//"):
        return parse_specifier(f"{scheme}:{reference}")

    query = ref.query
    if not ref.path:
        path = base_path
        if not query and "?" not in reference:
            query = base_query
    elif ref.path.startswith("/"):
        path = ref.path
    else:
        if netloc is not None and not base_path:
            merged = "/" + ref.path
        else:
            merged = base_path[: base_path.rfind("/") + 1] + ref.path
        path = merged
    path = _remove_dot_segments(path)
    return parse_specifier(_build(scheme, netloc, path, query, ref.fragment))
