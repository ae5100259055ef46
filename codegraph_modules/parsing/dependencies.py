"""
Dependency extraction

Collects the dependency descriptors of a parsed module:

    import x from "./a.ts"              IMPORT
    import type { T } from "./t.ts"     IMPORT (type only)
    import x = require("./c.ts")        REQUIRE
    export * from "./b.ts"              EXPORT
    await import("./lazy.ts")           DYNAMIC (string literal arguments only)
    /// <reference types="./x.d.ts" />  REFERENCE

Import attributes (`with { type: "json" }`) are recorded as attribute_type.
"""

import re

from tree_sitter import Node as TSNode

from codegraph_modules.models import DependencyDescriptor, DependencyKind, Position, Range
from codegraph_modules.parsing.parsed_source import ParsedSource

_ATTRIBUTE_TYPE_RE = re.compile(r"\btype\s*:\s*[\"']([^\"']+)[\"']")
_REFERENCE_RE = re.compile(r"^///\s*<reference\s+(path|types)\s*=\s*([\"'])([^\"']+)\2")


def _string_value(parsed: ParsedSource, node: TSNode | None) -> str | None:
    if node is None:
        return None
    if node.type == "string":
        return parsed.get_text(node)[1:-1]
    if node.type == "template_string":
        if any(child.type == "template_substitution" for child in node.children):
            return None
        return parsed.get_text(node)[1:-1]
    return None


def _is_type_only(node: TSNode) -> bool:
    return any(child.type == "type" for child in node.children)


def _attribute_type(parsed: ParsedSource, node: TSNode | None) -> str | None:
    if node is None:
        return None
    match = _ATTRIBUTE_TYPE_RE.search(parsed.get_text(node))
    return match.group(1) if match else None


def _import_attribute_node(node: TSNode) -> TSNode | None:
    for child in node.children:
        if child.type in ("import_attribute", "import_assertion"):
            return child
    return None


def analyze_dependencies(parsed: ParsedSource) -> list[DependencyDescriptor]:
    """Triple-slash references first, then the remaining dependencies in source order."""
    dependencies: list[DependencyDescriptor] = []

    for comment in parsed.comments:
        if comment.start.line != comment.end.line:
            continue
        match = _REFERENCE_RE.match(comment.text)
        if match is None:
            continue
        start = Position(comment.start.line, comment.start.column + match.start(2))
        end = Position(comment.start.line, comment.start.column + match.end(3) + 1)
        dependencies.append(
            DependencyDescriptor(
                specifier=match.group(3),
                kind=DependencyKind.REFERENCE,
                range=Range(parsed.specifier, start, end),
                is_type_only=match.group(1) == "types",
            )
        )

    for node in parsed.walk():
        node_type = node.type
        if node_type == "import_statement":
            source = node.child_by_field_name("source")
            kind = DependencyKind.IMPORT
            if source is None:
                for child in node.named_children:
                    if child.type == "import_require_clause":
                        source = child.child_by_field_name("source")
                        kind = DependencyKind.REQUIRE
            value = _string_value(parsed, source)
            if value is not None:
                dependencies.append(
                    DependencyDescriptor(
                        specifier=value,
                        kind=kind,
                        range=parsed.get_range(source),
                        is_type_only=_is_type_only(node),
                        attribute_type=_attribute_type(parsed, _import_attribute_node(node)),
                    )
                )
        elif node_type == "export_statement":
            source = node.child_by_field_name("source")
            value = _string_value(parsed, source)
            if value is not None:
                dependencies.append(
                    DependencyDescriptor(
                        specifier=value,
                        kind=DependencyKind.EXPORT,
                        range=parsed.get_range(source),
                        is_type_only=_is_type_only(node),
                        attribute_type=_attribute_type(parsed, _import_attribute_node(node)),
                    )
                )
        elif node_type == "call_expression":
            function = node.child_by_field_name("function")
            if function is None or function.type != "import":
                continue
            arguments = node.child_by_field_name("arguments")
            if arguments is None or not arguments.named_children:
                continue
            first = arguments.named_children[0]
            value = _string_value(parsed, first)
            if value is None:
                continue
            options = arguments.named_children[1] if len(arguments.named_children) > 1 else None
            dependencies.append(
                DependencyDescriptor(
                    specifier=value,
                    kind=DependencyKind.DYNAMIC,
                    range=parsed.get_range(first),
                    attribute_type=_attribute_type(parsed, options),
                )
            )

    return dependencies
