"""
Parsed source

Wrapper for a tree-sitter tree together with the captured tokens, comments
and lexical scope analysis of one module. Instances are shared read-only by
the graph builder and later consumers, so identity matters: eq is by object.
"""

from dataclasses import dataclass, field

from tree_sitter import Node as TSNode
from tree_sitter import Tree as TSTree

from codegraph_modules.media_type import MediaType
from codegraph_modules.models import Position, Range
from codegraph_modules.parsing.scope import Reference, Scope, ScopeAnalysis
from codegraph_modules.specifier import ModuleSpecifier


@dataclass(frozen=True)
class Token:
    """Leaf node of the tree (keyword, punctuation, identifier, literal fragment)."""

    kind: str
    text: str
    start: Position
    end: Position
    start_byte: int
    end_byte: int


@dataclass(frozen=True)
class Comment:
    text: str
    start: Position
    end: Position
    start_byte: int
    end_byte: int

    @property
    def is_line(self) -> bool:
        return self.text.startswith("//")


@dataclass(eq=False)
class ParsedSource:
    """
    Parsed module.

    Attributes:
        specifier: Canonical specifier of the module
        media_type: Media type the module was parsed as
        text: Source text
        tree: tree-sitter tree
        tokens: Leaf tokens in source order (comments excluded)
        comments: Comments in source order
        scope_analysis: Scope tree and resolved identifier references
    """

    specifier: ModuleSpecifier
    media_type: MediaType
    text: str
    source_bytes: bytes
    tree: TSTree
    tokens: list[Token] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)
    scope_analysis: ScopeAnalysis | None = None

    @property
    def root(self) -> TSNode:
        return self.tree.root_node

    @property
    def scope(self) -> Scope:
        return self.scope_analysis.root

    @property
    def references(self) -> list[Reference]:
        return self.scope_analysis.references

    def get_text(self, node: TSNode) -> str:
        return self.source_bytes[node.start_byte : node.end_byte].decode("utf-8", errors="replace")

    def get_range(self, node: TSNode) -> Range:
        return Range(
            specifier=self.specifier,
            start=Position.at_byte(self.source_bytes, node.start_point[0], node.start_byte),
            end=Position.at_byte(self.source_bytes, node.end_point[0], node.end_byte),
        )

    def walk(self, node: TSNode | None = None) -> list[TSNode]:
        """Nodes in depth-first pre-order."""
        nodes: list[TSNode] = []
        stack = [node if node is not None else self.root]
        while stack:
            current = stack.pop()
            nodes.append(current)
            stack.extend(reversed(current.children))
        return nodes

    def find_by_type(self, node_type: str, node: TSNode | None = None) -> list[TSNode]:
        return [candidate for candidate in self.walk(node) if candidate.type == node_type]

    def scope_at(self, byte_offset: int) -> Scope:
        """Innermost scope containing a byte offset."""
        scope = self.scope
        descended = True
        while descended:
            descended = False
            for child in scope.children:
                if child.start_byte <= byte_offset < child.end_byte:
                    scope = child
                    descended = True
                    break
        return scope
