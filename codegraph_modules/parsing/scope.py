"""
Lexical scope analysis over a tree-sitter JavaScript/TypeScript tree.

Two passes:
1. Declare: build the scope tree and record every binding (`var` is hoisted
   to the nearest function scope, `let`/`const`/classes/functions stay in
   the enclosing block).
2. Resolve: every identifier use is resolved through the scope chain of
   the innermost scope containing it. Uses with no binding are globals.
"""

from dataclasses import dataclass, field
from enum import Enum

from tree_sitter import Node as TSNode

from codegraph_modules.models import Position

FUNCTION_TYPES = frozenset(
    {
        "function_declaration",
        "generator_function_declaration",
        "function_expression",
        "function",
        "generator_function",
        "arrow_function",
        "method_definition",
    }
)
FUNCTION_DECLARATIONS = frozenset({"function_declaration", "generator_function_declaration"})
CLASS_TYPES = frozenset({"class_declaration", "abstract_class_declaration", "class"})
BLOCK_TYPES = frozenset({"statement_block", "for_statement", "for_in_statement", "switch_body", "class_static_block"})
TYPE_DECLARATIONS = frozenset({"type_alias_declaration", "interface_declaration", "enum_declaration"})
IDENTIFIER_TYPES = frozenset({"identifier", "shorthand_property_identifier", "type_identifier"})
JSX_ELEMENT_TYPES = frozenset({"jsx_opening_element", "jsx_closing_element", "jsx_self_closing_element"})


class ScopeKind(str, Enum):
    MODULE = "module"
    FUNCTION = "function"
    CLASS = "class"
    BLOCK = "block"
    CATCH = "catch"


class BindingKind(str, Enum):
    VAR = "var"
    LET = "let"
    CONST = "const"
    FUNCTION = "function"
    CLASS = "class"
    PARAM = "param"
    IMPORT = "import"
    CATCH_PARAM = "catch_param"
    TYPE = "type"


@dataclass(eq=False)
class Binding:
    name: str
    kind: BindingKind
    position: Position
    start_byte: int
    scope: "Scope"

    def __repr__(self) -> str:
        return f"Binding({self.name!r}, {self.kind.value}, {self.position.line}:{self.position.column})"


@dataclass(eq=False)
class Scope:
    kind: ScopeKind
    node_type: str
    start_byte: int
    end_byte: int
    parent: "Scope | None" = None
    children: list["Scope"] = field(default_factory=list)
    bindings: dict[str, Binding] = field(default_factory=dict)

    def lookup(self, name: str) -> Binding | None:
        scope: Scope | None = self
        while scope is not None:
            binding = scope.bindings.get(name)
            if binding is not None:
                return binding
            scope = scope.parent
        return None

    @property
    def function_scope(self) -> "Scope":
        """Nearest enclosing function (or module) scope; target of `var` hoisting."""
        scope = self
        while scope.kind not in (ScopeKind.FUNCTION, ScopeKind.MODULE) and scope.parent is not None:
            scope = scope.parent
        return scope

    def __repr__(self) -> str:
        return f"Scope({self.kind.value}, {self.node_type}, bindings={sorted(self.bindings)})"


@dataclass(frozen=True)
class Reference:
    name: str
    position: Position
    start_byte: int
    binding: Binding | None

    @property
    def is_global(self) -> bool:
        return self.binding is None


@dataclass
class ScopeAnalysis:
    root: Scope
    references: list[Reference]

    @property
    def unresolved(self) -> list[Reference]:
        return [reference for reference in self.references if reference.is_global]

    def scopes(self) -> list[Scope]:
        """All scopes in pre-order."""
        result: list[Scope] = []
        stack = [self.root]
        while stack:
            scope = stack.pop()
            result.append(scope)
            stack.extend(reversed(scope.children))
        return result


def _key(node: TSNode) -> tuple[int, int, str]:
    return (node.start_byte, node.end_byte, node.type)


class ScopeAnalyzer:
    """Builds a ScopeAnalysis for one tree."""

    def __init__(self, source_bytes: bytes):
        self._source = source_bytes
        self._scope_by_node: dict[tuple[int, int, str], Scope] = {}
        self._declaration_sites: set[int] = set()
        self._references: list[Reference] = []

    def analyze(self, root: TSNode) -> ScopeAnalysis:
        module_scope = Scope(ScopeKind.MODULE, root.type, root.start_byte, root.end_byte)
        self._scope_by_node[_key(root)] = module_scope
        for child in root.children:
            self._declare(child, module_scope)
        self._resolve(root, module_scope)
        return ScopeAnalysis(root=module_scope, references=self._references)

    def _text(self, node: TSNode) -> str:
        return self._source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")

    def _open(self, node: TSNode, kind: ScopeKind, parent: Scope) -> Scope:
        scope = Scope(kind, node.type, node.start_byte, node.end_byte, parent=parent)
        parent.children.append(scope)
        self._scope_by_node[_key(node)] = scope
        return scope

    def _bind(self, scope: Scope, name_node: TSNode, kind: BindingKind) -> None:
        self._declaration_sites.add(name_node.start_byte)
        name = self._text(name_node)
        if name not in scope.bindings:
            position = Position.at_byte(self._source, name_node.start_point[0], name_node.start_byte)
            scope.bindings[name] = Binding(name, kind, position, name_node.start_byte, scope)

    def _bind_pattern(self, node: TSNode, scope: Scope, kind: BindingKind) -> None:
        node_type = node.type
        if node_type in ("identifier", "shorthand_property_identifier_pattern"):
            self._bind(scope, node, kind)
        elif node_type in ("required_parameter", "optional_parameter"):
            pattern = node.child_by_field_name("pattern")
            if pattern is not None:
                self._bind_pattern(pattern, scope, kind)
        elif node_type in ("assignment_pattern", "object_assignment_pattern"):
            left = node.child_by_field_name("left")
            if left is not None:
                self._bind_pattern(left, scope, kind)
        elif node_type == "pair_pattern":
            value = node.child_by_field_name("value")
            if value is not None:
                self._bind_pattern(value, scope, kind)
        elif node_type in ("object_pattern", "array_pattern", "rest_pattern", "formal_parameters"):
            for child in node.named_children:
                self._bind_pattern(child, scope, kind)

    def _declare_children(self, node: TSNode, scope: Scope) -> None:
        for child in node.children:
            self._declare(child, scope)

    def _declare(self, node: TSNode, scope: Scope) -> None:
        node_type = node.type

        if node_type in FUNCTION_TYPES:
            self._declare_function(node, scope)
        elif node_type in CLASS_TYPES:
            name = node.child_by_field_name("name")
            if name is not None and node_type != "class":
                self._bind(scope, name, BindingKind.CLASS)
            inner = self._open(node, ScopeKind.CLASS, scope)
            if name is not None and node_type == "class":
                self._bind(inner, name, BindingKind.CLASS)
            self._declare_children(node, inner)
        elif node_type in BLOCK_TYPES:
            inner = self._open(node, ScopeKind.BLOCK, scope)
            if node_type == "for_in_statement":
                self._declare_loop_variable(node, inner)
            self._declare_children(node, inner)
        elif node_type == "catch_clause":
            inner = self._open(node, ScopeKind.CATCH, scope)
            parameter = node.child_by_field_name("parameter")
            if parameter is not None:
                self._bind_pattern(parameter, inner, BindingKind.CATCH_PARAM)
            self._declare_children(node, inner)
        elif node_type in ("variable_declaration", "lexical_declaration"):
            self._declare_variables(node, scope)
        elif node_type == "import_statement":
            self._declare_imports(node, scope)
        elif node_type in TYPE_DECLARATIONS:
            name = node.child_by_field_name("name")
            if name is not None:
                self._bind(scope, name, BindingKind.TYPE)
        else:
            self._declare_children(node, scope)

    def _declare_function(self, node: TSNode, scope: Scope) -> None:
        name = node.child_by_field_name("name")
        if name is not None and node.type in FUNCTION_DECLARATIONS:
            self._bind(scope, name, BindingKind.FUNCTION)
        inner = self._open(node, ScopeKind.FUNCTION, scope)
        if name is not None and node.type not in FUNCTION_DECLARATIONS and node.type != "method_definition":
            self._bind(inner, name, BindingKind.FUNCTION)

        parameters = node.child_by_field_name("parameters")
        if parameters is not None:
            self._bind_pattern(parameters, inner, BindingKind.PARAM)
            # defaults may contain functions or classes
            self._declare_children(parameters, inner)
        parameter = node.child_by_field_name("parameter")
        if parameter is not None:
            self._bind_pattern(parameter, inner, BindingKind.PARAM)

        body = node.child_by_field_name("body")
        if body is None:
            return
        if body.type == "statement_block":
            # the body block shares the function scope
            self._scope_by_node[_key(body)] = inner
            self._declare_children(body, inner)
        else:
            self._declare(body, inner)

    def _declare_variables(self, node: TSNode, scope: Scope) -> None:
        if node.type == "variable_declaration":
            kind = BindingKind.VAR
            target = scope.function_scope
        else:
            keyword = node.children[0].type if node.children else "let"
            kind = BindingKind.CONST if keyword == "const" else BindingKind.LET
            target = scope
        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            name = declarator.child_by_field_name("name")
            if name is not None:
                self._bind_pattern(name, target, kind)
            value = declarator.child_by_field_name("value")
            if value is not None:
                self._declare(value, scope)

    def _declare_loop_variable(self, node: TSNode, scope: Scope) -> None:
        # for (const x of xs) / for (var k in obj)
        kind_node = node.child_by_field_name("kind")
        left = node.child_by_field_name("left")
        if kind_node is None or left is None:
            return
        keyword = kind_node.type
        if keyword == "var":
            self._bind_pattern(left, scope.function_scope, BindingKind.VAR)
        else:
            kind = BindingKind.CONST if keyword == "const" else BindingKind.LET
            self._bind_pattern(left, scope, kind)

    def _declare_imports(self, node: TSNode, scope: Scope) -> None:
        for child in node.named_children:
            if child.type == "import_clause":
                for clause_child in child.named_children:
                    if clause_child.type == "identifier":
                        self._bind(scope, clause_child, BindingKind.IMPORT)
                    elif clause_child.type == "namespace_import":
                        for ns_child in clause_child.named_children:
                            if ns_child.type == "identifier":
                                self._bind(scope, ns_child, BindingKind.IMPORT)
                    elif clause_child.type == "named_imports":
                        for specifier in clause_child.named_children:
                            if specifier.type != "import_specifier":
                                continue
                            name = specifier.child_by_field_name("name")
                            alias = specifier.child_by_field_name("alias")
                            if name is not None:
                                # the imported name is not a local reference
                                self._declaration_sites.add(name.start_byte)
                            local = alias if alias is not None else name
                            if local is not None:
                                self._bind(scope, local, BindingKind.IMPORT)
            elif child.type == "import_require_clause":
                for clause_child in child.named_children:
                    if clause_child.type == "identifier":
                        self._bind(scope, clause_child, BindingKind.IMPORT)
                        break

    def _resolve(self, node: TSNode, scope: Scope) -> None:
        scope = self._scope_by_node.get(_key(node), scope)
        node_type = node.type

        if node_type in IDENTIFIER_TYPES:
            if node.start_byte not in self._declaration_sites and self._is_reference(node):
                name = self._text(node)
                position = Position.at_byte(self._source, node.start_point[0], node.start_byte)
                self._references.append(Reference(name, position, node.start_byte, scope.lookup(name)))
            return

        if node_type == "export_statement" and node.child_by_field_name("source") is not None:
            # `export { a } from "./x"` names bindings of the other module
            return

        for child in node.children:
            self._resolve(child, scope)

    def _is_reference(self, node: TSNode) -> bool:
        parent = node.parent
        if parent is None:
            return True
        if parent.type in JSX_ELEMENT_TYPES:
            # <div> is an intrinsic element, <Widget> a reference
            return not self._text(node)[:1].islower()
        if parent.type == "export_specifier":
            alias = parent.child_by_field_name("alias")
            return alias is None or alias.start_byte != node.start_byte
        return parent.type not in ("import_specifier", "namespace_import", "namespace_export")
