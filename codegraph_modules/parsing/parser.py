"""
Scope-analysis parser

Parses module source with tree-sitter, captures tokens and comments, and
runs lexical scope analysis. A tree containing an error or missing node is
reported as a ModuleParseError at the first offending position.
"""

from tree_sitter import Node as TSNode

from codegraph_modules.errors import ModuleParseError, UnsupportedMediaTypeError
from codegraph_modules.media_type import MediaType
from codegraph_modules.models import Position
from codegraph_modules.parsing.parsed_source import Comment, ParsedSource, Token
from codegraph_modules.parsing.parser_registry import ParserRegistry, get_registry
from codegraph_modules.parsing.scope import ScopeAnalyzer
from codegraph_modules.specifier import ModuleSpecifier


class ScopeAnalysisParser:
    """Parser with token capture and scope analysis enabled."""

    def __init__(self, registry: ParserRegistry | None = None):
        self._registry = registry or get_registry()

    def parse_module(self, specifier: ModuleSpecifier, source: str, media_type: MediaType) -> ParsedSource:
        """
        Parse one module.

        Raises:
            UnsupportedMediaTypeError: If the media type is not JavaScript or TypeScript
            ModuleParseError: If the source contains a syntax error
        """
        parser = self._registry.get_parser_for(media_type)
        if parser is None:
            raise UnsupportedMediaTypeError(
                f"Expected a JavaScript or TypeScript module, but identified a {media_type.value} module. "
                f"Importing these types of modules is currently not supported.",
                specifier=specifier,
            )

        source_bytes = source.encode("utf-8")
        tree = parser.parse(source_bytes)
        if tree.root_node.has_error:
            raise self._syntax_error(specifier, source_bytes, tree.root_node)

        parsed = ParsedSource(
            specifier=specifier,
            media_type=media_type,
            text=source,
            source_bytes=source_bytes,
            tree=tree,
        )
        self._capture_tokens(parsed)
        parsed.scope_analysis = ScopeAnalyzer(source_bytes).analyze(tree.root_node)
        return parsed

    @staticmethod
    def _capture_tokens(parsed: ParsedSource) -> None:
        stack = [parsed.root]
        while stack:
            node = stack.pop()
            if node.type == "comment":
                parsed.comments.append(
                    Comment(
                        text=parsed.get_text(node),
                        start=Position.at_byte(parsed.source_bytes, node.start_point[0], node.start_byte),
                        end=Position.at_byte(parsed.source_bytes, node.end_point[0], node.end_byte),
                        start_byte=node.start_byte,
                        end_byte=node.end_byte,
                    )
                )
                continue
            if node.child_count == 0:
                if node.end_byte > node.start_byte:
                    parsed.tokens.append(
                        Token(
                            kind=node.type,
                            text=parsed.get_text(node),
                            start=Position.at_byte(parsed.source_bytes, node.start_point[0], node.start_byte),
                            end=Position.at_byte(parsed.source_bytes, node.end_point[0], node.end_byte),
                            start_byte=node.start_byte,
                            end_byte=node.end_byte,
                        )
                    )
                continue
            stack.extend(reversed(node.children))

    @staticmethod
    def _syntax_error(specifier: ModuleSpecifier, source_bytes: bytes, root: TSNode) -> ModuleParseError:
        offending = root
        stack = [root]
        while stack:
            node = stack.pop()
            if node.is_missing or node.type == "ERROR":
                offending = node
                break
            if node.has_error:
                stack.extend(reversed(node.children))

        position = Position.at_byte(source_bytes, offending.start_point[0], offending.start_byte)
        line, column = position.line, position.column
        if offending.is_missing:
            message = f"Expected '{offending.type}'"
        else:
            snippet = source_bytes[offending.start_byte : offending.end_byte].decode("utf-8", errors="replace")
            snippet = snippet.strip().splitlines()[0][:40] if snippet.strip() else ""
            message = f"Unexpected token `{snippet}`" if snippet else "Unexpected token"
        return ModuleParseError(
            f"The module's source code could not be parsed: {message} at {specifier}:{line + 1}:{column + 1}",
            specifier=specifier,
            details={"line": line + 1, "column": column + 1},
        )
