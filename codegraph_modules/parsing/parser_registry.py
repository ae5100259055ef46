"""
Parser Registry for Tree-sitter

Manages the JavaScript/TypeScript parsers and maps media types to them.
"""

try:
    from tree_sitter import Parser
    from tree_sitter_language_pack import get_language
except ImportError as e:
    raise ImportError(
        "tree-sitter-language-pack is required. " "Install with: pip install tree-sitter tree-sitter-language-pack"
    ) from e

from codegraph_modules.media_type import MediaType
from codegraph_modules.observability import get_logger

logger = get_logger(__name__)


class ParserRegistry:
    """
    Registry for language parsers.

    Supports:
    - TypeScript (ts, mts, cts, d.ts)
    - TSX
    - JavaScript (js, jsx, mjs, cjs)
    """

    def __init__(self):
        self._parsers: dict[str, Parser] = {}
        self._languages: dict[str, object] = {}
        self._setup_languages()

    def _register_language(self, name: str) -> None:
        try:
            self._languages[name] = get_language(name)
            logger.debug("parser_language_loaded", language=name)
        except Exception as e:
            logger.warning("parser_language_unavailable", language=name, error=str(e))

    def _setup_languages(self):
        """Setup Tree-sitter languages"""
        self._register_language("typescript")
        self._register_language("tsx")
        self._register_language("javascript")

    def get_parser(self, language: str) -> Parser | None:
        """
        Get parser for the specified language.

        Args:
            language: Language name (typescript, tsx, javascript)

        Returns:
            Parser instance or None if language not supported
        """
        language = language.lower()

        if language in self._parsers:
            return self._parsers[language]

        lang = self._languages.get(language)
        if not lang:
            return None

        parser = Parser(lang)
        self._parsers[language] = parser
        return parser

    def get_parser_for(self, media_type: MediaType) -> Parser | None:
        """Parser for a media type, or None when the media type is not code"""
        if media_type.language is None:
            return None
        return self.get_parser(media_type.language)


# Global registry instance
_registry: ParserRegistry | None = None


def get_registry() -> ParserRegistry:
    """Get global parser registry instance"""
    global _registry
    if _registry is None:
        _registry = ParserRegistry()
    return _registry
