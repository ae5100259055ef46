"""
Capturing module analyzer

Parses each module at most once per canonical specifier and keeps the
ParsedSource for later consumers. The cache lives as long as the graph it
was built for.
"""

from codegraph_modules.media_type import MediaType
from codegraph_modules.models import DependencyDescriptor
from codegraph_modules.observability import get_logger
from codegraph_modules.parsing.dependencies import analyze_dependencies
from codegraph_modules.parsing.parsed_source import ParsedSource
from codegraph_modules.parsing.parser import ScopeAnalysisParser
from codegraph_modules.specifier import ModuleSpecifier

logger = get_logger(__name__)


class CapturingModuleAnalyzer:
    """Module analyzer remembering the parsed source of every analyzed module."""

    def __init__(self, parser: ScopeAnalysisParser | None = None):
        self._parser = parser or ScopeAnalysisParser()
        self._parsed_sources: dict[ModuleSpecifier, ParsedSource] = {}
        self._dependencies: dict[ModuleSpecifier, list[DependencyDescriptor]] = {}

    def parse(self, specifier: ModuleSpecifier, source: str, media_type: MediaType) -> ParsedSource:
        """
        Parsed source for a specifier, parsing only on the first request.

        Raises:
            ModuleParseError: If the source contains a syntax error
            UnsupportedMediaTypeError: If the media type is not code
        """
        parsed = self._parsed_sources.get(specifier)
        if parsed is None:
            parsed = self._parser.parse_module(specifier, source, media_type)
            self._parsed_sources[specifier] = parsed
            logger.debug("module_parsed", specifier=specifier, media_type=media_type.value, tokens=len(parsed.tokens))
        return parsed

    def analyze(self, specifier: ModuleSpecifier, source: str, media_type: MediaType) -> list[DependencyDescriptor]:
        """Dependency descriptors of a module (parsing it if needed)."""
        dependencies = self._dependencies.get(specifier)
        if dependencies is None:
            dependencies = analyze_dependencies(self.parse(specifier, source, media_type))
            self._dependencies[specifier] = dependencies
        return dependencies

    def get_parsed_source(self, specifier: ModuleSpecifier) -> ParsedSource | None:
        return self._parsed_sources.get(specifier)

    def __contains__(self, specifier: ModuleSpecifier) -> bool:
        return specifier in self._parsed_sources

    def __len__(self) -> int:
        return len(self._parsed_sources)
