"""
Parsing Layer

Tree-sitter based parsing of JavaScript/TypeScript modules.

Components:
- parser_registry: Language parser management
- parser: Scope-analysis parser (tokens, comments, lexical scopes)
- parsed_source: Parsed module representation
- scope: Scope tree, bindings and references
- dependencies: Dependency descriptor extraction
- analyzer: Parse-once cache keyed by specifier
"""

from codegraph_modules.parsing.analyzer import CapturingModuleAnalyzer
from codegraph_modules.parsing.dependencies import analyze_dependencies
from codegraph_modules.parsing.parsed_source import Comment, ParsedSource, Token
from codegraph_modules.parsing.parser import ScopeAnalysisParser
from codegraph_modules.parsing.parser_registry import ParserRegistry, get_registry
from codegraph_modules.parsing.scope import Binding, BindingKind, Reference, Scope, ScopeAnalysis, ScopeKind

__all__ = [
    "ParserRegistry",
    "get_registry",
    "ScopeAnalysisParser",
    "ParsedSource",
    "Token",
    "Comment",
    "Scope",
    "ScopeKind",
    "ScopeAnalysis",
    "Binding",
    "BindingKind",
    "Reference",
    "analyze_dependencies",
    "CapturingModuleAnalyzer",
]
