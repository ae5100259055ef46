"""
Module Graph Layer

Traversal, queries and specifier partitioning of the resolved graph.
"""

from codegraph_modules.graph.builder import GraphBuilder, resolve_default
from codegraph_modules.graph.module_graph import (
    ModuleGraph,
    ModuleGraphOptions,
    aggregate_module_errors,
    format_module_error,
)
from codegraph_modules.graph.specifiers import EnvironmentSpecifiers, Specifiers, get_specifiers

__all__ = [
    "GraphBuilder",
    "resolve_default",
    "ModuleGraph",
    "ModuleGraphOptions",
    "format_module_error",
    "aggregate_module_errors",
    "Specifiers",
    "EnvironmentSpecifiers",
    "get_specifiers",
]
