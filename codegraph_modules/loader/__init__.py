"""
Loaders

Components:
- ports: Loader and SpecifierMapper protocols
- source_loader: adapter applying specifier mappings before delegating
- default_loader: file/http(s)/data loader
- memory_loader: dict-backed loader
- specifier_mappers: CDN URL → npm package mappers
"""

from codegraph_modules.loader.default_loader import DefaultLoader
from codegraph_modules.loader.memory_loader import InMemoryLoader
from codegraph_modules.loader.ports import Loader, SpecifierMapper
from codegraph_modules.loader.source_loader import LoaderSpecifiers, SourceLoader
from codegraph_modules.loader.specifier_mappers import CdnSpecifierMapper, default_specifier_mappers

__all__ = [
    "Loader",
    "SpecifierMapper",
    "SourceLoader",
    "LoaderSpecifiers",
    "DefaultLoader",
    "InMemoryLoader",
    "CdnSpecifierMapper",
    "default_specifier_mappers",
]
