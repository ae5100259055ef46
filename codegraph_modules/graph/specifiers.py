"""
Specifiers Collector

Partitions the specifiers of a built graph into local and remote modules,
test-only modules, and package/module mappings split by the environment
(main or test entry points) that reached them.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from codegraph_modules.loader.source_loader import LoaderSpecifiers
from codegraph_modules.models import ExternalModule, Module, PackageMapping
from codegraph_modules.specifier import ModuleSpecifier, specifier_scheme

if TYPE_CHECKING:
    from codegraph_modules.graph.module_graph import ModuleGraph


@dataclass
class EnvironmentSpecifiers:
    mapped: dict[ModuleSpecifier, PackageMapping] = field(default_factory=dict)

    def has_mapped(self, specifier: ModuleSpecifier) -> bool:
        return specifier in self.mapped


@dataclass
class Specifiers:
    """
    Partition of the specifiers of one build.

    Attributes:
        local: `file:` modules, sorted
        remote: Other fetched modules, sorted
        mapped_modules: Specifier → module it was substituted with
        main: Package mappings reached from the main entry points
        test: Package mappings only reached from test entry points
        test_modules: Fetched modules only reached from test entry points
    """

    local: list[ModuleSpecifier] = field(default_factory=list)
    remote: list[ModuleSpecifier] = field(default_factory=list)
    mapped_modules: dict[ModuleSpecifier, ModuleSpecifier] = field(default_factory=dict)
    main: EnvironmentSpecifiers = field(default_factory=EnvironmentSpecifiers)
    test: EnvironmentSpecifiers = field(default_factory=EnvironmentSpecifiers)
    test_modules: set[ModuleSpecifier] = field(default_factory=set)

    def has_mapped(self, specifier: ModuleSpecifier) -> bool:
        return self.main.has_mapped(specifier) or self.test.has_mapped(specifier)


def get_specifiers(
    entry_points: list[ModuleSpecifier],
    loader_specifiers: LoaderSpecifiers,
    graph: "ModuleGraph",
    modules: Iterable[Module],
) -> Specifiers:
    """Partition modules by kind and by the entry points that reach them."""
    specifiers = Specifiers(mapped_modules=dict(loader_specifiers.mapped_modules))
    main_specifiers = set(graph.walk(entry_points))

    for module in modules:
        if isinstance(module, ExternalModule):
            continue
        if specifier_scheme(module.specifier) == "file":
            specifiers.local.append(module.specifier)
        else:
            specifiers.remote.append(module.specifier)
        if module.specifier not in main_specifiers:
            specifiers.test_modules.add(module.specifier)

    for specifier, mapping in loader_specifiers.mapped_packages.items():
        if graph.resolve(specifier) in main_specifiers:
            specifiers.main.mapped[specifier] = mapping
        else:
            specifiers.test.mapped[specifier] = mapping

    specifiers.local.sort()
    specifiers.remote.sort()
    return specifiers
