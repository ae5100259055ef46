"""
Module Graph Tests

Graph builds over InMemoryLoader: traversal, redirects, import maps,
specifier mappings, aggregated errors and post-build queries.
"""

import asyncio

import pytest

from codegraph_modules.errors import (
    ImportMapLoadError,
    ModuleFetchError,
    ModuleGraphBug,
    ModuleGraphBuildError,
    ModuleGraphError,
    ModuleMissingError,
    ModuleParseError,
    ModuleResolutionError,
    RedirectCycleError,
    TooManyRedirectsError,
    UnsupportedMediaTypeError,
    UnusedModuleMappingError,
    UnusedPackageMappingError,
)
from codegraph_modules.graph.module_graph import ModuleGraph, ModuleGraphOptions
from codegraph_modules.loader.memory_loader import InMemoryLoader
from codegraph_modules.models import (
    CacheSetting,
    DependencyKind,
    ExternalModule,
    JsModule,
    JsonModule,
    ModuleMapping,
    ModuleResponse,
    PackageMapping,
)


async def build(loader, settings, entry_points, **options):
    options.setdefault("specifier_mappers", [])
    return await ModuleGraph.build_with_specifiers(
        ModuleGraphOptions(entry_points=entry_points, loader=loader, settings=settings, **options)
    )


async def build_error(loader, settings, entry_points, **options) -> ModuleGraphBuildError:
    with pytest.raises(ModuleGraphBuildError) as exc_info:
        await build(loader, settings, entry_points, **options)
    return exc_info.value


class FinalSpecifierLoader:
    """Loader Fake answering every request with content found elsewhere."""

    def __init__(self, final: str, text: str):
        self.final = final
        self.text = text

    async def load(self, specifier, cache_setting=CacheSetting.USE, checksum=None):
        return ModuleResponse(specifier=self.final, content=self.text.encode())


class DelayingLoader:
    """Loader Fake holding back chosen specifiers before answering."""

    def __init__(self, loader: InMemoryLoader, delays: dict[str, float]):
        self.loader = loader
        self.delays = delays

    async def load(self, specifier, cache_setting=CacheSetting.USE, checksum=None):
        await asyncio.sleep(self.delays.get(specifier, 0))
        return await self.loader.load(specifier, cache_setting, checksum)


class ExplodingLoader:
    """Loader Fake raising a non-graph exception."""

    async def load(self, specifier, cache_setting=CacheSetting.USE, checksum=None):
        raise RuntimeError(f"disk on fire while reading {specifier}")


# ============================================================
# Traversal
# ============================================================


class TestTraversal:
    """Test reachability-driven traversal."""

    @pytest.mark.asyncio
    async def test_builds_reachable_modules(self, loader, settings):
        loader.add(
            "file:///main.ts",
            'import { u } from "./util.ts";\nimport data from "./data.json" with { type: "json" };\nexport const x = u;\n',
        )
        loader.add("file:///util.ts", "export const u = 1;\n")
        loader.add("file:///data.json", '{"a": 1}')
        loader.add("file:///unreachable.ts", "export {};\n")

        graph, specifiers = await build(loader, settings, ["file:///main.ts"])

        assert [module.specifier for module in graph.all_modules()] == [
            "file:///data.json",
            "file:///main.ts",
            "file:///util.ts",
        ]
        main = graph.get("file:///main.ts")
        assert isinstance(main, JsModule)
        assert list(main.dependencies) == ["./util.ts", "./data.json"]
        assert main.dependencies["./util.ts"].maybe_specifier == "file:///util.ts"
        assert main.dependencies["./data.json"].attribute_type == "json"
        assert isinstance(graph.get("file:///data.json"), JsonModule)
        assert specifiers.local == ["file:///data.json", "file:///main.ts", "file:///util.ts"]
        assert specifiers.remote == []
        assert loader.requested("file:///unreachable.ts") == 0

    @pytest.mark.asyncio
    async def test_each_module_is_loaded_once(self, loader, settings):
        loader.add("file:///main.ts", 'import "./a.ts";\nimport "./b.ts";\n')
        loader.add("file:///a.ts", 'import "./c.ts";\n')
        loader.add("file:///b.ts", 'import "./c.ts";\n')
        loader.add("file:///c.ts", 'import "./main.ts";\n')

        graph, _ = await build(loader, settings, ["file:///main.ts"])

        assert len(graph) == 4
        assert all(loader.requested(specifier) == 1 for specifier in ("file:///a.ts", "file:///b.ts", "file:///c.ts"))
        assert loader.requested("file:///main.ts") == 1

    @pytest.mark.asyncio
    async def test_dependency_kinds(self, loader, settings):
        loader.add(
            "file:///main.ts",
            '/// <reference types="./types.d.ts" />\n'
            'export * from "./reexport.ts";\n'
            'const lazy = () => import("./lazy.ts");\n',
        )
        loader.add("file:///types.d.ts", "declare const x: number;\n")
        loader.add("file:///reexport.ts", "export const r = 1;\n")
        loader.add("file:///lazy.ts", "export default 1;\n")

        graph, _ = await build(loader, settings, ["file:///main.ts"])

        dependencies = graph.get("file:///main.ts").dependencies
        assert dependencies["./types.d.ts"].kind == DependencyKind.REFERENCE
        assert dependencies["./reexport.ts"].kind == DependencyKind.EXPORT
        assert dependencies["./lazy.ts"].is_dynamic
        assert "file:///lazy.ts" in graph

    @pytest.mark.asyncio
    async def test_builtin_specifiers_are_not_fetched(self, loader, settings):
        loader.add("file:///main.ts", 'import fs from "node:fs";\n')

        graph, _ = await build(loader, settings, ["file:///main.ts"])

        assert loader.requested("node:fs") == 0
        assert graph.get("file:///main.ts").dependencies["node:fs"].maybe_specifier == "node:fs"
        assert "node:fs" not in graph

    @pytest.mark.asyncio
    async def test_default_loader_is_owned_by_the_build(self, settings, tmp_path):
        (tmp_path / "main.ts").write_text('import { u } from "./util.ts";\n')
        (tmp_path / "util.ts").write_text("export const u = 1;\n")
        main = (tmp_path / "main.ts").as_uri()

        graph, specifiers = await build(None, settings, [main])

        assert graph.resolve(main) == main
        assert len(specifiers.local) == 2


# ============================================================
# Redirects
# ============================================================


class TestRedirects:
    """Test redirect recording and flattening."""

    @pytest.mark.asyncio
    async def test_redirect_chain_is_flattened(self, loader, settings):
        loader.add("file:///main.ts", 'import "https://example.com/a.ts";\n')
        loader.add_redirect("https://example.com/a.ts", "https://example.com/b.ts")
        loader.add_redirect("https://example.com/b.ts", "https://example.com/c.ts")
        loader.add("https://example.com/c.ts", "export {};\n")

        graph, specifiers = await build(loader, settings, ["file:///main.ts"])

        assert graph.resolve("https://example.com/a.ts") == "https://example.com/c.ts"
        assert graph.redirects() == {
            "https://example.com/a.ts": "https://example.com/b.ts",
            "https://example.com/b.ts": "https://example.com/c.ts",
        }
        for specifier in ("https://example.com/a.ts", "https://example.com/b.ts", "https://example.com/c.ts"):
            assert loader.requested(specifier) == 1
        assert specifiers.remote == ["https://example.com/c.ts"]

    @pytest.mark.asyncio
    async def test_resolve_is_idempotent(self, loader, settings):
        loader.add("file:///main.ts", 'import "https://example.com/a.ts";\nimport "./b.ts";\n')
        loader.add_redirect("https://example.com/a.ts", "https://example.com/c.ts")
        loader.add("https://example.com/c.ts", "export {};\n")
        loader.add("file:///b.ts", "export {};\n")

        graph, _ = await build(loader, settings, ["file:///main.ts"])

        specifiers = [*graph.redirects(), *(module.specifier for module in graph.all_modules())]
        for specifier in specifiers:
            canonical = graph.resolve(specifier)
            assert graph.resolve(specifier) == canonical
            assert graph.resolve(canonical) == canonical

    @pytest.mark.asyncio
    async def test_too_many_redirects(self, loader, settings):
        loader.add("file:///main.ts", 'import "https://example.com/0.ts";\n')
        for hop in range(8):
            loader.add_redirect(f"https://example.com/{hop}.ts", f"https://example.com/{hop + 1}.ts")

        error = await build_error(loader, settings, ["file:///main.ts"])

        [cause] = error.errors
        assert isinstance(cause, TooManyRedirectsError)
        assert isinstance(cause, ModuleFetchError)
        assert "at file:///main.ts:1:8" in error.message

    @pytest.mark.asyncio
    async def test_loader_reported_final_specifier(self, settings):
        loader = FinalSpecifierLoader("file:///final.ts", "export {};\n")

        graph, _ = await build(loader, settings, ["file:///start.ts"])

        assert graph.resolve("file:///start.ts") == "file:///final.ts"
        assert graph.redirects() == {"file:///start.ts": "file:///final.ts"}
        assert isinstance(graph.get("file:///final.ts"), JsModule)

    @pytest.mark.asyncio
    async def test_redirect_cycle_fails_the_build(self, loader, settings):
        loader.add_redirect("https://x.example/a.ts", "https://x.example/b.ts")
        loader.add_redirect("https://x.example/b.ts", "https://x.example/a.ts")

        error = await build_error(loader, settings, ["https://x.example/a.ts"])

        [cause] = error.errors
        assert isinstance(cause, RedirectCycleError)
        assert error.message == (
            'Redirect cycle while loading "https://x.example/b.ts": '
            "https://x.example/b.ts -> https://x.example/a.ts -> https://x.example/b.ts."
        )
        assert loader.requested("https://x.example/a.ts") == 1
        assert loader.requested("https://x.example/b.ts") == 1

    @pytest.mark.asyncio
    async def test_self_redirect_fails_the_build(self, loader, settings):
        loader.add("file:///main.ts", 'import "https://x.example/a.ts";\n')
        loader.add_redirect("https://x.example/a.ts", "https://x.example/a.ts")

        error = await build_error(loader, settings, ["file:///main.ts"])

        [cause] = error.errors
        assert isinstance(cause, RedirectCycleError)
        assert str(cause.maybe_referrer) == "file:///main.ts:1:8"


# ============================================================
# Import maps
# ============================================================


class TestImportMap:
    """Test resolution through an import map."""

    @pytest.mark.asyncio
    async def test_bare_specifier_resolves_relative_to_the_map(self, loader, settings):
        loader.add("file:///project/import_map.json", '{ "imports": { "shared": "./shared.ts" } }')
        loader.add("file:///project/src/main.ts", 'import { s } from "shared";\nimport "./local.ts";\n')
        loader.add("file:///project/src/local.ts", "export {};\n")
        loader.add("file:///project/shared.ts", "export const s = 1;\n")

        graph, _ = await build(
            loader,
            settings,
            ["file:///project/src/main.ts"],
            import_map="file:///project/import_map.json",
        )

        dependencies = graph.get("file:///project/src/main.ts").dependencies
        assert dependencies["shared"].maybe_specifier == "file:///project/shared.ts"
        assert dependencies["./local.ts"].maybe_specifier == "file:///project/src/local.ts"
        assert "file:///project/shared.ts" in graph
        assert loader.requested("file:///project/src/shared.ts") == 0

    @pytest.mark.asyncio
    async def test_invalid_import_map_aborts_before_traversal(self, loader, settings):
        loader.add("file:///main.ts", "export {};\n")

        with pytest.raises(ImportMapLoadError, match="Error loading import map"):
            await build(loader, settings, ["file:///main.ts"], import_map="file:///missing.json")

        assert loader.requested("file:///main.ts") == 0

    @pytest.mark.asyncio
    async def test_unmapped_bare_specifier(self, loader, settings):
        loader.add("file:///import_map.json", "{}")
        loader.add("file:///main.ts", 'import "lodash";\n')

        error = await build_error(loader, settings, ["file:///main.ts"], import_map="file:///import_map.json")

        [cause] = error.errors
        assert isinstance(cause, ModuleResolutionError)
        assert "not in import map" in error.message


# ============================================================
# Aggregated errors
# ============================================================


class TestAggregatedErrors:
    """Test that every problem is collected into one report."""

    @pytest.mark.asyncio
    async def test_bad_fetch_names_specifier_and_referrer(self, loader, settings):
        loader.add(
            "file:///main.ts",
            'import { u } from "./util.ts";\nimport { x } from "https://bad.example/x.ts";\n',
        )
        loader.add("file:///util.ts", "export const u = 1;\n")
        loader.add_failure("https://bad.example/x.ts", "error sending request: dns error")

        error = await build_error(loader, settings, ["file:///main.ts"])

        assert error.message == "error sending request: dns error\n    at file:///main.ts:2:19 (https://bad.example/x.ts)"
        [cause] = error.errors
        assert cause.specifier == "https://bad.example/x.ts"
        assert str(cause.maybe_referrer) == "file:///main.ts:2:19"

    @pytest.mark.asyncio
    async def test_errors_are_sorted_by_specifier(self, settings):
        def make_loader(first: str, second: str) -> InMemoryLoader:
            return (
                InMemoryLoader()
                .add("file:///main.ts", f'import "{first}";\nimport "{second}";\n')
                .add("file:///a.ts", 'import x from "zzz";\n')
                .add("file:///b.ts", 'import x from "aaa";\n')
            )

        forward = await build_error(make_loader("./a.ts", "./b.ts"), settings, ["file:///main.ts"])
        backward = await build_error(make_loader("./b.ts", "./a.ts"), settings, ["file:///main.ts"])

        assert forward.message == backward.message
        assert forward.message == (
            'Relative import path "aaa" not prefixed with / or ./ or ../\n    at file:///b.ts:1:15'
            "\n\n"
            'Relative import path "zzz" not prefixed with / or ./ or ../\n    at file:///a.ts:1:15'
        )
        assert all(isinstance(cause, ModuleResolutionError) for cause in forward.errors)

    @pytest.mark.asyncio
    async def test_missing_module(self, loader, settings):
        loader.add("file:///main.ts", 'import "./nope.ts";\n')

        error = await build_error(loader, settings, ["file:///main.ts"])

        assert error.message == 'Module not found "file:///nope.ts".\n    at file:///main.ts:1:8'
        assert isinstance(error.errors[0], ModuleMissingError)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("delayed", ["file:///a.ts", "file:///b.ts"])
    async def test_referrer_does_not_depend_on_load_order(self, settings, delayed):
        memory = (
            InMemoryLoader()
            .add("file:///main.ts", 'import "./a.ts";\nimport "./b.ts";\n')
            .add("file:///a.ts", 'export const a = 1;\nimport "./missing.ts";\n')
            .add("file:///b.ts", 'import "./missing.ts";\n')
        )
        loader = DelayingLoader(memory, {delayed: 0.05})

        error = await build_error(loader, settings, ["file:///main.ts"])

        assert error.message == 'Module not found "file:///missing.ts".\n    at file:///a.ts:2:8'

    @pytest.mark.asyncio
    async def test_missing_entry_point_has_no_referrer(self, loader, settings):
        error = await build_error(loader, settings, ["file:///main.ts"])

        assert error.message == 'Module not found "file:///main.ts".'

    @pytest.mark.asyncio
    async def test_parse_and_media_type_errors(self, loader, settings):
        loader.add("file:///main.ts", 'import "./broken.ts";\nimport "./image.png";\n')
        loader.add("file:///broken.ts", "export const = ;\n")
        loader.add("file:///image.png", "not really a png")

        error = await build_error(loader, settings, ["file:///main.ts"])

        kinds = {type(cause) for cause in error.errors}
        assert kinds == {ModuleParseError, UnsupportedMediaTypeError}
        assert error.message.index("file:///broken.ts") < error.message.index("file:///image.png")

    @pytest.mark.asyncio
    async def test_foreign_loader_exceptions_are_wrapped(self, settings):
        error = await build_error(ExplodingLoader(), settings, ["file:///main.ts"])

        [cause] = error.errors
        assert isinstance(cause, ModuleFetchError)
        assert isinstance(cause.__cause__, RuntimeError)
        assert error.message == "disk on fire while reading file:///main.ts"


# ============================================================
# Specifier mappings
# ============================================================


class TestSpecifierMappings:
    """Test module and package mappings and their completeness checks."""

    @pytest.mark.asyncio
    async def test_module_mapping(self, loader, settings):
        loader.add("file:///main.ts", 'import { foo } from "https://deno.land/x/foo/mod.ts";\n')
        loader.add("file:///foo.ts", "export const foo = 1;\n")

        graph, specifiers = await build(
            loader,
            settings,
            ["file:///main.ts"],
            specifier_mappings={"https://deno.land/x/foo/mod.ts": ModuleMapping("file:///foo.ts")},
        )

        assert graph.resolve("https://deno.land/x/foo/mod.ts") == "file:///foo.ts"
        assert specifiers.mapped_modules == {"https://deno.land/x/foo/mod.ts": "file:///foo.ts"}
        assert loader.requested("https://deno.land/x/foo/mod.ts") == 0
        assert specifiers.remote == []

    @pytest.mark.asyncio
    async def test_unused_module_mapping(self, loader, settings):
        loader.add("file:///main.ts", "export {};\n")

        with pytest.raises(UnusedModuleMappingError) as exc_info:
            await build(
                loader,
                settings,
                ["file:///main.ts"],
                specifier_mappings={
                    "https://example.com/never.ts": ModuleMapping("file:///other.ts"),
                    "https://example.com/also_never.ts": ModuleMapping("file:///other.ts"),
                },
            )

        assert exc_info.value.specifiers == ["https://example.com/also_never.ts", "https://example.com/never.ts"]
        assert str(exc_info.value) == (
            "The following specifiers were indicated to be mapped to a module, but were not found:\n"
            "  * https://example.com/also_never.ts\n"
            "  * https://example.com/never.ts"
        )

    @pytest.mark.asyncio
    async def test_package_mapping_partition(self, loader, settings):
        loader.add("file:///main.ts", 'import { pkg } from "https://deno.land/x/pkg/mod.ts";\n')
        loader.add("file:///test.ts", 'import "./main.ts";\nimport { assert } from "https://deno.land/x/testing/mod.ts";\n')
        pkg = PackageMapping(name="pkg", version="1.0.0")
        testing = PackageMapping(name="testing-lib", version="2.0.0")

        graph, specifiers = await build(
            loader,
            settings,
            ["file:///main.ts"],
            test_entry_points=["file:///test.ts"],
            specifier_mappings={
                "https://deno.land/x/pkg/mod.ts": pkg,
                "https://deno.land/x/testing/mod.ts": testing,
            },
        )

        assert specifiers.main.mapped == {"https://deno.land/x/pkg/mod.ts": pkg}
        assert specifiers.test.mapped == {"https://deno.land/x/testing/mod.ts": testing}
        assert specifiers.has_mapped("https://deno.land/x/pkg/mod.ts")
        assert "https://deno.land/x/pkg/mod.ts" not in specifiers.local + specifiers.remote
        assert isinstance(graph.get("https://deno.land/x/pkg/mod.ts"), ExternalModule)
        assert specifiers.test_modules == {"file:///test.ts"}
        assert loader.requested("https://deno.land/x/pkg/mod.ts") == 0

    @pytest.mark.asyncio
    async def test_unused_package_mapping(self, loader, settings):
        loader.add("file:///main.ts", "export {};\n")

        with pytest.raises(UnusedPackageMappingError) as exc_info:
            await build(
                loader,
                settings,
                ["file:///main.ts"],
                specifier_mappings={"https://deno.land/x/pkg/mod.ts": PackageMapping(name="pkg")},
            )

        assert "indicated to be mapped to a package" in str(exc_info.value)
        assert exc_info.value.specifiers == ["https://deno.land/x/pkg/mod.ts"]

    @pytest.mark.asyncio
    async def test_default_cdn_mappers(self, loader, settings):
        loader.add("file:///main.ts", 'import { h } from "https://esm.sh/preact@10.5.0";\n')

        _, specifiers = await build(loader, settings, ["file:///main.ts"], specifier_mappers=None)

        assert specifiers.main.mapped == {"https://esm.sh/preact@10.5.0": PackageMapping("preact", "10.5.0")}
        assert loader.requested("https://esm.sh/preact@10.5.0") == 0


# ============================================================
# Queries
# ============================================================


class TestQueries:
    """Test the read-only queries of a built graph."""

    @pytest.fixture
    def redirecting_loader(self, loader) -> InMemoryLoader:
        loader.add(
            "file:///src/main.ts",
            'import "https://example.com/a.ts";\nimport fs from "node:fs";\nimport data from "./data.json" with { type: "json" };\n',
        )
        loader.add_redirect("https://example.com/a.ts", "https://example.com/c.ts")
        loader.add("https://example.com/c.ts", "export {};\n")
        loader.add("file:///src/data.json", "{}")
        return loader

    @pytest.mark.asyncio
    async def test_parsed_source_is_cached(self, redirecting_loader, settings):
        graph, _ = await build(redirecting_loader, settings, ["file:///src/main.ts"])

        first = graph.get_parsed_source("file:///src/main.ts")
        second = graph.get_parsed_source("file:///src/main.ts")

        assert first is second
        assert graph.get_parsed_source("https://example.com/a.ts") is graph.get_parsed_source("https://example.com/c.ts")

    @pytest.mark.asyncio
    async def test_lookups_of_unknown_specifiers_are_bugs(self, redirecting_loader, settings):
        graph, _ = await build(redirecting_loader, settings, ["file:///src/main.ts"])

        with pytest.raises(ModuleGraphBug, match="Did not find specifier: file:///nope.ts"):
            graph.get("file:///nope.ts")
        with pytest.raises(ModuleGraphBug, match="parsed source"):
            graph.get_parsed_source("file:///src/data.json")
        assert not issubclass(ModuleGraphBug, ModuleGraphError)

    @pytest.mark.asyncio
    async def test_resolve_dependency(self, redirecting_loader, settings):
        graph, _ = await build(redirecting_loader, settings, ["file:///src/main.ts"])
        referrer = "file:///src/main.ts"

        # recorded dependency, flattened through the redirect
        assert graph.resolve_dependency("https://example.com/a.ts", referrer) == "https://example.com/c.ts"
        # builtin targets are dropped
        assert graph.resolve_dependency("node:fs", referrer) is None
        # fallbacks for text the module never imported
        assert graph.resolve_dependency("HTTPS://Other.example/x.ts", referrer) == "https://other.example/x.ts"
        assert graph.resolve_dependency("./other.ts", referrer) == "file:///src/other.ts"
        assert graph.resolve_dependency("../lib/x.ts", referrer) == "file:///lib/x.ts"
        assert graph.resolve_dependency("lodash", referrer) is None

    @pytest.mark.asyncio
    async def test_walk(self, redirecting_loader, settings):
        graph, _ = await build(redirecting_loader, settings, ["file:///src/main.ts"])

        assert list(graph.walk(["file:///src/main.ts"])) == [
            "file:///src/main.ts",
            "https://example.com/c.ts",
            "file:///src/data.json",
        ]
