"""
Global test configuration and fixtures
"""

import time

import pytest

from codegraph_modules.config import ModuleGraphSettings
from codegraph_modules.loader.memory_loader import InMemoryLoader
from codegraph_modules.parsing.parser import ScopeAnalysisParser

# Slow test threshold (seconds)
SLOW_TEST_THRESHOLD = 5.0


@pytest.fixture(autouse=True)
def track_test_duration(request):
    """Warn about slow tests"""
    start_time = time.time()

    yield

    duration = time.time() - start_time
    if duration > SLOW_TEST_THRESHOLD:
        print(f"\nSLOW TEST ({duration:.2f}s): {request.node.nodeid}")


@pytest.fixture
def settings() -> ModuleGraphSettings:
    """Settings independent of the environment"""
    return ModuleGraphSettings(
        _env_file=None,
        max_concurrent_loads=4,
        max_redirects=5,
        surface_import_map_diagnostics=True,
    )


@pytest.fixture
def loader() -> InMemoryLoader:
    return InMemoryLoader()


@pytest.fixture(scope="session")
def parser() -> ScopeAnalysisParser:
    return ScopeAnalysisParser()


# Pytest hooks
def pytest_configure(config):
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Graph builds over in-memory or local loaders")


def pytest_collection_modifyitems(config, items):
    """Mark graph build tests as integration tests, everything else as unit tests"""
    for item in items:
        if "test_graph" in str(item.fspath) or "test_default_loader" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
