import os

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run tests marked as integration (live Firecrawl API, needs FIRECRAWL_API_KEY).",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "integration: tests that call external services (e.g., the Firecrawl API)"
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-integration") and os.getenv("FIRECRAWL_API_KEY"):
        return

    skip_integration = pytest.mark.skip(
        reason="integration test (use --run-integration with FIRECRAWL_API_KEY set)"
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)
