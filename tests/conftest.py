# === NAVMAP v1 ===
# {
#   "module": "tests.conftest",
#   "purpose": "Shared pytest configuration for suite",
#   "sections": [
#     {
#       "id": "pytest-addoption",
#       "name": "pytest_addoption",
#       "anchor": "function-pytest-addoption",
#       "kind": "function"
#     },
#     {
#       "id": "pytest-configure",
#       "name": "pytest_configure",
#       "anchor": "function-pytest-configure",
#       "kind": "function"
#     },
#     {
#       "id": "pytest-collection-modifyitems",
#       "name": "pytest_collection_modifyitems",
#       "anchor": "function-pytest-collection-modifyitems",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Pytest Configuration

This module configures shared pytest behaviour: ``sys.path`` management for
``src`` and a command-line switch that opts into tests which talk to real IPFS
gateways.

Key Scenarios:
- Adds ``--live-network`` to run gateway smoke tests
- Applies skip markers to ``live_network`` tests otherwise

Usage:
    pytest --help  # to inspect custom options
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# --- Globals ---

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live-network",
        action="store_true",
        default=False,
        help="Run tests that fetch from public IPFS gateways",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers", "live_network: mark test as requiring public IPFS gateways"
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow/heavy (opt-in for nightly/local runs). "
        "Use for large artifacts or long retry schedules.",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    have_network = config.getoption("--live-network")
    skip_network = pytest.mark.skip(reason="requires --live-network")
    for item in items:
        if "live_network" in item.keywords and not have_network:
            item.add_marker(skip_network)
