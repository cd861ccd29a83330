"""
Root conftest for the algorithm selection test suite.

Keeps the repository root importable (CONFIG/, ALGO_SELECTION/) and resets
cached configuration between tests.
"""

import pytest

from CONFIG.config_loader import clear_config_cache


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    clear_config_cache()
    yield
    clear_config_cache()
