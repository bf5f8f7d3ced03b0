"""Root test conftest: isolate the module-level config cache."""

import pytest

from src.chatbridge.infra.config import reset_config_cache


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    reset_config_cache()
    yield
    reset_config_cache()
