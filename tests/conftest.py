import pytest

from bazaar.infrastructure.config import Settings
from tests.fakes import make_settings


@pytest.fixture
def module_settings() -> Settings:
    return make_settings()


@pytest.fixture
def coin_settings() -> Settings:
    return make_settings(use_module_currency=False)
