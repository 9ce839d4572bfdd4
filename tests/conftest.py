from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from tests.helpers.fakes import FakeProvider, build_test_app
from wbso_chat.config.settings import get_settings


@pytest.fixture()
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture()
def client(fake_provider: FakeProvider):
    get_settings.cache_clear()
    app = build_test_app(fake_provider)
    with TestClient(app) as test_client:
        yield test_client
