"""Fixtures for real-time tests."""

import pytest

from fakes import FakeWebSocket


@pytest.fixture
def fake_websocket():
    return FakeWebSocket()
