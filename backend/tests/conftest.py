"""
Global pytest configuration and fixtures for agentry tests
"""

import os
import sys

import pytest
import pytest_asyncio

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from agentry import AgentTeam, Settings
from agentry.core.config import reset_settings


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep AGENTRY_* variables from the developer environment out of tests"""
    for key in list(os.environ):
        if key.startswith('AGENTRY_'):
            monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings():
    """Settings with a small event history"""
    return Settings(event_history_limit=200)


@pytest_asyncio.fixture
async def team(settings):
    """Agent team torn down after each test"""
    team = AgentTeam(settings=settings)
    yield team
    await team.shutdown()
