# tests/conftest.py
"""Pytest configuration and fixtures"""
import pytest
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from turnflow.config import Settings
from turnflow.infra.memory_store import InMemoryStackStore
from turnflow.infra.metrics import get_metrics_collector


class RecordingRenderer:
    """Async renderer that keeps everything it was asked to show"""
    def __init__(self):
        self.rendered = []

    async def render(self, conversation_id, activity):
        self.rendered.append((conversation_id, activity))

    def texts(self, conversation_id=None):
        return [
            a.text for cid, a in self.rendered
            if conversation_id is None or cid == conversation_id
        ]


@pytest.fixture(autouse=True)
def reset_metrics():
    collector = get_metrics_collector()
    collector.enabled = True
    collector.reset()
    yield
    collector.reset()


@pytest.fixture
def settings():
    """Engine settings isolated from any local .env file"""
    return Settings(_env_file=None, app_env="dev", stack_ttl_seconds=3600)


@pytest.fixture
def store():
    return InMemoryStackStore()


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def conversation_id():
    """Default conversation ID for tests"""
    return "+12345678900"
