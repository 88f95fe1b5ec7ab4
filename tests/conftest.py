"""
Pytest configuration and fixtures for the voice companion tests.
"""

import sys
from pathlib import Path

import pytest

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from models.session_models import Agent, ChatMessage, ConversationState
from services.realtime.session_store import SessionStore
from tests.fakes import FakeTransport, make_settings


@pytest.fixture
def settings():
    """Settings with a dummy API key and short pauses."""
    return make_settings()


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def conversation():
    """A fresh year-review conversation state."""
    return ConversationState(
        interaction_id="system-1",
        agent=Agent(id="agent-1", name="Jingle"),
        user_name="Sam",
        messages=[ChatMessage(role="system", content="You are an elf.", id="system1")],
        voice_id="shimmer",
        experience_type="year-review",
    )


@pytest.fixture
def loaded_session(store, transport, conversation):
    """A session registered in the store with a fake transport attached."""
    connection = store.create("session-1", conversation, "openai")
    connection.transport = transport
    return connection
