# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

import pytest

from unihost_core.config import AIConfig, AppConfig, DEMO_HOST_ID, GatewayConfig, SyncSettings
from unihost_core.data import MockGateway
from unihost_core.models import AiSuggestion, Conversation, Message, Platform
from unihost_core.state.entity_cache import EntityCache

BASE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    """Fixed timestamp ``minutes`` after BASE_TIME"""
    return BASE_TIME + timedelta(minutes=minutes)


# =============================================================================
# ENTITY FACTORIES
# =============================================================================

def make_conversation(
    conversation_id: Optional[str] = None,
    platform: Platform = Platform.AIRBNB,
    last_message_at: Optional[datetime] = None,
    host_id: str = DEMO_HOST_ID,
    **kwargs,
) -> Conversation:
    return Conversation(
        id=conversation_id or str(uuid.uuid4()),
        property_id=kwargs.pop("property_id", "prop-1"),
        guest_id=kwargs.pop("guest_id", "guest-1"),
        host_id=host_id,
        platform=platform,
        last_message_at=last_message_at or at(0),
        **kwargs,
    )


def make_message(
    conversation_id: str,
    message_id: Optional[str] = None,
    content: str = "Hello",
    created_at: Optional[datetime] = None,
    is_from_host: bool = False,
    **kwargs,
) -> Message:
    return Message(
        id=message_id or str(uuid.uuid4()),
        conversation_id=conversation_id,
        sender_id=kwargs.pop("sender_id", DEMO_HOST_ID if is_from_host else "guest-1"),
        content=content,
        created_at=created_at or at(1),
        is_from_host=is_from_host,
        **kwargs,
    )


def make_suggestion(
    conversation_id: str,
    suggestion_id: Optional[str] = None,
    content: str = "Suggested reply",
    created_at: Optional[datetime] = None,
    is_used: bool = False,
) -> AiSuggestion:
    return AiSuggestion(
        id=suggestion_id or str(uuid.uuid4()),
        conversation_id=conversation_id,
        content=content,
        created_at=created_at or at(1),
        is_used=is_used,
    )


def realtime_payload(change_type: str, table: str, record: Dict[str, Any], old: Optional[Dict] = None) -> Dict:
    """Payload in the shape the realtime client delivers"""
    return {
        "data": {
            "type": change_type,
            "table": table,
            "schema": "public",
            "commit_timestamp": BASE_TIME.isoformat(),
            "record": record,
            "old_record": old or {},
        },
        "ids": [],
    }


# =============================================================================
# CONFIGURATION FIXTURES
# =============================================================================

@pytest.fixture
def fast_settings():
    """Sync timings shrunk so tests run in milliseconds"""
    return SyncSettings(
        fetch_timeout=1.0,
        probe_interval=0.05,
        failure_threshold=3,
        reset_pause=0.01,
        online_stabilization_delay=0.01,
        initial_load_retries=3,
        backoff_base=0.01,
        subscribe_timeout=1.0,
        banner_ping_interval=60.0,
        banner_backoff_cap=600.0,
    )


@pytest.fixture
def app_config(fast_settings):
    return AppConfig(
        gateway=GatewayConfig(provider="mock"),
        ai=AIConfig(provider="mock"),
        sync=fast_settings,
    )


# =============================================================================
# GATEWAY / CACHE FIXTURES
# =============================================================================

@pytest.fixture
def gateway():
    return MockGateway()


@pytest.fixture
def cache():
    return EntityCache()


@pytest.fixture
def seeded_gateway(gateway):
    """Gateway holding the demo host, one guest, one property and one conversation"""
    gateway.seed("users", {
        "id": DEMO_HOST_ID, "username": "host_user", "email": "host@example.com", "is_host": True,
    })
    gateway.seed("users", {"id": "guest-1", "username": "Bob", "email": "bob@example.com"})
    gateway.seed("properties", {
        "id": "prop-1", "name": "Harbour Loft", "host_id": DEMO_HOST_ID, "platform": "Airbnb",
    })
    gateway.seed("conversations", {
        "id": "conv-1",
        "property_id": "prop-1",
        "guest_id": "guest-1",
        "host_id": DEMO_HOST_ID,
        "platform": "Airbnb",
        "last_message_at": at(1).isoformat(),
        "created_at": at(0).isoformat(),
    })
    gateway.seed("messages", {
        "id": "msg-1",
        "conversation_id": "conv-1",
        "sender_id": "guest-1",
        "content": "Hi there, we arrive on Friday.",
        "is_from_host": False,
        "created_at": at(1).isoformat(),
    })
    return gateway


@pytest.fixture
async def sync_context(seeded_gateway, app_config):
    """Started SyncContext on the in-memory gateway; closed after the test"""
    from unihost_core.sync.context import SyncContext

    context = SyncContext(seeded_gateway, app_config)
    await context.start()
    yield context
    await context.close()


@pytest.fixture
def wait_until():
    """Poll an (event-loop driven) condition until it holds or times out"""
    async def _wait(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if predicate():
                return True
            await asyncio.sleep(interval)
        return predicate()

    return _wait


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_streamlit(monkeypatch):
    """Mock Streamlit secrets for configuration tests"""
    mock_st = MagicMock()
    mock_st.secrets = {}
    monkeypatch.setattr("unihost_core.config.st", mock_st)
    yield mock_st


@pytest.fixture
def clean_env(monkeypatch):
    """Remove configuration environment variables"""
    for var in (
        "SUPABASE_URL", "SUPABASE_KEY", "UNIHOST_GATEWAY", "UNIHOST_AI_PROVIDER",
        "VECTORSHIFT_API_URL", "VECTORSHIFT_API_KEY", "VECTORSHIFT_CHATBOT_ID",
    ):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


@pytest.fixture
def factories():
    """Entity factories and fixed timestamps"""
    return SimpleNamespace(
        conversation=make_conversation,
        message=make_message,
        suggestion=make_suggestion,
        payload=realtime_payload,
        at=at,
    )
