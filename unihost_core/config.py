# =============================================================================
# unihost_core/config.py
# Application Configuration for UniHost Messaging
# =============================================================================
"""
Configuration loading.

Values come from Streamlit secrets first and environment variables second:

    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"
    provider = "supabase"          # or "mock" for the in-memory demo backend

    [ai]
    provider = "vectorshift"       # or "mock"
    base_url = "https://api.vectorshift.ai/api/chatbots"
    api_key = "your-api-key"
    chatbot_id = "your-chatbot-id"

Missing Supabase credentials are a fatal setup failure: ``load_config``
raises ``ConfigurationError`` immediately instead of letting every gateway
call fail later.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import streamlit as st

from unihost_core.errors import ConfigurationError
from unihost_core.logging import get_logger

logger = get_logger(__name__)

DEMO_HOST_ID = "00000000-0000-0000-0000-000000000001"
DEMO_HOST_USERNAME = "host_user"
DEMO_HOST_EMAIL = "host@example.com"

CLIENT_INFO_HEADER = "unihost-messaging@0.1.0"


@dataclass
class GatewayConfig:
    """Remote datastore connection settings"""
    provider: str = "supabase"
    url: Optional[str] = None
    key: Optional[str] = None
    schema: str = "public"


@dataclass
class AIConfig:
    """AI suggestion service settings"""
    provider: str = "mock"
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    chatbot_id: Optional[str] = None
    timeout: int = 30


@dataclass
class SyncSettings:
    """Timing constants for the data synchronization layer (seconds)"""
    fetch_timeout: float = 15.0
    probe_interval: float = 120.0
    failure_threshold: int = 3
    reset_pause: float = 1.0
    online_stabilization_delay: float = 3.0
    initial_load_retries: int = 3
    backoff_base: float = 1.0
    subscribe_timeout: float = 10.0
    banner_ping_interval: float = 60.0
    banner_backoff_cap: float = 600.0
    session_check_interval: float = 30.0


@dataclass
class AppConfig:
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    sync: SyncSettings = field(default_factory=SyncSettings)
    host_id: str = DEMO_HOST_ID


def _read_secrets_section(name: str) -> Dict[str, Any]:
    try:
        if hasattr(st, "secrets") and name in st.secrets:
            return dict(st.secrets[name])
    except Exception as e:
        # st.secrets raises when no secrets.toml exists at all
        logger.debug(f"No Streamlit secrets for [{name}]: {e}")
    return {}


def _pick(section: Mapping[str, Any], key: str, env_var: str, default: Any = None) -> Any:
    value = section.get(key)
    if value in (None, ""):
        value = os.getenv(env_var, default)
    return value


def load_gateway_config() -> GatewayConfig:
    section = _read_secrets_section("supabase")
    config = GatewayConfig(
        provider=str(_pick(section, "provider", "UNIHOST_GATEWAY", "supabase")).lower(),
        url=_pick(section, "url", "SUPABASE_URL"),
        key=_pick(section, "key", "SUPABASE_KEY"),
    )

    if config.provider not in ("supabase", "mock"):
        raise ConfigurationError(
            f"Unknown gateway provider '{config.provider}'",
            config_key="supabase.provider",
        )

    if config.provider == "supabase":
        missing = [k for k in ("url", "key") if not getattr(config, k)]
        if missing:
            raise ConfigurationError(
                "Supabase credentials not found. Configure [supabase] url/key in "
                ".streamlit/secrets.toml or set SUPABASE_URL and SUPABASE_KEY.",
                config_key=", ".join(f"supabase.{k}" for k in missing),
            )
    return config


def load_ai_config() -> AIConfig:
    section = _read_secrets_section("ai")
    config = AIConfig(
        provider=str(_pick(section, "provider", "UNIHOST_AI_PROVIDER", "")).lower(),
        base_url=_pick(section, "base_url", "VECTORSHIFT_API_URL"),
        api_key=_pick(section, "api_key", "VECTORSHIFT_API_KEY"),
        chatbot_id=_pick(section, "chatbot_id", "VECTORSHIFT_CHATBOT_ID"),
    )
    if not config.provider:
        config.provider = "vectorshift" if config.base_url and config.api_key else "mock"

    if config.provider == "vectorshift" and not (config.base_url and config.api_key and config.chatbot_id):
        # Not fatal: suggestions degrade to the rule-based fallback replies
        logger.error(
            "Missing AI suggestion settings (base_url/api_key/chatbot_id); "
            "suggestions will use fallback replies"
        )
    return config


def load_config() -> AppConfig:
    """
    Load the full application configuration.

    Raises:
        ConfigurationError: if the gateway cannot be configured
    """
    config = AppConfig(gateway=load_gateway_config(), ai=load_ai_config())
    logger.info(
        f"Configuration loaded (gateway={config.gateway.provider}, ai={config.ai.provider})"
    )
    return config
