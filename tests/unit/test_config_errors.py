# =============================================================================
# tests/unit/test_config_errors.py
# Unit Tests for configuration loading and error handling
# =============================================================================

from dataclasses import fields
from unittest.mock import MagicMock

import pytest

from unihost_core.config import (
    CLIENT_INFO_HEADER,
    GatewayConfig,
    load_ai_config,
    load_config,
    load_gateway_config,
)
from unihost_core.data import supabase_gateway
from unihost_core.errors import (
    ConfigurationError,
    ErrorContext,
    GatewayError,
    UniHostError,
    error_boundary,
    handle_error,
)


class TestGatewayConfig:
    """Test Supabase settings loading"""

    def test_missing_credentials_raise(self, mock_streamlit, clean_env):
        with pytest.raises(ConfigurationError) as exc_info:
            load_gateway_config()

        error = exc_info.value
        assert error.code == "CONFIG_001"
        assert not error.recoverable
        assert "supabase.url" in error.details["config_key"]

    def test_reads_secrets(self, mock_streamlit, clean_env):
        mock_streamlit.secrets = {"supabase": {"url": "https://x.supabase.co", "key": "anon"}}

        config = load_gateway_config()

        assert config.provider == "supabase"
        assert config.url == "https://x.supabase.co"
        assert config.key == "anon"

    def test_env_fallback(self, mock_streamlit, clean_env):
        clean_env.setenv("SUPABASE_URL", "https://env.supabase.co")
        clean_env.setenv("SUPABASE_KEY", "env-key")

        assert load_gateway_config().url == "https://env.supabase.co"

    def test_mock_provider_needs_no_credentials(self, mock_streamlit, clean_env):
        clean_env.setenv("UNIHOST_GATEWAY", "MOCK")

        assert load_gateway_config().provider == "mock"

    def test_unknown_provider_rejected(self, mock_streamlit, clean_env):
        clean_env.setenv("UNIHOST_GATEWAY", "firebase")

        with pytest.raises(ConfigurationError):
            load_gateway_config()

    @pytest.mark.asyncio
    async def test_every_setting_reaches_the_client(self, monkeypatch):
        captured = {}

        async def fake_create(url, key, options=None):
            captured.update(url=url, key=key, options=options)
            return MagicMock()

        monkeypatch.setattr(supabase_gateway, "acreate_client", fake_create)
        config = GatewayConfig(url="https://x.supabase.co", key="anon", schema="inbox")

        gateway = await supabase_gateway.SupabaseGateway.connect(config)

        assert {f.name for f in fields(GatewayConfig)} == {"provider", "url", "key", "schema"}
        assert (captured["url"], captured["key"]) == ("https://x.supabase.co", "anon")
        assert captured["options"].schema == "inbox"
        assert captured["options"].headers["X-Client-Info"] == CLIENT_INFO_HEADER
        assert gateway.schema == "inbox"

class TestAIConfig:
    """Test AI service settings loading"""

    def test_defaults_to_mock(self, mock_streamlit, clean_env):
        assert load_ai_config().provider == "mock"

    def test_vectorshift_when_credentials_present(self, mock_streamlit, clean_env):
        mock_streamlit.secrets = {"ai": {
            "base_url": "https://api.vectorshift.ai/api/chatbots",
            "api_key": "k",
            "chatbot_id": "b",
        }}

        config = load_ai_config()

        assert config.provider == "vectorshift"
        assert config.chatbot_id == "b"

    def test_full_config(self, mock_streamlit, clean_env):
        clean_env.setenv("UNIHOST_GATEWAY", "mock")

        config = load_config()

        assert config.gateway.provider == "mock"
        assert config.sync.failure_threshold == 3
        assert config.sync.fetch_timeout == 15.0


class TestExceptions:
    """Test the exception hierarchy"""

    def test_gateway_duplicate_detection(self):
        error = GatewayError("dup", table="properties", pg_code="23505")

        assert error.is_duplicate
        assert error.details == {"table": "properties", "pg_code": "23505"}
        assert isinstance(error, UniHostError)

    def test_str_includes_code_and_details(self):
        error = UniHostError("boom", code="X_1", details={"a": 1})

        assert str(error) == "[X_1] boom | Details: {'a': 1}"
        assert error.to_dict()["error_type"] == "UniHostError"


class TestErrorBoundary:
    """Test the safe-default decorator"""

    def test_sync_function(self):
        @error_boundary(default_return=[])
        def broken():
            raise GatewayError("down")

        assert broken() == []

    @pytest.mark.asyncio
    async def test_async_function(self):
        @error_boundary(default_return=None)
        async def broken():
            raise RuntimeError("down")

        assert await broken() is None

    @pytest.mark.asyncio
    async def test_success_passes_through(self):
        @error_boundary(default_return=None)
        async def fine():
            return 42

        assert await fine() == 42


class TestErrorHandlers:
    """Test user-facing error reporting"""

    def test_fatal_error_shown_as_critical(self, monkeypatch):
        mock_st = MagicMock()
        monkeypatch.setattr("unihost_core.errors.handlers.st", mock_st)

        handle_error(ConfigurationError("no credentials"), show_user_message=True)

        shown = mock_st.error.call_args.args[0]
        assert shown.startswith("Critical Error: no credentials")

    def test_error_context_suppresses_recoverable(self, monkeypatch):
        monkeypatch.setattr("unihost_core.errors.handlers.st", MagicMock())

        with ErrorContext("Rendering inbox"):
            raise ValueError("bad row")

    def test_error_context_reraises_unrecoverable(self, monkeypatch):
        monkeypatch.setattr("unihost_core.errors.handlers.st", MagicMock())

        with pytest.raises(ValueError):
            with ErrorContext("Startup", recoverable=False):
                raise ValueError("bad config")
