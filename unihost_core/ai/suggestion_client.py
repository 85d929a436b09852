# =============================================================================
# unihost_core/ai/suggestion_client.py
# AI Reply Suggestion Connectors
# =============================================================================
"""
Connectors for the external AI reply service.

The service keeps multi-turn context through a correlation id
(``session_id``) that it issues on the first call and that callers pass
back on later calls.

When the service cannot be reached, callers substitute ``fallback_reply``:
deterministic keyword-matched templates, so the user-facing action never
fails just because the AI backend is down.
"""

from __future__ import annotations
import asyncio
from abc import abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from unihost_core.ai.base_connector import APIConfig, BaseAPIConnector
from unihost_core.config import AIConfig
from unihost_core.errors import SuggestionServiceError
from unihost_core.logging import get_logger

logger = get_logger(__name__)

TONES = ("positive", "neutral", "formal")


@dataclass(frozen=True)
class SuggestionResult:
    content: str
    session_id: Optional[str] = None


# =============================================================================
# RULE-BASED FALLBACK
# =============================================================================

CHECK_IN_OUT_REPLY = (
    "Thank you for your inquiry about check-in/check-out times. Our standard check-in "
    "time is 3 PM and check-out is 11 AM. Let me know if you need any flexibility with "
    "these times, and I'll do my best to accommodate your needs."
)
WIFI_REPLY = (
    "Yes, high-speed WiFi is available throughout the property. The network name and "
    "password will be provided in your welcome guide upon arrival."
)
PARKING_REPLY = (
    "There is free parking available on the premises. You'll have a dedicated spot for "
    "your vehicle during your stay."
)
CANCELLATION_REPLY = (
    "Regarding cancellations, our policy allows for a full refund if canceled 5 days "
    "before arrival. Please check the booking details for the complete cancellation policy."
)
DEFAULT_REPLY = (
    "Thank you for your message. I'll respond to your inquiry as soon as possible. If you "
    "have any urgent questions, please don't hesitate to let me know."
)


def fallback_reply(message: str = "") -> str:
    """Pick a canned reply from keywords in ``message``; first match wins."""
    text = (message or "").lower()

    if "check" in text and ("in" in text or "out" in text):
        return CHECK_IN_OUT_REPLY
    if "wifi" in text or "internet" in text:
        return WIFI_REPLY
    if "park" in text:
        return PARKING_REPLY
    if "cancel" in text or "refund" in text:
        return CANCELLATION_REPLY
    return DEFAULT_REPLY


# =============================================================================
# CONNECTORS
# =============================================================================

class SuggestionConnector(BaseAPIConnector):
    """Base for reply-suggestion connectors"""

    @abstractmethod
    def fetch_suggestion(self, message: str, session_id: Optional[str] = None) -> SuggestionResult:
        """
        Ask the service for a reply to ``message``.

        Raises:
            SuggestionUnavailableError: service unreachable (use the fallback)
            SuggestionServiceError: any other failure
        """
        pass


class VectorShiftConnector(SuggestionConnector):
    """
    Connector for a VectorShift chatbot.

    Request:  POST {base_url}/run  {"chatbot_id", "input", "conversation_id"?}
    Response: {"output": "...", "conversation_id": "..."}
    """

    def __init__(self, config: APIConfig, chatbot_id: str):
        super().__init__(config)
        self.chatbot_id = chatbot_id

    def _set_auth_header(self):
        self.session.headers.update({
            "Api-Key": self.config.api_key,
            "Content-Type": "application/json",
        })

    def fetch_suggestion(self, message: str, session_id: Optional[str] = None) -> SuggestionResult:
        if not message:
            raise SuggestionServiceError("Cannot get AI suggestion: missing message content")

        payload = {"chatbot_id": self.chatbot_id, "input": message}
        if session_id:
            payload["conversation_id"] = session_id

        logger.debug(f"VectorShift API: fetch suggestion ({len(message)} chars)")
        response = self._make_request("run", method="POST", data=payload)

        try:
            body = response.json()
        except ValueError as e:
            raise SuggestionServiceError(f"Invalid JSON from {self.config.api_name}") from e

        if not isinstance(body, dict):
            raise SuggestionServiceError(
                f"Unexpected response from {self.config.api_name}: expected an object, got {type(body).__name__}"
            )

        content = body.get("output") or body.get("content")
        if not content:
            raise SuggestionServiceError(f"{self.config.api_name} returned an empty suggestion")

        return SuggestionResult(
            content=content,
            session_id=body.get("conversation_id") or session_id,
        )


class MockSuggestionConnector(SuggestionConnector):
    """Development stand-in that echoes the prompt; no network involved"""

    def _set_auth_header(self):
        pass

    def fetch_suggestion(self, message: str, session_id: Optional[str] = None) -> SuggestionResult:
        if not message:
            raise SuggestionServiceError("Cannot get AI suggestion: missing message content")
        last_line = message.strip().splitlines()[-1]
        return SuggestionResult(
            content=f'This is an AI suggestion for: "{last_line}"',
            session_id=session_id or "new_conversation",
        )


def create_suggestion_connector(config: AIConfig) -> SuggestionConnector:
    """Build the connector selected by ``config.provider``."""
    if config.provider == "vectorshift" and config.base_url:
        api_config = APIConfig(
            api_name="VectorShift",
            base_url=config.base_url,
            api_key=config.api_key,
            timeout=config.timeout,
        )
        return VectorShiftConnector(api_config, chatbot_id=config.chatbot_id or "")

    return MockSuggestionConnector(APIConfig(api_name="MockSuggestions", base_url="mock://"))


async def get_suggestion_variations(
    connector: SuggestionConnector,
    message: str,
    tones: Sequence[str] = TONES,
    session_id: Optional[str] = None,
) -> Dict[str, str]:
    """
    Get one reply per tone, requested in parallel.

    A tone whose request fails gets the fallback reply instead.
    """
    async def one(tone: str) -> str:
        prompt = f"[Respond with a {tone} tone] {message}"
        try:
            result = await asyncio.to_thread(connector.fetch_suggestion, prompt, session_id)
            return result.content
        except SuggestionServiceError as e:
            logger.warning(f"Error getting suggestion for {tone} tone: {e}")
            return fallback_reply(message)
        except Exception as e:
            logger.error(f"Unexpected error getting suggestion for {tone} tone: {e}")
            return fallback_reply(message)

    replies = await asyncio.gather(*(one(tone) for tone in tones))
    return dict(zip(tones, replies))
