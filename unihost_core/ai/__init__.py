from unihost_core.ai.base_connector import APIConfig, BaseAPIConnector
from unihost_core.ai.suggestion_client import (
    TONES,
    MockSuggestionConnector,
    SuggestionConnector,
    SuggestionResult,
    VectorShiftConnector,
    create_suggestion_connector,
    fallback_reply,
    get_suggestion_variations,
)

__all__ = [
    "APIConfig",
    "BaseAPIConnector",
    "TONES",
    "MockSuggestionConnector",
    "SuggestionConnector",
    "SuggestionResult",
    "VectorShiftConnector",
    "create_suggestion_connector",
    "fallback_reply",
    "get_suggestion_variations",
]
