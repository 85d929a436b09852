# =============================================================================
# unihost_core/errors/__init__.py
# Centralized Error Handling for UniHost Messaging
# =============================================================================

from .exceptions import (
    UniHostError,
    ConfigurationError,
    GatewayError,
    SubscriptionError,
    EventDecodeError,
    SuggestionServiceError,
    SuggestionUnavailableError,
)

from .handlers import (
    handle_error,
    error_boundary,
    ErrorContext,
)

__all__ = [
    # Exceptions
    "UniHostError",
    "ConfigurationError",
    "GatewayError",
    "SubscriptionError",
    "EventDecodeError",
    "SuggestionServiceError",
    "SuggestionUnavailableError",
    # Handlers
    "handle_error",
    "error_boundary",
    "ErrorContext",
]
