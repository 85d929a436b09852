# =============================================================================
# unihost_core/errors/exceptions.py
# Custom Exception Hierarchy for UniHost Messaging
# =============================================================================

from typing import Optional, Dict, Any


class UniHostError(Exception):
    """
    Base exception for all UniHost errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "GATEWAY_001")
        details: Additional context as a dictionary
        recoverable: Whether the app can keep running after this error
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "UH_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(UniHostError):
    """Raised when required configuration or credentials are missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


# =============================================================================
# GATEWAY EXCEPTIONS
# =============================================================================

class GatewayError(UniHostError):
    """Raised when a call against the remote datastore fails"""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        operation: Optional[str] = None,
        pg_code: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table
        if operation:
            details["operation"] = operation
        if pg_code:
            details["pg_code"] = pg_code

        super().__init__(
            message=message,
            code="GATEWAY_001",
            details=details,
            **kwargs,
        )
        self.pg_code = pg_code

    @property
    def is_duplicate(self) -> bool:
        """True for a unique-constraint violation"""
        return self.pg_code == "23505"


# =============================================================================
# SYNC EXCEPTIONS
# =============================================================================

class SubscriptionError(UniHostError):
    """Raised when a push channel cannot reach the SUBSCRIBED state"""

    def __init__(self, message: str, channel: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if channel:
            details["channel"] = channel

        super().__init__(message=message, code="SYNC_001", details=details, **kwargs)


class EventDecodeError(UniHostError):
    """Raised when a push payload does not match the expected shape"""

    def __init__(self, message: str, table: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table

        super().__init__(message=message, code="SYNC_002", details=details, **kwargs)


# =============================================================================
# AI SUGGESTION EXCEPTIONS
# =============================================================================

class SuggestionServiceError(UniHostError):
    """Raised when the AI suggestion service returns an unusable answer"""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status_code"] = status_code

        super().__init__(message=message, code=kwargs.pop("code", "AI_001"), details=details, **kwargs)


class SuggestionUnavailableError(SuggestionServiceError):
    """Raised when the AI suggestion service cannot be reached at all"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message=message, code="AI_002", **kwargs)
