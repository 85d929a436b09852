# =============================================================================
# unihost_core/services/base_service.py
# Base Service Class with Common Functionality
# =============================================================================

from __future__ import annotations
from abc import ABC
from typing import Any, Dict, List, Optional, Type, TypeVar

from unihost_core.data import BaseGateway
from unihost_core.logging import get_logger, LogContext

E = TypeVar("E")


class BaseService(ABC):
    """
    Abstract base class for all entity services.

    Provides common functionality:
    - Logging
    - Row decoding that drops malformed records instead of failing the call

    Public methods are wrapped with ``error_boundary`` so gateway failures
    become a logged safe default (``None``, ``[]`` or ``False``).

    Usage:
        class MyService(BaseService):
            @error_boundary(default_return=None)
            async def get_thing(self, thing_id: str) -> Optional[Thing]:
                with self.log_operation("Fetching thing"):
                    row = await self.gateway.select_one("things", filters={"id": thing_id})
                    return self.decode(Thing, row)
    """

    def __init__(self, gateway: BaseGateway):
        self.gateway = gateway
        self.logger = get_logger(self.__class__.__name__)

    def log_operation(self, operation: str) -> LogContext:
        """
        Create a logging context for an operation.

        Usage:
            with self.log_operation("Creating conversation"):
                ...
        """
        return LogContext(self.logger, operation)

    def decode(self, entity: Type[E], row: Optional[Dict[str, Any]]) -> Optional[E]:
        """Decode one row; ``None`` for a missing row (not an error)."""
        if row is None:
            return None
        return entity.from_record(row)

    def decode_all(self, entity: Type[E], rows: List[Dict[str, Any]]) -> List[E]:
        decoded = []
        for row in rows:
            try:
                decoded.append(entity.from_record(row))
            except ValueError as e:
                self.logger.warning(f"Skipping malformed {entity.__name__} row {row.get('id')}: {e}")
        return decoded
