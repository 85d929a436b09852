# =============================================================================
# unihost_core/data/__init__.py
# Remote Data Gateway
# =============================================================================

from unihost_core.config import GatewayConfig
from unihost_core.data.gateway import (
    BaseGateway,
    ChannelHandle,
    CONVERSATION_DETAILS_SELECT,
    TABLE_CONVERSATIONS,
    TABLE_MESSAGES,
    TABLE_PROPERTIES,
    TABLE_SUGGESTIONS,
    TABLE_USERS,
)
from unihost_core.data.mock_gateway import MockGateway


async def create_gateway(config: GatewayConfig) -> BaseGateway:
    """
    Build the gateway selected by ``config.provider``.

    Args:
        config: Gateway settings ("supabase" or "mock")

    Returns:
        Connected gateway instance
    """
    if config.provider == "mock":
        return MockGateway()

    # Imported lazily so the mock provider works without realtime deps loaded
    from unihost_core.data.supabase_gateway import SupabaseGateway
    return await SupabaseGateway.connect(config)


__all__ = [
    "BaseGateway",
    "ChannelHandle",
    "CONVERSATION_DETAILS_SELECT",
    "MockGateway",
    "TABLE_CONVERSATIONS",
    "TABLE_MESSAGES",
    "TABLE_PROPERTIES",
    "TABLE_SUGGESTIONS",
    "TABLE_USERS",
    "create_gateway",
]
