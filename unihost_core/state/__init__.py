from unihost_core.state.entity_cache import EntityCache

__all__ = ["EntityCache"]
