from unihost_core.ui.connection_status import ConnectionBanner, render_connection_banner

__all__ = ["ConnectionBanner", "render_connection_banner"]
