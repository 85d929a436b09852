"""UniHost Messaging - host dashboard with realtime sync and AI reply suggestions."""

__version__ = "0.1.0"
