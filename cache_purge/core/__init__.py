"""Core configuration and request context."""
