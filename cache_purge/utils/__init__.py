"""Utilities for the cache purge service."""
