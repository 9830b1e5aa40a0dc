"""Purge services."""
