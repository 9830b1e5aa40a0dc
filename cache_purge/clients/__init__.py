"""Production CDN purge clients."""

from .base import (
    BasePurgeClient,
    PurgeError,
    PurgeConfigError,
    UnsupportedCDNTypeError,
    assert_required_properties,
)
from .registry import PurgeClientRegistry, get_purge_client
from .fastly import FastlyPurgeClient
from .cloudflare import CloudflarePurgeClient
from .akamai import AkamaiPurgeClient
from .cloudfront import CloudfrontPurgeClient
from .managed import ManagedPurgeClient

__all__ = [
    "BasePurgeClient",
    "PurgeError",
    "PurgeConfigError",
    "UnsupportedCDNTypeError",
    "assert_required_properties",
    "PurgeClientRegistry",
    "get_purge_client",
    "FastlyPurgeClient",
    "CloudflarePurgeClient",
    "AkamaiPurgeClient",
    "CloudfrontPurgeClient",
    "ManagedPurgeClient",
]
