"""Models for the cache purge service."""

from .purge import (
    PurgeScope,
    PurgeInfo,
    PurgeParams,
    PurgeOutcome,
    ResourceInfo,
    ProductionSite,
    content_key_prefixes,
    prefixed_keys,
)
from .project import (
    CDNType,
    ProductionCDNConfig,
    ProjectConfig,
    METADATA_JSON_PATH,
    HEADERS_JSON_PATH,
    CONFIG_JSON_PATH,
)

__all__ = [
    "PurgeScope",
    "PurgeInfo",
    "PurgeParams",
    "PurgeOutcome",
    "ResourceInfo",
    "ProductionSite",
    "content_key_prefixes",
    "prefixed_keys",
    "CDNType",
    "ProductionCDNConfig",
    "ProjectConfig",
    "METADATA_JSON_PATH",
    "HEADERS_JSON_PATH",
    "CONFIG_JSON_PATH",
]
