"""
Multi-CDN cache purge service.

This package provides:
- Surrogate key derivation and redundancy elimination
- Purge clients for Fastly, Cloudflare, Akamai, Cloudfront and the managed CDN
- Purge orchestration across the internal, inner and production CDNs
"""

from .models import (
    PurgeScope,
    PurgeInfo,
    PurgeParams,
    PurgeOutcome,
    ResourceInfo,
    ProductionSite,
    ProductionCDNConfig,
    ProjectConfig,
    CDNType,
)
from .utils.keys import (
    compute_surrogate_key,
    compute_content_path_key,
    compute_code_path_key,
    remove_redundant_keys,
    remove_redundant_paths,
)
from .clients import (
    PurgeError,
    PurgeConfigError,
    UnsupportedCDNTypeError,
    get_purge_client,
)
from .core.config import Settings, get_settings
from .core.context import PurgeContext
from .services.purge_service import PurgeService, get_purge_path_variants
from .services.site_config import ConfigServiceLoader, SiteConfigError, select_sibling_sites
from .handler import cache_handler

__all__ = [
    'PurgeScope',
    'PurgeInfo',
    'PurgeParams',
    'PurgeOutcome',
    'ResourceInfo',
    'ProductionSite',
    'ProductionCDNConfig',
    'ProjectConfig',
    'CDNType',
    'compute_surrogate_key',
    'compute_content_path_key',
    'compute_code_path_key',
    'remove_redundant_keys',
    'remove_redundant_paths',
    'PurgeError',
    'PurgeConfigError',
    'UnsupportedCDNTypeError',
    'get_purge_client',
    'Settings',
    'get_settings',
    'PurgeContext',
    'PurgeService',
    'get_purge_path_variants',
    'ConfigServiceLoader',
    'SiteConfigError',
    'select_sibling_sites',
    'cache_handler',
]
