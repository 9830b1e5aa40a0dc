"""Purge client registry keyed by production CDN type."""

from typing import Dict, Type, Optional, Union

from cache_purge.clients.base import BasePurgeClient, UnsupportedCDNTypeError
from cache_purge.models import CDNType


class PurgeClientRegistry:
    """Registry for purge client implementations."""

    _clients: Dict[CDNType, Type[BasePurgeClient]] = {}

    @classmethod
    def register(cls, cdn_type: CDNType):
        """Decorator to register a purge client class."""
        def decorator(client_class: Type[BasePurgeClient]):
            cls._clients[cdn_type] = client_class
            return client_class
        return decorator

    @classmethod
    def get(cls, cdn_type: Union[CDNType, str, None]) -> Optional[Type[BasePurgeClient]]:
        """Get client class by CDN type."""
        try:
            return cls._clients.get(CDNType(cdn_type))
        except ValueError:
            return None

    @classmethod
    def list_types(cls) -> list[CDNType]:
        """List all registered CDN types."""
        return list(cls._clients.keys())


def get_purge_client(cdn_type: Union[CDNType, str, None]) -> BasePurgeClient:
    """Instantiate the purge client for `cdn_type`."""
    client_class = PurgeClientRegistry.get(cdn_type)
    if client_class is None:
        raise UnsupportedCDNTypeError(cdn_type)
    return client_class()
