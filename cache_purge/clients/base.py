"""Base purge client class and errors."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from cache_purge.models import ProductionCDNConfig, PurgeParams

if TYPE_CHECKING:
    from cache_purge.core.context import PurgeContext


class PurgeError(Exception):
    """A purge request failed."""
    pass


class PurgeConfigError(PurgeError):
    """A production CDN config is missing required fields."""
    pass


class UnsupportedCDNTypeError(PurgeError):
    """`cdn.prod.type` names a CDN we cannot purge."""

    def __init__(self, cdn_type):
        self.cdn_type = cdn_type
        super().__init__(f"Unsupported 'cdn.prod.type' value: {cdn_type}")


def assert_required_properties(config: ProductionCDNConfig, message: str, *names: str) -> None:
    """Raise `PurgeConfigError` naming the first missing (or empty) property."""
    values = config.model_dump(by_alias=True)
    for name in names:
        if not values.get(name):
            raise PurgeConfigError(f'{message}: "{name}" is required')


class BasePurgeClient(ABC):
    """Base class for all production CDN purge clients."""

    name: str = "base"
    required_properties: tuple = ()

    def validate(self, config: ProductionCDNConfig) -> None:
        """Raise `PurgeConfigError` if the config cannot be used for purging."""
        assert_required_properties(config, "invalid purge config", *self.required_properties)

    def supports_purge_by_key(self, config: ProductionCDNConfig) -> bool:
        return True

    @abstractmethod
    async def purge(self, context: "PurgeContext", config: ProductionCDNConfig, params: PurgeParams) -> None:
        """Purge the given keys and paths, raising `PurgeError` on failure."""
        pass
