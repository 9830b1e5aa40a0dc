"""Per-request purge context."""

import itertools
from typing import Awaitable, Callable, List, Optional

import httpx
import structlog

from cache_purge.core.config import Settings, get_settings
from cache_purge.models import ProductionSite, ProjectConfig, ResourceInfo
from cache_purge.services.site_config import ConfigServiceLoader
from cache_purge.services.zone_resolver import ZoneResolver

SiteConfigLoader = Callable[[str, str], Awaitable[Optional[ProjectConfig]]]
SiblingSitesQuery = Callable[[ResourceInfo], Awaitable[List[ProductionSite]]]


class PurgeContext:
    """Everything a purge run needs: settings, HTTP client, DNS and project config.

    Request ids are handed out by a counter owned by the context, so
    concurrent requests never share state.
    """

    def __init__(
        self,
        config: ProjectConfig,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        resolver: Optional[ZoneResolver] = None,
        original_config: Optional[ProjectConfig] = None,
        site_config_loader: Optional[SiteConfigLoader] = None,
        sibling_sites_query: Optional[SiblingSitesQuery] = None,
        suffix: str = "",
    ):
        self.config = config
        self.original_config = original_config
        self.settings = settings or get_settings()
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=30.0)
        self.resolver = resolver or ZoneResolver(max_depth=self.settings.dns_max_depth)
        self.site_config_loader = site_config_loader or ConfigServiceLoader(self.http_client, self.settings)
        self.sibling_sites_query = sibling_sites_query
        self.suffix = suffix
        self.log = structlog.get_logger("cache_purge")
        if suffix:
            self.log = self.log.bind(suffix=suffix)
        self.details: List[str] = []
        self.errors: List[str] = []
        self._request_ids = itertools.count(1)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    def next_request_id(self) -> int:
        return next(self._request_ids)

    @property
    def headers_changed(self) -> bool:
        """True if the `headers` section differs from the previously loaded config."""
        if self.original_config is None:
            return True
        return self.original_config.headers != self.config.headers

    async def load_site_config(self, org: str, site: str) -> Optional[ProjectConfig]:
        return await self.site_config_loader(org, site)

    async def query_sibling_sites(self, info: ResourceInfo) -> List[ProductionSite]:
        if self.sibling_sites_query is None:
            return []
        return await self.sibling_sites_query(info)
