"""Loading of sibling site configurations and sibling site discovery."""

from dataclasses import dataclass
from typing import Iterable, List, Optional

import httpx
import structlog
from pydantic import ValidationError

from cache_purge.core.config import Settings
from cache_purge.models import ProductionSite, ProjectConfig, ResourceInfo

logger = structlog.get_logger(__name__)


class SiteConfigError(Exception):
    """Fetching a site config failed."""

    def __init__(self, message: str, status: int = 502):
        self.status = status
        super().__init__(message)


class ConfigServiceLoader:
    """Loads site configurations from the config service."""

    def __init__(self, http_client: httpx.AsyncClient, settings: Settings):
        self.http_client = http_client
        self.settings = settings

    def site_config_url(self, org: str, site: str) -> str:
        return f"{self.settings.config_service_url}/main--{site}--{org}/config.json?scope=admin"

    async def __call__(self, org: str, site: str) -> Optional[ProjectConfig]:
        return await self.load_site_config(org, site)

    async def load_site_config(self, org: str, site: str) -> Optional[ProjectConfig]:
        """Return the site config, or None if it does not exist or cannot be read."""
        url = self.site_config_url(org, site)
        headers = {"x-backend-type": "aws"}
        if self.settings.hlx_config_service_token:
            headers["x-access-token"] = self.settings.hlx_config_service_token
        try:
            resp = await self.http_client.get(url, headers=headers)
        except httpx.TimeoutException as e:
            raise SiteConfigError(f"Fetching site config from {url} failed: {e}", 504) from e
        except httpx.HTTPError as e:
            raise SiteConfigError(f"Fetching site config from {url} failed: {e}", 502) from e

        if resp.is_success:
            logger.info("loaded site config", url=url)
            try:
                return ProjectConfig.model_validate(resp.json())
            except (ValueError, ValidationError) as e:
                logger.warning("invalid site config", url=url, error=str(e))
                return None
        if resp.status_code != 404:
            logger.warning("error loading site config", url=url, status=resp.status_code)
        return None


@dataclass(frozen=True)
class InventoryEntry:
    """A site known to the platform, with its code bus and production CDN id."""
    org: str
    site: str
    code_bus_id: str
    cdn_id: Optional[str] = None


def select_sibling_sites(entries: Iterable[InventoryEntry], info: ResourceInfo) -> List[ProductionSite]:
    """Sites sharing the code bus of `info`, one per distinct production CDN."""
    code_bus_id = f"{info.owner}/{info.repo}"
    siblings = {}
    for entry in entries:
        if entry.code_bus_id != code_bus_id:
            continue
        if entry.org == info.org and entry.site == info.site:
            continue
        if entry.cdn_id and entry.cdn_id not in siblings:
            siblings[entry.cdn_id] = ProductionSite(org=entry.org, site=entry.site)
    return list(siblings.values())
