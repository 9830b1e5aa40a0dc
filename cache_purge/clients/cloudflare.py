"""Cloudflare production CDN purge client."""

from typing import TYPE_CHECKING, Any, Dict

import httpx

from cache_purge.clients.base import BasePurgeClient, PurgeError
from cache_purge.clients.registry import PurgeClientRegistry
from cache_purge.models import CDNType, ProductionCDNConfig, PurgeParams
from cache_purge.utils.keys import chunked
from cache_purge.utils.queue import process_queue

if TYPE_CHECKING:
    from cache_purge.core.context import PurgeContext

CLOUDFLARE_API_URL = "https://api.cloudflare.com/client/v4"

# cloudflare accepts at most 30 tags per purge request
MAX_TAGS_PER_REQUEST = 30


def cloudflare_purge_succeeded(resp: httpx.Response) -> bool:
    """A purge only succeeded if the API says so in the body as well."""
    if not resp.is_success:
        return False
    try:
        return resp.json().get("success") is True
    except ValueError:
        return False


@PurgeClientRegistry.register(CDNType.CLOUDFLARE)
class CloudflarePurgeClient(BasePurgeClient):
    """Purges a Cloudflare zone by cache tag.

    Paths are purged as tags too: the zones tag every response with its
    URL path, which is more reliable than Cloudflare's purge-by-url.
    """

    name = "cloudflare"
    required_properties = ("host", "zoneId", "apiToken")

    async def purge(self, context: "PurgeContext", config: ProductionCDNConfig, params: PurgeParams) -> None:
        log = context.log
        host = config.host
        url = f"{CLOUDFLARE_API_URL}/zones/{config.zone_id}/purge_cache"
        headers = {"Authorization": f"Bearer {config.api_token}"}

        tags = list(params.keys) + list(params.paths)
        payloads = [{"tags": batch} for batch in chunked(tags, MAX_TAGS_PER_REQUEST)]

        async def send(body: Dict[str, Any]) -> None:
            request_id = context.next_request_id()
            log.info("purging tags", request_id=request_id, provider=self.name, host=host, tags=body["tags"])
            try:
                resp = await context.http_client.post(url, headers=headers, json=body)
            except httpx.HTTPError as e:
                msg = f"[{request_id}] [{self.name}] {host} purge failed: {e}"
                log.error(msg)
                raise PurgeError(msg) from e
            if cloudflare_purge_succeeded(resp):
                log.info("purge succeeded", request_id=request_id, provider=self.name, host=host)
                return
            msg = (
                f"[{request_id}] [{self.name}] {host} purge failed: {resp.status_code} - {resp.text}"
                f" - cf-ray: {resp.headers.get('cf-ray')}"
            )
            log.error(msg, tags=body["tags"])
            raise PurgeError(msg)

        await process_queue(payloads, send)
