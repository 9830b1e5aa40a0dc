"""Fastly production CDN purge client."""

from typing import TYPE_CHECKING

import httpx

from cache_purge.clients.base import BasePurgeClient, PurgeError
from cache_purge.clients.registry import PurgeClientRegistry
from cache_purge.models import CDNType, ProductionCDNConfig, PurgeParams
from cache_purge.utils.keys import chunked
from cache_purge.utils.queue import process_queue

if TYPE_CHECKING:
    from cache_purge.core.context import PurgeContext

FASTLY_API_URL = "https://api.fastly.com"

# https://developer.fastly.com/reference/api/purging/#bulk-purge-tag
MAX_KEYS_PER_REQUEST = 256
URL_PURGE_CONCURRENCY = 30


@PurgeClientRegistry.register(CDNType.FASTLY)
class FastlyPurgeClient(BasePurgeClient):
    """Purges a customer Fastly service by surrogate key and by URL."""

    name = "fastly"
    required_properties = ("host", "serviceId", "authToken")

    async def purge(self, context: "PurgeContext", config: ProductionCDNConfig, params: PurgeParams) -> None:
        if params.paths:
            await self._purge_urls(context, config, params.paths)
        if params.keys:
            await self._purge_keys(context, config, params.keys)

    async def _purge_urls(self, context: "PurgeContext", config: ProductionCDNConfig, paths) -> None:
        log = context.log
        host = config.host
        failed = []

        async def purge_url(url: str) -> None:
            request_id = context.next_request_id()
            log.info("purging url", request_id=request_id, provider=self.name, host=host, url=url)
            try:
                resp = await context.http_client.request(
                    "PURGE",
                    url,
                    # send auth token in case authentication has been enabled for PURGE
                    headers={"accept": "application/json", "fastly-key": config.auth_token},
                )
            except httpx.HTTPError as e:
                log.error("url purge failed", request_id=request_id, provider=self.name, host=host, error=str(e))
                failed.append(url)
                return
            if not resp.is_success:
                log.error(
                    "url purge failed",
                    request_id=request_id,
                    provider=self.name,
                    host=host,
                    url=url,
                    status=resp.status_code,
                    body=resp.text,
                )
                failed.append(url)

        urls = [f"https://{host}{path}" for path in paths]
        await process_queue(urls, purge_url, URL_PURGE_CONCURRENCY)
        if failed:
            raise PurgeError(f"[{self.name}] {host} purging {len(paths)} url(s) failed")
        log.info("url purge succeeded", provider=self.name, host=host, count=len(paths))

    async def _purge_keys(self, context: "PurgeContext", config: ProductionCDNConfig, keys) -> None:
        log = context.log
        host = config.host
        url = f"{FASTLY_API_URL}/service/{config.service_id}/purge"
        headers = {
            "content-type": "application/json",
            "accept": "application/json",
            "fastly-key": config.auth_token,
        }
        for batch in chunked(keys, MAX_KEYS_PER_REQUEST):
            request_id = context.next_request_id()
            log.info("purging keys", request_id=request_id, provider=self.name, host=host, keys=batch)
            try:
                resp = await context.http_client.post(url, headers=headers, json={"surrogate_keys": batch})
            except httpx.HTTPError as e:
                msg = f"[{request_id}] [{self.name}] {host} purging {len(batch)} surrogate key(s) failed: {e}"
                log.error(msg)
                raise PurgeError(msg) from e
            if not resp.is_success:
                msg = (
                    f"[{self.name}] {host} purging {len(batch)} surrogate key(s) failed: "
                    f"{resp.status_code} - {resp.text}"
                )
                log.error(msg)
                raise PurgeError(msg)
            log.info(
                "key purge succeeded",
                provider=self.name,
                host=host,
                count=len(batch),
                status=resp.status_code,
            )
