"""Managed CDN purge client (purge proxy in front of a managed Fastly account)."""

from typing import TYPE_CHECKING

import httpx

from cache_purge.clients.base import BasePurgeClient, PurgeError
from cache_purge.clients.registry import PurgeClientRegistry
from cache_purge.models import CDNType, ProductionCDNConfig, PurgeParams
from cache_purge.utils.keys import chunked
from cache_purge.utils.queue import process_queue

if TYPE_CHECKING:
    from cache_purge.core.context import PurgeContext

PURGE_PROXY_URL = "https://purgeproxy.adobeaemcloud.com"
MAX_KEYS_PER_REQUEST = 256
URL_PURGE_CONCURRENCY = 30


@PurgeClientRegistry.register(CDNType.MANAGED)
class ManagedPurgeClient(BasePurgeClient):
    name = "managed"
    required_properties = ("host",)

    async def purge(self, context: "PurgeContext", config: ProductionCDNConfig, params: PurgeParams) -> None:
        if params.empty:
            return
        auth_token = context.settings.hlx_admin_managed_purgeproxy_token
        if params.paths:
            await self._purge_urls(context, config, params.paths, auth_token)
        if params.keys:
            await self._purge_keys(context, config, params.keys, auth_token)

    async def _purge_urls(self, context: "PurgeContext", config: ProductionCDNConfig, paths, auth_token) -> None:
        log = context.log
        host = config.host
        failed = []

        async def purge_url(url: str) -> None:
            request_id = context.next_request_id()
            log.info("purging url", request_id=request_id, provider=self.name, host=host, url=url)
            try:
                resp = await context.http_client.post(
                    url,
                    headers={"accept": "application/json", "x-aem-purge-key": auth_token or ""},
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

        urls = [f"{PURGE_PROXY_URL}/purgeurl/{host}{path}" for path in paths]
        await process_queue(urls, purge_url, URL_PURGE_CONCURRENCY)
        if failed:
            raise PurgeError(f"[{self.name}] {host} purging {len(paths)} url(s) failed")
        log.info("url purge succeeded", provider=self.name, host=host, count=len(paths))

    async def _purge_keys(self, context: "PurgeContext", config: ProductionCDNConfig, keys, auth_token) -> None:
        log = context.log
        target = config.env_id or config.host
        url = f"{PURGE_PROXY_URL}/purge/{target}"
        for batch in chunked(keys, MAX_KEYS_PER_REQUEST):
            request_id = context.next_request_id()
            log.info("purging keys", request_id=request_id, provider=self.name, host=target, keys=batch)
            headers = {
                "accept": "application/json",
                "x-aem-purge-key": auth_token or "",
                "Surrogate-Key": " ".join(batch),
            }
            try:
                resp = await context.http_client.post(url, headers=headers)
            except httpx.HTTPError as e:
                msg = f"[{request_id}] [{self.name}] {target} purging {len(batch)} surrogate key(s) failed: {e}"
                log.error(msg)
                raise PurgeError(msg) from e
            if not resp.is_success:
                msg = (
                    f"[{self.name}] {target} purging {len(batch)} surrogate key(s) failed: "
                    f"{resp.status_code} - {resp.text}"
                )
                log.error(msg)
                raise PurgeError(msg)
            log.info("key purge succeeded", provider=self.name, host=target, count=len(batch))
