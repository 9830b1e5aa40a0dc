"""Akamai production CDN purge client (Fast Purge API v3, EdgeGrid auth)."""

import asyncio
import base64
import hashlib
import hmac
import json
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional
from urllib.parse import urlsplit

import httpx

from cache_purge.clients.base import BasePurgeClient, PurgeError
from cache_purge.clients.registry import PurgeClientRegistry
from cache_purge.models import CDNType, ProductionCDNConfig, PurgeParams

if TYPE_CHECKING:
    from cache_purge.core.context import PurgeContext


def _b64_sha256(data: str) -> str:
    return base64.b64encode(hashlib.sha256(data.encode("utf-8")).digest()).decode("ascii")


def _b64_hmac(secret: str, data: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), data.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def edgegrid_timestamp(now: Optional[datetime] = None) -> str:
    """EdgeGrid timestamp, e.g. `20240102T03:04:05+0000`."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y%m%dT%H:%M:%S+0000")


def content_hash(method: str, body: str) -> str:
    if method.upper() == "POST" and body:
        return _b64_sha256(body)
    return ""


def data_to_sign(method: str, url: str, body: str, auth_header: str) -> str:
    """Tab separated description of the request that gets signed."""
    parts = urlsplit(url)
    path = f"{parts.path}?{parts.query}" if parts.query else parts.path
    return "\t".join([
        method.upper(),
        parts.scheme,
        parts.netloc,
        path,
        "",
        content_hash(method, body),
        auth_header,
    ])


def compute_authorization_header(
    config: ProductionCDNConfig,
    method: str,
    url: str,
    body: str,
    timestamp: Optional[str] = None,
    nonce: Optional[str] = None,
) -> str:
    """Build an `EG1-HMAC-SHA256` authorization header for the request."""
    timestamp = timestamp or edgegrid_timestamp()
    nonce = nonce or str(uuid.uuid4())
    auth_header = (
        f"EG1-HMAC-SHA256 client_token={config.client_token};"
        f"access_token={config.access_token};"
        f"timestamp={timestamp};"
        f"nonce={nonce};"
    )
    signing_key = _b64_hmac(config.client_secret, timestamp)
    signature = _b64_hmac(signing_key, data_to_sign(method, url, body, auth_header))
    return f"{auth_header}signature={signature}"


@PurgeClientRegistry.register(CDNType.AKAMAI)
class AkamaiPurgeClient(BasePurgeClient):
    """Purges Akamai by URL and by cache tag, URLs first."""

    name = "akamai"
    required_properties = ("host", "endpoint", "clientSecret", "clientToken", "accessToken")

    async def send_purge_request(
        self,
        context: "PurgeContext",
        config: ProductionCDNConfig,
        purge_type: str,
        objects: List[str],
    ) -> httpx.Response:
        url = f"https://{config.endpoint}/ccu/v3/delete/{purge_type}/production"
        body = json.dumps({"objects": objects}, separators=(",", ":"))
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": compute_authorization_header(config, "POST", url, body),
        }
        return await asyncio.wait_for(
            context.http_client.post(url, headers=headers, content=body),
            timeout=context.settings.akamai_timeout,
        )

    async def _purge(
        self,
        context: "PurgeContext",
        config: ProductionCDNConfig,
        purge_type: str,
        label: str,
        objects: List[str],
    ) -> None:
        log = context.log
        host = config.host
        request_id = context.next_request_id()
        log.info(f"purging {label}s", request_id=request_id, provider=self.name, host=host, objects=objects)
        try:
            resp = await self.send_purge_request(context, config, purge_type, objects)
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            msg = f"[{request_id}] [{self.name}] {host} {label} purge failed: {e!r}"
            log.error(msg)
            raise PurgeError(msg) from e
        if not resp.is_success:
            msg = f"[{request_id}] [{self.name}] {host} {label} purge failed: {resp.status_code} - {resp.text}"
            log.error(msg)
            raise PurgeError(msg)
        log.info(
            f"{label} purge succeeded",
            request_id=request_id,
            provider=self.name,
            host=host,
            status=resp.status_code,
        )

    async def purge(self, context: "PurgeContext", config: ProductionCDNConfig, params: PurgeParams) -> None:
        if params.paths:
            urls = [f"https://{config.host}{path}" for path in params.paths]
            await self._purge(context, config, "url", "url", urls)
        if params.keys:
            await self._purge(context, config, "tag", "key", list(params.keys))
