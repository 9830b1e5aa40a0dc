"""Amazon Cloudfront production CDN purge client."""

import re
import uuid
from typing import TYPE_CHECKING, Dict, List
from xml.sax.saxutils import escape

import httpx
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from cache_purge.clients.base import BasePurgeClient, PurgeError
from cache_purge.clients.registry import PurgeClientRegistry
from cache_purge.models import CDNType, ProductionCDNConfig, PurgeParams

if TYPE_CHECKING:
    from cache_purge.core.context import PurgeContext

CLOUDFRONT_API_URL = "https://cloudfront.amazonaws.com"
CLOUDFRONT_API_VERSION = "2020-05-31"
CLOUDFRONT_REGION = "us-east-1"
MAX_RETRIES = 2

_MEDIA_PATH = re.compile(r"/media_[0-9a-f]{40,}\.[0-9a-z]+$")


class _ServerError(Exception):
    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"server error {response.status_code}")


def invalidation_paths(params: PurgeParams) -> List[str]:
    """Cloudfront cannot purge by key, so any key turns into a full invalidation."""
    if params.keys:
        return ["/*"]
    paths = []
    for path in params.paths:
        if _MEDIA_PATH.search(path) or path.endswith(".json"):
            # purge all query string variants
            paths.append(f"{path}*")
        else:
            paths.append(path)
    return paths


def invalidation_batch(paths: List[str], caller_reference: str) -> str:
    items = "".join(f"<Path>{escape(path)}</Path>" for path in paths)
    return (
        f'<InvalidationBatch xmlns="http://cloudfront.amazonaws.com/doc/{CLOUDFRONT_API_VERSION}/">'
        f"<Paths><Quantity>{len(paths)}</Quantity><Items>{items}</Items></Paths>"
        f"<CallerReference>{caller_reference}</CallerReference>"
        "</InvalidationBatch>"
    )


def sign_request(config: ProductionCDNConfig, url: str, body: str) -> Dict[str, str]:
    """Return SigV4 signed headers for a Cloudfront API POST."""
    request = AWSRequest(method="POST", url=url, data=body, headers={"content-type": "text/xml"})
    credentials = Credentials(config.access_key_id, config.secret_access_key)
    SigV4Auth(credentials, "cloudfront", CLOUDFRONT_REGION).add_auth(request)
    return dict(request.headers.items())


@PurgeClientRegistry.register(CDNType.CLOUDFRONT)
class CloudfrontPurgeClient(BasePurgeClient):
    """Creates Cloudfront invalidations for the purged paths."""

    name = "cloudfront"
    required_properties = ("distributionId", "accessKeyId", "secretAccessKey")

    def supports_purge_by_key(self, config: ProductionCDNConfig) -> bool:
        return False

    async def purge(self, context: "PurgeContext", config: ProductionCDNConfig, params: PurgeParams) -> None:
        log = context.log
        host = config.host
        paths = invalidation_paths(params)
        if not paths:
            return

        url = f"{CLOUDFRONT_API_URL}/{CLOUDFRONT_API_VERSION}/distribution/{config.distribution_id}/invalidation"
        body = invalidation_batch(paths, str(uuid.uuid4()))
        headers = sign_request(config, url, body)

        request_id = context.next_request_id()
        log.info("purging paths", request_id=request_id, provider=self.name, host=host, paths=paths)

        def log_retry(retry_state):
            log.debug(
                "purge failed, retrying",
                provider=self.name,
                host=host,
                error=repr(retry_state.outcome.exception()),
                attempt=retry_state.attempt_number,
                max_retries=MAX_RETRIES,
            )

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(MAX_RETRIES + 1),
                wait=wait_fixed(context.settings.cloudfront_retry_delay),
                retry=retry_if_exception_type((httpx.TransportError, _ServerError)),
                before_sleep=log_retry,
                reraise=True,
            ):
                with attempt:
                    resp = await context.http_client.post(url, headers=headers, content=body)
                    if resp.status_code >= 500:
                        raise _ServerError(resp)
        except _ServerError as e:
            resp = e.response
        except httpx.HTTPError as e:
            msg = f"[{request_id}] [{self.name}] {host} purge failed: {e!r}"
            log.error(msg)
            raise PurgeError(msg) from e

        if not resp.is_success:
            msg = f"[{request_id}] [{self.name}] {host} purge failed: {resp.status_code} - {resp.text}"
            log.error(msg)
            raise PurgeError(msg)
        log.info("purge succeeded", request_id=request_id, provider=self.name, host=host, status=resp.status_code)
