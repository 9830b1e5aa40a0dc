"""Shared fixtures for cache purge tests."""

import json
from typing import Callable, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from cache_purge.core.config import Settings
from cache_purge.core.context import PurgeContext
from cache_purge.models import ProjectConfig, ResourceInfo
from cache_purge.services.purge_service import PurgeService

CONTENT_BUS_ID = "853bced1f82a05e9d27a8f63ecac59e70d9c14680dc5e417429f65e988f"

SITE_CONFIG = {
    "content": {
        "contentBusId": CONTENT_BUS_ID,
        "source": {"type": "onedrive", "url": "https://adobe.sharepoint.com/sites/cg-helix/Shared%20Documents/helix-test-content-onedrive"},
    },
    "code": {
        "owner": "owner",
        "repo": "repo",
    },
    "headers": {},
    "cdn": {
        "prod": {
            "host": "www.example.com",
        },
    },
}


class MockCDN:
    """Records outgoing requests and answers them from registered routes."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: List[tuple] = []

    def route(self, predicate: Callable[[httpx.Request], bool], response):
        """Answer matching requests with a response (or a callable returning one)."""
        self.routes.append((predicate, response))

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for predicate, response in self.routes:
            if predicate(request):
                if callable(response):
                    return response(request)
                return response
        if "api.cloudflare.com" in request.url.host:
            return httpx.Response(200, json={"success": True})
        return httpx.Response(200, json={"status": "ok"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def find(self, host: str, path_prefix: str = "") -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.url.host == host and r.url.path.startswith(path_prefix)
        ]

    @staticmethod
    def body(request: httpx.Request) -> Dict:
        return json.loads(request.content)


def make_settings(**overrides) -> Settings:
    values = dict(
        hlx_fastly_purge_token="fastly-token",
        cloudflare_purge_token="cloudflare-token",
        hlx_live_zone_id="hlx-live-zone",
        hlx_cloudflare_live_zone_id="hlx-cloudflare-live-zone",
        hlx_page_zone_id="hlx-page-zone",
        hlx_cloudflare_page_zone_id="hlx-cloudflare-page-zone",
        aem_live_zone_id="aem-live-zone",
        aem_cloudflare_live_zone_id="aem-cloudflare-live-zone",
        aem_page_zone_id="aem-page-zone",
        aem_cloudflare_page_zone_id="aem-cloudflare-page-zone",
        hlx_admin_managed_purgeproxy_token="managed-token",
        purge_grace_period=0,
        cloudfront_retry_delay=0,
    )
    values.update(overrides)
    return Settings(**values)


def make_resolver(cloudflare_hosts=()) -> Mock:
    resolver = Mock()
    resolver.is_cloudflare_zone = AsyncMock(side_effect=lambda host: host in cloudflare_hosts)
    return resolver


def make_project_config(prod: Optional[Dict] = None, **overrides) -> ProjectConfig:
    data = json.loads(json.dumps(SITE_CONFIG))
    if prod is not None:
        data["cdn"]["prod"] = prod
    data.update(overrides)
    return ProjectConfig.model_validate(data)


def make_info(web_path: str = "/", resource_path: Optional[str] = None, ref: str = "main", **kwargs) -> ResourceInfo:
    if resource_path is None:
        if web_path.endswith("/"):
            resource_path = f"{web_path}index.md"
        elif web_path.rfind(".") > web_path.rfind("/"):
            resource_path = web_path
        else:
            resource_path = f"{web_path}.md"
    raw_path = kwargs.pop("raw_path", web_path)
    return ResourceInfo(
        owner="owner",
        repo="repo",
        org="org",
        site="site",
        ref=ref,
        web_path=web_path,
        resource_path=resource_path,
        raw_path=raw_path,
        **kwargs,
    )


@pytest.fixture
def cdn():
    return MockCDN()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def make_context(cdn, settings):
    """Factory for purge contexts wired to the mock CDN."""
    def factory(config: Optional[ProjectConfig] = None, **kwargs) -> PurgeContext:
        kwargs.setdefault("settings", settings)
        kwargs.setdefault("resolver", make_resolver())
        return PurgeContext(
            config=config or make_project_config(),
            http_client=cdn.client(),
            **kwargs,
        )
    return factory


@pytest.fixture
def make_service(make_context):
    def factory(config: Optional[ProjectConfig] = None, **kwargs) -> PurgeService:
        return PurgeService(make_context(config, **kwargs))
    return factory
