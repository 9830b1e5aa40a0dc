"""
Purge orchestration across the internal, inner and production CDNs.

A purge runs in three stages:

1. internal CDN (Fastly): surrogate key purge and URL purge, concurrently
2. inner CDN (Cloudflare zones), only for hostnames that resolve to Cloudflare
3. production (BYO) CDNs of the site and its siblings, for `main` live purges
"""

import asyncio
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import httpx
import structlog

from cache_purge.clients import (
    PurgeError,
    PurgeConfigError,
    get_purge_client,
)
from cache_purge.clients.cloudflare import CLOUDFLARE_API_URL, cloudflare_purge_succeeded
from cache_purge.clients.fastly import FASTLY_API_URL
from cache_purge.core.context import PurgeContext
from cache_purge.models import (
    CONFIG_JSON_PATH,
    HEADERS_JSON_PATH,
    METADATA_JSON_PATH,
    CDNType,
    ProductionCDNConfig,
    ProductionSite,
    PurgeInfo,
    PurgeOutcome,
    PurgeParams,
    PurgeScope,
    ResourceInfo,
    content_key_prefixes,
    prefixed_keys,
)
from cache_purge.services.site_config import SiteConfigError
from cache_purge.utils.keys import (
    PathKeyContext,
    chunked,
    compute_surrogate_key,
    dedupe,
    remove_redundant_keys,
    remove_redundant_paths,
)
from cache_purge.utils.logging import log_level_for_status
from cache_purge.utils.queue import cartesian, process_queue

logger = structlog.get_logger(__name__)

HLX_LIVE_SERVICE_ID = "1PluOUd9jqp1prQ8PHd85n"  # hlx.live
AEM_LIVE_SERVICE_ID = "In8SInYz3UQGjyG0GPZM42"  # aem.live
AEM_PAGE_SERVICE_ID = AEM_LIVE_SERVICE_ID  # aem.page
CONFIG_AEM_PAGE_SERVICE_ID = "SIDuP3HxleUgBDR3Gi8T24"  # config.aem.page

SERVICE_NAMES = {
    HLX_LIVE_SERVICE_ID: "hlx.live",
    AEM_LIVE_SERVICE_ID: "aem.(live|page)",
    CONFIG_AEM_PAGE_SERVICE_ID: "config.aem.page",
}

MAX_KEYS_PER_REQUEST = 256
CODE_KEY_THRESHOLD = 10
DETAILS_DISPLAY_LIMIT = 10


@dataclass(frozen=True)
class InternalCDNFamily:
    """Fastly services and domain templates of one scope."""
    services: Tuple[str, ...]
    domains: Tuple[str, ...]


LIVE_FAMILY = InternalCDNFamily(
    services=(HLX_LIVE_SERVICE_ID, AEM_LIVE_SERVICE_ID),
    domains=(
        "{ref}--{repo}--{owner}.hlx.live",
        "{ref}--{repo}--{owner}.hlx-fastly.live",
        "{ref}--{site}--{org}.aem.live",
        "{ref}--{site}--{org}.aem-fastly.live",
    ),
)

PREVIEW_FAMILY = InternalCDNFamily(
    services=(AEM_PAGE_SERVICE_ID,),
    domains=(
        "{ref}--{site}--{org}.aem.page",
        "{ref}--{site}--{org}.aem-fastly.page",
    ),
)

CONFIG_FAMILY = InternalCDNFamily(
    services=(CONFIG_AEM_PAGE_SERVICE_ID,),
    domains=(
        "config.aem.page",
        "config.aem-fastly.page",
    ),
)

SCOPE_FAMILIES = (
    (PurgeScope.LIVE, LIVE_FAMILY),
    (PurgeScope.PREVIEW, PREVIEW_FAMILY),
    (PurgeScope.CONFIG, CONFIG_FAMILY),
)


def internal_purge_targets(info: ResourceInfo, scope: PurgeScope) -> Tuple[List[str], List[str]]:
    """Return the (deduplicated) Fastly services and the domains for a scope."""
    services: List[str] = []
    domains: List[str] = []
    for flag, family in SCOPE_FAMILIES:
        if scope & flag:
            services.extend(family.services)
            domains.extend(family.domains)
    fields = dict(ref=info.ref, repo=info.repo, owner=info.owner, site=info.site, org=info.org)
    return dedupe(services), [domain.format(**fields) for domain in domains]


def get_purge_path_variants(paths: Union[str, Iterable[str]]) -> List[str]:
    """Each path plus the `.plain.html` variant the pipeline serves for it."""
    if isinstance(paths, str):
        paths = [paths]
    variants = []
    for path in paths:
        variants.append(path)
        last_slash = path.rfind("/")
        last_dot = path.rfind(".")
        if last_dot < last_slash:
            if last_slash == len(path) - 1:
                variants.append(f"{path}index.plain.html")
            else:
                variants.append(f"{path}.plain.html")
    return variants


def _display(values: Sequence[str]) -> str:
    shown = list(values[:DETAILS_DISPLAY_LIMIT])
    if len(values) > DETAILS_DISPLAY_LIMIT:
        shown.append("...")
    return ",".join(shown)


@dataclass(frozen=True)
class ZonePurge:
    """An inner CDN Cloudflare zone and the cache tag prefix its paths use."""
    cdn: ProductionCDNConfig
    prefix: str = ""


class PurgeService:
    """Purges cached copies of resources, code and configuration."""

    def __init__(self, context: PurgeContext):
        self.context = context

    @property
    def log(self):
        return self.context.log

    @property
    def settings(self):
        return self.context.settings

    def _key_context(self, info: ResourceInfo, ref: Optional[str] = None) -> PathKeyContext:
        return PathKeyContext(
            content_bus_id=self.context.config.content_bus_id,
            ref=ref or info.ref,
            repo=info.repo,
            owner=info.owner,
        )

    # Internal CDN

    async def surrogate(
        self,
        info: ResourceInfo,
        keys: Sequence[str],
        scope: PurgeScope = PurgeScope.LIVE,
    ) -> PurgeOutcome:
        """Purge surrogate keys on every internal Fastly service of the scope."""
        fastly_key = self.settings.hlx_fastly_purge_token
        if not fastly_key:
            self.log.error("unable to perform surrogate purge. no HLX_FASTLY_PURGE_TOKEN configured.")
            return PurgeOutcome.failure(500, "purge token missing.")

        services, _ = internal_purge_targets(info, scope)
        payloads = [{"surrogate_keys": batch} for batch in chunked(list(keys), MAX_KEYS_PER_REQUEST)]
        headers = {
            "content-type": "application/json",
            "accept": "application/json",
            "fastly-key": fastly_key,
        }

        async def send(item) -> int:
            service_id, body = item
            request_id = self.context.next_request_id()
            self.log.info(
                "purging keys",
                request_id=request_id,
                provider="fastly",
                service=SERVICE_NAMES.get(service_id, service_id),
                keys=body["surrogate_keys"],
            )
            url = f"{FASTLY_API_URL}/service/{service_id}/purge"
            return await self._send_internal(request_id, "fastly", "POST", url, headers, body)

        items = cartesian(services, payloads)
        statuses = await process_queue(items, send, self.settings.internal_concurrency)
        errors = [
            f"[fastly] {SERVICE_NAMES.get(service_id, service_id)} key purge failed: {status}"
            for (service_id, _), status in zip(items, statuses)
            if status >= 300
        ]
        return PurgeOutcome.aggregate(statuses, errors=errors)

    async def url(
        self,
        info: ResourceInfo,
        paths: Sequence[str],
        scope: PurgeScope = PurgeScope.LIVE,
    ) -> PurgeOutcome:
        """Purge paths on every internal Fastly domain of the scope."""
        _, domains = internal_purge_targets(info, scope)
        return await self._fastly_url_purge(domains, paths)

    async def _fastly_url_purge(self, hosts: Sequence[str], paths: Sequence[str], error: str = "error from purge") -> PurgeOutcome:
        fastly_key = self.settings.hlx_fastly_purge_token
        if not fastly_key:
            self.log.error("unable to perform url purge. no HLX_FASTLY_PURGE_TOKEN configured.")
            return PurgeOutcome.failure(500, "purge token missing.")
        headers = {"accept": "application/json", "fastly-key": fastly_key}

        async def send(item) -> int:
            host, path = item
            request_id = self.context.next_request_id()
            self.log.info("purging url", request_id=request_id, provider="fastly", host=host, path=path)
            url = f"{FASTLY_API_URL}/purge/{host}{path}"
            return await self._send_internal(request_id, "fastly", "POST", url, headers)

        items = cartesian(hosts, paths)
        statuses = await process_queue(items, send, self.settings.internal_concurrency)
        errors = [
            f"[fastly] {host}{path} url purge failed: {status}"
            for (host, path), status in zip(items, statuses)
            if status >= 300
        ]
        return PurgeOutcome.aggregate(statuses, error, errors)

    async def _send_internal(self, request_id, provider, method, url, headers, body=None) -> int:
        """Send an internal CDN purge request and return its status.

        Network failures count as a 502 so they fail the stage without
        aborting the other requests of the batch.
        """
        try:
            resp = await self.context.http_client.request(method, url, headers=headers, json=body)
        except httpx.HTTPError as e:
            self.log.error("purge request failed", request_id=request_id, provider=provider, error=repr(e))
            return 502
        level = log_level_for_status(resp.status_code)
        getattr(self.log, level)(
            "purge response",
            request_id=request_id,
            provider=provider,
            status=resp.status_code,
            body=resp.text,
        )
        return resp.status_code

    # Inner CDN

    async def _cloudflare_zones(self, info: ResourceInfo, scope: PurgeScope) -> List[ZonePurge]:
        settings = self.settings
        token = settings.cloudflare_purge_token
        resolver = self.context.resolver
        org, site, ref = info.org, info.site, info.ref
        rro = f"{ref}--{info.repo}--{info.owner}"
        rso = f"{ref}--{site}--{org}"
        zones: List[ZonePurge] = []

        def zone(host: str, zone_id: Optional[str], prefix: str = "") -> None:
            if zone_id:
                zones.append(ZonePurge(
                    cdn=ProductionCDNConfig(
                        type=CDNType.CLOUDFLARE.value,
                        plan="enterprise",
                        host=host,
                        zone_id=zone_id,
                        api_token=token,
                    ),
                    prefix=prefix,
                ))

        if scope & PurgeScope.LIVE:
            if await resolver.is_cloudflare_zone(f"main--{site}--{org}.hlx.live"):
                zone(f"{rso}.hlx-cloudflare.live", settings.hlx_cloudflare_live_zone_id, rro)
                zone(f"{rso}.hlx.live", settings.hlx_live_zone_id, rro)
            if await resolver.is_cloudflare_zone(f"main--{site}--{org}.aem.live"):
                zone(f"{rso}.aem-cloudflare.live", settings.aem_cloudflare_live_zone_id, rso)
                zone(f"{rso}.aem.live", settings.aem_live_zone_id, rso)

        if scope & PurgeScope.PREVIEW:
            if await resolver.is_cloudflare_zone(f"main--{site}--{org}.aem.page"):
                zone(f"{rso}.aem-cloudflare.page", settings.aem_cloudflare_page_zone_id, rso)
                zone(f"{rso}.aem.page", settings.aem_page_zone_id, rso)

        if scope & PurgeScope.CONFIG:
            if await resolver.is_cloudflare_zone("config.aem.page"):
                zone("config.aem.page", settings.aem_page_zone_id)
            # requested by the pipeline independent of the zone mapping
            zone("config.aem-cloudflare.page", settings.aem_cloudflare_page_zone_id)

        return zones

    async def purge_cloudflare_zones(self, info: ResourceInfo, params: PurgeParams, scope: PurgeScope) -> None:
        """Purge the inner CDN Cloudflare zones that serve the site."""
        if params.empty or not self.settings.cloudflare_purge_token:
            return
        zones = await self._cloudflare_zones(info, scope)
        if not zones:
            return

        async def purge_zone(zone: ZonePurge) -> None:
            # the zones tag paths with the site prefix
            paths = [f"{zone.prefix}{path}" for path in params.paths]
            await self.purge_production_cdn(zone.cdn, PurgeParams(keys=list(params.keys), paths=paths))

        await process_queue(zones, purge_zone, len(zones))

    # Production CDN

    async def purge_production_cdn(self, cdn_config: ProductionCDNConfig, params: PurgeParams) -> None:
        """Purge a production CDN, skipping (with a warning) incomplete configs."""
        if params.empty:
            return
        cdn_type = cdn_config.type
        client = get_purge_client(cdn_type)
        try:
            client.validate(cdn_config)
        except PurgeConfigError as e:
            # customers might have deliberately configured their setup only partially
            self.log.warning(f'ignoring production cdn purge config for type "{cdn_type}": {e}')
            return

        details = [f"[{cdn_type}] purging production CDN on {cdn_config.host}"]
        if params.keys:
            details.append(f"keys: [{_display(params.keys)}]")
        if params.paths:
            details.append(f"paths: [{_display(params.paths)}]")
        self.context.details.extend(details)
        await client.purge(self.context, cdn_config, params)

    async def _purge_production_cdn_config(
        self,
        info: ResourceInfo,
        ref: str,
        cdn_config: ProductionCDNConfig,
        production_params: PurgeParams,
    ) -> Optional[PurgeOutcome]:
        if not cdn_config.type:
            return None
        client = get_purge_client(cdn_config.type)
        key_context = self._key_context(info, ref)
        if client.supports_purge_by_key(cdn_config):
            params = remove_redundant_paths(key_context, production_params)
        else:
            params = remove_redundant_keys(key_context, production_params)

        if not params.empty:
            # grace period for the inner purges to propagate
            await asyncio.sleep(self.settings.purge_grace_period)
        try:
            await self.purge_production_cdn(cdn_config, params)
        except (PurgeError, httpx.HTTPError) as e:
            msg = f"failed to purge production cdn {cdn_config.host}: {e}"
            self.context.errors.append(msg)
            self.log.error(msg)
            return PurgeOutcome.failure(502, msg)
        return PurgeOutcome.success()

    async def fetch_production_cdn_configs(
        self,
        info: ResourceInfo,
        sites: Sequence[ProductionSite],
    ) -> List[ProductionCDNConfig]:
        async def fetch(site: ProductionSite) -> Optional[ProductionCDNConfig]:
            if site.org == info.org and site.site == info.site:
                return self.context.config.production_cdn
            try:
                config = await self.context.load_site_config(site.org, site.site)
            except SiteConfigError as e:
                msg = f"unable to load config of {site.org}/{site.site}: {e}"
                self.context.errors.append(msg)
                self.log.error(msg)
                return None
            return config.production_cdn if config else None

        configs = await process_queue(sites, fetch)
        return [config for config in configs if config]

    # Entry points

    async def perform(
        self,
        info: ResourceInfo,
        infos: Sequence[PurgeInfo],
        scope: PurgeScope,
        ref: Optional[str] = None,
        sites: Sequence[ProductionSite] = (),
    ) -> PurgeOutcome:
        """Purge keys and paths on the internal, inner and production CDNs."""
        ref = ref or info.ref
        keys = dedupe(i.key for i in infos if i.key is not None)
        paths = dedupe(i.path for i in infos if i.path is not None)

        # the production CDNs get their own redundancy pass
        production_params = PurgeParams(keys=list(keys), paths=list(paths))

        params = remove_redundant_paths(self._key_context(info, ref), PurgeParams(keys=keys, paths=paths))
        self.log.info("performing purge", keys=params.keys, paths=params.paths)

        tasks = []
        if params.keys:
            tasks.append(self.surrogate(info, params.keys, scope))
        if params.paths:
            # code purges may force a purge of another branch
            tasks.append(self.url(info.with_ref(ref), params.paths, scope))
        outcomes: List[PurgeOutcome] = list(await asyncio.gather(*tasks))

        try:
            await self.purge_cloudflare_zones(info, params, scope)
        except (PurgeError, httpx.HTTPError) as e:
            msg = f"failed to purge cloudflare zone: {e}"
            self.log.error(msg)
            outcomes.append(PurgeOutcome.failure(502, msg))

        if ref != "main":
            self.log.info("ignoring production purge on non-main branch", ref=ref)
        elif not scope & PurgeScope.LIVE:
            self.log.info("ignoring production purge when scope does not include live", scope=int(scope))
        else:
            cdn_configs = await self.fetch_production_cdn_configs(
                info,
                [*sites, ProductionSite(org=info.org, site=info.site)],
            )
            results = await process_queue(
                cdn_configs,
                lambda cdn_config: self._purge_production_cdn_config(info, ref, cdn_config, production_params),
            )
            outcomes.extend(result for result in results if result is not None)

        return PurgeOutcome.combine(outcomes)

    async def config(
        self,
        info: ResourceInfo,
        keys: Sequence[str] = (),
        purge_org: bool = False,
        purge_head: bool = False,
    ) -> PurgeOutcome:
        """Purge the site (or org) configuration and everything that caches it."""
        if purge_org:
            config_key = compute_surrogate_key(f"{info.org}_config.json")
        else:
            config_key = compute_surrogate_key(f"{info.site}--{info.org}_config.json")
        purge_keys = [config_key]
        if purge_head:
            purge_keys.append(f"{info.rro}_head")

        outcomes = [await self.surrogate(info, purge_keys, PurgeScope.CONFIG)]
        try:
            await self.purge_cloudflare_zones(info, PurgeParams(keys=purge_keys), PurgeScope.CONFIG)
        except (PurgeError, httpx.HTTPError) as e:
            msg = f"failed to purge cloudflare config zone: {e}"
            self.log.error(msg)
            outcomes.append(PurgeOutcome.failure(502, msg))

        # preview and live cache the config as well
        infos = [PurgeInfo.of_key(key) for key in [*keys, *purge_keys]]
        outcomes.append(await self.perform(info, infos, PurgeScope.PREVIEW_AND_LIVE))
        return PurgeOutcome.combine(outcomes)

    async def resource(self, info: ResourceInfo, scope: PurgeScope = PurgeScope.LIVE) -> PurgeOutcome:
        """Purge a single content resource, picking the keys by resource type."""
        project = self.context.config
        content_bus_id = project.content_bus_id
        content_path_key = compute_surrogate_key(f"{content_bus_id}{info.web_path}")
        code_path_key = compute_surrogate_key(f"{info.rro}{info.web_path}")
        prefixes = content_key_prefixes(scope)

        if info.resource_path in project.metadata_paths:
            config_outcome = await self.config(info)
            outcome = await self.perform(info, [
                *prefixed_keys(prefixes, f"{content_bus_id}_metadata"),
                *prefixed_keys(prefixes, content_path_key),
            ], scope, info.ref)
            return PurgeOutcome.combine([config_outcome, outcome])

        if info.resource_path in (HEADERS_JSON_PATH, CONFIG_JSON_PATH) and self.context.headers_changed:
            return await self.config(info, keys=[content_bus_id, f"p_{content_bus_id}"])

        if info.resource_path.endswith(METADATA_JSON_PATH):
            folder = info.resource_path[:-len(METADATA_JSON_PATH)]
            folder_key = compute_surrogate_key(f"{content_bus_id}{folder}")
            return await self.perform(info, [
                *prefixed_keys(prefixes, f"{folder_key}_metadata"),
                *prefixed_keys(prefixes, content_path_key),
            ], scope, info.ref)

        if info.web_path == "/head":
            return await self.perform(info, [PurgeInfo.of_key(f"{info.rro}_head")], scope, info.ref)

        if info.resource_path.endswith(".json"):
            return await self.perform(info, [
                *prefixed_keys(prefixes, content_path_key),
                PurgeInfo.of_key(code_path_key),
                PurgeInfo.of_path(info.web_path),
            ], scope, info.ref)

        if info.raw_path.endswith(".html"):
            raw_key = compute_surrogate_key(f"{content_bus_id}{info.raw_path}")
            return await self.perform(info, [
                *prefixed_keys(prefixes, raw_key),
                PurgeInfo.of_path(info.raw_path),
            ], scope, info.ref)

        return await self.perform(info, [
            *[PurgeInfo.of_path(path) for path in get_purge_path_variants(info.web_path)],
            *prefixed_keys(prefixes, content_path_key),
            PurgeInfo.of_key(code_path_key),
        ], scope, info.ref)

    async def code(self, info: ResourceInfo, paths: Sequence[str]) -> PurgeOutcome:
        """Purge changed code bus paths on this site and its siblings."""
        sites = await self.context.query_sibling_sites(info)
        rro = info.rro
        infos: List[PurgeInfo] = []
        if len(paths) > CODE_KEY_THRESHOLD:
            infos.append(PurgeInfo.of_key(f"{rro}_code"))
        else:
            for path in paths:
                infos.append(PurgeInfo.of_key(compute_surrogate_key(f"{rro}{path}")))
                infos.append(PurgeInfo.of_path(path))
        if "/head.html" in paths:
            infos.append(PurgeInfo.of_key(f"{rro}_head"))
        if "/fstab.yaml" in paths:
            infos.append(PurgeInfo.of_key(f"{rro}_head"))
            infos.append(PurgeInfo.of_key(f"{rro}_404"))
        return await self.perform(info, infos, PurgeScope.PREVIEW_AND_LIVE, info.ref, sites)

    async def content(
        self,
        info: ResourceInfo,
        paths: Sequence[str],
        scope: PurgeScope = PurgeScope.LIVE,
    ) -> PurgeOutcome:
        content_bus_id = self.context.config.content_bus_id
        prefixes = content_key_prefixes(scope)
        infos: List[PurgeInfo] = []
        for path in paths:
            path_key = compute_surrogate_key(f"{content_bus_id}{path}")
            infos.extend(prefixed_keys(prefixes, path_key))
            infos.append(PurgeInfo.of_path(path))
        return await self.perform(info, infos, scope, info.ref)

    async def redirects(
        self,
        info: ResourceInfo,
        paths: Sequence[str],
        scope: PurgeScope = PurgeScope.LIVE,
    ) -> PurgeOutcome:
        """Like `content`, but for redirect sources given as document paths."""
        canonical = []
        for path in paths:
            last_slash = path.rfind("/")
            last_dot = path.rfind(".")
            if last_dot >= 0 and path[last_dot:] == ".md":
                path = path[:last_dot]
            if last_slash >= 0 and path[last_slash:] == "/index":
                path = path[:last_slash + 1]
            canonical.append(path)
        # the paths are kept since some production CDNs only purge by url
        return await self.content(info, canonical, scope)

    async def hlx_page(self, info: ResourceInfo, paths: Sequence[str]) -> PurgeOutcome:
        """Purge the legacy preview hostnames directly."""
        rso = info.rso
        hosts = [f"{rso}.hlx.page", f"{rso}.hlx-fastly.page"]
        outcome = await self._fastly_url_purge(hosts, paths, "[fastly] error from purge")
        if not outcome.ok:
            return outcome

        if not await self.context.resolver.is_cloudflare_zone(f"main--{info.site}--{info.org}.hlx.live"):
            return PurgeOutcome.success()
        token = self.settings.cloudflare_purge_token
        if not token:
            return PurgeOutcome.success()

        tags = [f"{rso}{path}" for path in paths]
        zone_ids = [
            zone_id
            for zone_id in (self.settings.hlx_page_zone_id, self.settings.hlx_cloudflare_page_zone_id)
            if zone_id
        ]

        async def purge_zone(zone_id: str) -> int:
            request_id = self.context.next_request_id()
            self.log.info("purging tags", request_id=request_id, provider="cloudflare", zone=zone_id, tags=tags)
            try:
                resp = await self.context.http_client.post(
                    f"{CLOUDFLARE_API_URL}/zones/{zone_id}/purge_cache",
                    headers={"Authorization": f"Bearer {token}"},
                    json={"tags": tags},
                )
            except httpx.HTTPError as e:
                self.log.error("purge request failed", request_id=request_id, provider="cloudflare", error=repr(e))
                return 502
            if cloudflare_purge_succeeded(resp):
                self.log.info("purge succeeded", request_id=request_id, provider="cloudflare", zone=zone_id)
                return resp.status_code
            level = log_level_for_status(resp.status_code)
            getattr(self.log, level)(
                "purge failed",
                request_id=request_id,
                provider="cloudflare",
                zone=zone_id,
                status=resp.status_code,
                body=resp.text,
                tags=tags,
            )
            # a 2xx without `success: true` is still a failed purge
            return resp.status_code if not resp.is_success else 502

        statuses = await process_queue(zone_ids, purge_zone, self.settings.internal_concurrency)
        errors = [
            f"[cloudflare] zone {zone_id} tag purge failed: {status}"
            for zone_id, status in zip(zone_ids, statuses)
            if status >= 300
        ]
        return PurgeOutcome.aggregate(statuses, "[cloudflare] error from purge", errors)
