"""Tests for Cloudflare zone detection."""

from unittest.mock import AsyncMock, Mock

import dns.exception
import dns.resolver
import pytest

from cache_purge.services.zone_resolver import ZoneResolver


def cname_record(target: str) -> Mock:
    record = Mock()
    record.target.to_text.return_value = target
    return record


def fake_dns(chain: dict) -> Mock:
    """A resolver answering CNAME lookups from a `{name: target}` mapping."""
    async def resolve(name, rdtype):
        assert rdtype == "CNAME"
        if name not in chain:
            raise dns.resolver.NXDOMAIN()
        return [cname_record(chain[name])]

    resolver = Mock()
    resolver.resolve = AsyncMock(side_effect=resolve)
    return resolver


class TestZoneResolver:
    @pytest.mark.asyncio
    async def test_follows_chain(self):
        resolver = ZoneResolver(fake_dns({
            "main--site--org.aem.live": "aem.live",
            "aem.live": "aem.live.cdn.cloudflare.net",
        }))
        assert await resolver.resolve_cname("main--site--org.aem.live") == [
            "aem.live",
            "aem.live.cdn.cloudflare.net",
        ]
        assert await resolver.is_cloudflare_zone("main--site--org.aem.live")

    @pytest.mark.asyncio
    async def test_not_cloudflare(self):
        resolver = ZoneResolver(fake_dns({"main--site--org.aem.live": "dualstack.fastly.net"}))
        assert not await resolver.is_cloudflare_zone("main--site--org.aem.live")

    @pytest.mark.asyncio
    async def test_lookup_error(self):
        """Failed lookups mean the host is not treated as a Cloudflare zone."""
        dns_resolver = Mock()
        dns_resolver.resolve = AsyncMock(side_effect=dns.exception.Timeout())
        resolver = ZoneResolver(dns_resolver)

        assert await resolver.resolve_cname("main--site--org.aem.live") == []
        assert not await resolver.is_cloudflare_zone("main--site--org.aem.live")

    @pytest.mark.asyncio
    async def test_max_depth(self):
        chain = {f"host{i}.example": f"host{i + 1}.example" for i in range(10)}
        resolver = ZoneResolver(fake_dns(chain), max_depth=3)

        assert await resolver.resolve_cname("host0.example") == [
            "host1.example",
            "host2.example",
            "host3.example",
        ]
