"""Tests for the cache purge handler."""

from unittest.mock import AsyncMock, patch

import pytest

from cache_purge.handler import cache_handler
from cache_purge.models import PurgeOutcome, PurgeScope

from conftest import make_info


class TestCacheHandler:
    @pytest.mark.asyncio
    async def test_rejects_get(self, cdn, make_service):
        outcome = await cache_handler(make_service(), make_info(), "GET")
        assert outcome.status == 405
        assert cdn.requests == []

    @pytest.mark.asyncio
    async def test_purges_preview_and_live(self, make_service):
        service = make_service()
        with patch.object(service, "resource", AsyncMock(return_value=PurgeOutcome.success())) as resource:
            outcome = await cache_handler(service, make_info("/foo"), "POST")

        assert outcome.ok
        info, scope = resource.call_args.args
        assert info.ref == "main"
        assert scope == PurgeScope.PREVIEW_AND_LIVE

    @pytest.mark.asyncio
    async def test_branch(self, make_service):
        """A branch purges the resource on that branch instead."""
        service = make_service()
        with patch.object(service, "resource", AsyncMock(return_value=PurgeOutcome.success())) as resource:
            await cache_handler(service, make_info("/foo"), "post", branch="feature")

        assert resource.call_args.args[0].ref == "feature"
        assert resource.call_args.args[0].web_path == "/foo"
