"""Tests for purge value objects and status helpers."""

import pytest

from cache_purge.models import (
    ProductionCDNConfig,
    ProjectConfig,
    PurgeInfo,
    PurgeOutcome,
    PurgeScope,
    ResourceInfo,
    content_key_prefixes,
)
from cache_purge.utils.logging import log_level_for_status, propagate_status_code

from conftest import SITE_CONFIG


class TestPurgeScope:
    def test_union(self):
        assert PurgeScope.PREVIEW_AND_LIVE == PurgeScope.PREVIEW | PurgeScope.LIVE
        assert int(PurgeScope.PREVIEW_AND_LIVE) == 3

    def test_key_prefixes(self):
        assert content_key_prefixes(PurgeScope.LIVE) == [""]
        assert content_key_prefixes(PurgeScope.PREVIEW) == ["p_"]
        assert content_key_prefixes(PurgeScope.PREVIEW_AND_LIVE) == ["", "p_"]
        assert content_key_prefixes(PurgeScope.CONFIG) == []


class TestPurgeInfo:
    def test_key_or_path(self):
        assert PurgeInfo.of_key("k").key == "k"
        assert PurgeInfo.of_path("/p").path == "/p"

    def test_rejects_both(self):
        with pytest.raises(ValueError):
            PurgeInfo(key="k", path="/p")

    def test_rejects_neither(self):
        with pytest.raises(ValueError):
            PurgeInfo()


class TestPurgeOutcome:
    """Test outcome aggregation."""

    def test_success(self):
        outcome = PurgeOutcome.aggregate([200, 200])
        assert outcome.ok
        assert outcome.status == 200

    def test_most_severe_status_wins(self):
        """500 is more severe than 404, and is reported as a bad gateway."""
        outcome = PurgeOutcome.aggregate([200, 500, 404])
        assert not outcome.ok
        assert outcome.status == 502

    def test_not_found_is_propagated(self):
        assert PurgeOutcome.aggregate([404, 200]).status == 404

    def test_rate_limit_becomes_unavailable(self):
        assert PurgeOutcome.aggregate([429]).status == 503

    def test_empty(self):
        assert PurgeOutcome.aggregate([]).ok

    def test_raw_statuses_are_kept(self):
        assert PurgeOutcome.aggregate([200, 404, 500]).statuses == [500, 404]


class TestCombineOutcomes:
    """Test merging the outcomes of several purge stages."""

    def test_success(self):
        assert PurgeOutcome.combine([PurgeOutcome.success(), PurgeOutcome.aggregate([200])]).ok

    def test_propagates_once(self):
        """429 and 500 from different stages give a bad gateway, not unavailable."""
        outcome = PurgeOutcome.combine([PurgeOutcome.aggregate([429]), PurgeOutcome.aggregate([500])])
        assert outcome.status == 502
        assert outcome.statuses == [500, 429]

    def test_keeps_own_failures(self):
        outcome = PurgeOutcome.combine([
            PurgeOutcome.aggregate([404]),
            PurgeOutcome.failure(500, "purge token missing."),
        ])
        assert outcome.status == 500
        assert outcome.error == "purge token missing."
        assert outcome.errors == ["error from purge", "purge token missing."]

    def test_nested(self):
        inner = PurgeOutcome.combine([PurgeOutcome.aggregate([404]), PurgeOutcome.failure(502, "boom")])
        outer = PurgeOutcome.combine([inner, PurgeOutcome.aggregate([404])])
        assert outer.status == 502
        assert outer.error == "boom"


class TestStatusHelpers:
    def test_propagate_status_code(self):
        assert propagate_status_code(404) == 404
        assert propagate_status_code(429) == 503
        assert propagate_status_code(500) == 502
        assert propagate_status_code(401) == 502

    def test_log_level_for_status(self):
        assert log_level_for_status(200) == "info"
        assert log_level_for_status(404) == "warning"
        assert log_level_for_status(503) == "error"


class TestResourceInfo:
    def test_with_ref(self):
        info = ResourceInfo(owner="owner", repo="repo", org="org", site="site")
        branch = info.with_ref("feature")
        assert branch.ref == "feature"
        assert info.ref == "main"
        assert branch.rro == "feature--repo--owner"
        assert branch.rso == "feature--site--org"

    def test_for_site(self):
        info = ResourceInfo.for_site("org", "site")
        assert (info.owner, info.repo) == ("org", "site")


class TestProjectConfig:
    def test_parse(self):
        config = ProjectConfig.model_validate(SITE_CONFIG)
        assert config.content_bus_id.startswith("853bced1")
        assert config.production_cdn.host == "www.example.com"
        assert config.production_cdn.type is None
        assert config.metadata_paths == ["/metadata.json"]

    def test_metadata_source_string(self):
        config = ProjectConfig.model_validate({**SITE_CONFIG, "metadata": {"source": "/meta.json"}})
        assert config.metadata_paths == ["/meta.json"]

    def test_cdn_aliases(self):
        cdn = ProductionCDNConfig.model_validate({
            "type": "fastly",
            "host": "www.example.com",
            "serviceId": "svc",
            "authToken": "token",
        })
        assert cdn.service_id == "svc"
        assert cdn.auth_token == "token"
        assert cdn.model_dump(by_alias=True)["serviceId"] == "svc"
