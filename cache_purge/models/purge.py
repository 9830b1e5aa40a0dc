"""Purge value objects."""

import dataclasses
from dataclasses import dataclass, field
from enum import IntFlag
from typing import Iterable, List, Optional

from cache_purge.utils.logging import propagate_status_code


class PurgeScope(IntFlag):
    """Which cache families a purge touches."""
    LIVE = 1
    PREVIEW = 2
    CONFIG = 4
    PREVIEW_AND_LIVE = LIVE | PREVIEW


def content_key_prefixes(scope: PurgeScope) -> List[str]:
    """Content-bus key prefixes for a scope (live keys are unprefixed, preview keys use `p_`)."""
    prefixes = []
    if scope & PurgeScope.LIVE:
        prefixes.append("")
    if scope & PurgeScope.PREVIEW:
        prefixes.append("p_")
    return prefixes


@dataclass(frozen=True)
class PurgeInfo:
    """A single surrogate key or URL path to invalidate."""
    key: Optional[str] = None
    path: Optional[str] = None

    def __post_init__(self):
        if (self.key is None) == (self.path is None):
            raise ValueError("exactly one of 'key' or 'path' must be set")

    @classmethod
    def of_key(cls, key: str) -> "PurgeInfo":
        return cls(key=key)

    @classmethod
    def of_path(cls, path: str) -> "PurgeInfo":
        return cls(path=path)


def prefixed_keys(prefixes: Iterable[str], key: str) -> List[PurgeInfo]:
    return [PurgeInfo.of_key(f"{prefix}{key}") for prefix in prefixes]


@dataclass
class PurgeParams:
    """Keys and paths handed to a purge client."""
    keys: List[str] = field(default_factory=list)
    paths: List[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.keys and not self.paths


@dataclass
class PurgeOutcome:
    """HTTP-style result of a purge operation.

    `statuses` keeps the raw failing upstream statuses, so outcomes of
    several stages can be combined before the status is propagated.
    """
    status: int = 200
    error: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    statuses: List[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status < 300

    @classmethod
    def success(cls) -> "PurgeOutcome":
        return cls(status=200)

    @classmethod
    def failure(cls, status: int, error: str = "error from purge") -> "PurgeOutcome":
        return cls(status=status, error=error, errors=[error])

    @classmethod
    def aggregate(
        cls,
        statuses: Iterable[int],
        error: str = "error from purge",
        errors: Optional[List[str]] = None,
    ) -> "PurgeOutcome":
        """Collapse many upstream statuses into one outcome.

        The most severe (numerically highest) failing status wins and is
        translated with `propagate_status_code`.
        """
        failed = sorted((s for s in statuses if s >= 300), reverse=True)
        if not failed:
            return cls.success()
        return cls(
            status=propagate_status_code(failed[0]),
            error=error,
            errors=list(errors) if errors else [error],
            statuses=failed,
        )

    @classmethod
    def combine(cls, outcomes: Iterable["PurgeOutcome"]) -> "PurgeOutcome":
        """Merge the outcomes of several stages into one.

        Upstream statuses of all stages are compared raw and propagated
        once. Failures raised by ourselves (no upstream status) keep their
        status. Every error message is kept.
        """
        failures = [outcome for outcome in outcomes if not outcome.ok]
        if not failures:
            return cls.success()
        errors = [error for outcome in failures for error in (outcome.errors or [outcome.error]) if error]
        raw = sorted((s for outcome in failures for s in outcome.statuses), reverse=True)

        candidates = [
            outcome for outcome in failures
            if not outcome.statuses or outcome.status != propagate_status_code(max(outcome.statuses))
        ]
        if raw:
            source = next(outcome for outcome in failures if raw[0] in outcome.statuses)
            candidates.append(cls(status=propagate_status_code(raw[0]), error=source.error))
        worst = max(candidates, key=lambda outcome: outcome.status)
        return cls(status=worst.status, error=worst.error, errors=errors, statuses=raw)


@dataclass(frozen=True)
class ResourceInfo:
    """Descriptor of the resource whose cached copies are purged."""
    owner: str
    repo: str
    org: str
    site: str
    ref: str = "main"
    web_path: str = "/"
    resource_path: str = "/index.md"
    raw_path: str = "/"

    @classmethod
    def for_site(cls, org: str, site: str, ref: str = "main", **kwargs) -> "ResourceInfo":
        """Descriptor for a site whose code bus is named like the site itself."""
        kwargs.setdefault("owner", org)
        kwargs.setdefault("repo", site)
        return cls(org=org, site=site, ref=ref, **kwargs)

    def with_ref(self, ref: str) -> "ResourceInfo":
        return dataclasses.replace(self, ref=ref)

    @property
    def rro(self) -> str:
        """`{ref}--{repo}--{owner}` code bus prefix."""
        return f"{self.ref}--{self.repo}--{self.owner}"

    @property
    def rso(self) -> str:
        """`{ref}--{site}--{org}` site prefix."""
        return f"{self.ref}--{self.site}--{self.org}"


@dataclass(frozen=True)
class ProductionSite:
    """A site whose production CDN is purged alongside the current one."""
    org: str
    site: str
