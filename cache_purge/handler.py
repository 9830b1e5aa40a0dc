"""Cache purge request handler."""

from typing import Optional

from cache_purge.models import PurgeOutcome, PurgeScope, ResourceInfo
from cache_purge.services.purge_service import PurgeService

ALLOWED_METHODS = ("POST",)


async def cache_handler(
    service: PurgeService,
    info: ResourceInfo,
    method: str,
    branch: Optional[str] = None,
) -> PurgeOutcome:
    """Purge a resource on preview and live, optionally on another branch."""
    if method.upper() not in ALLOWED_METHODS:
        return PurgeOutcome.failure(405, "method not allowed")
    if branch:
        info = info.with_ref(branch)
    return await service.resource(info, PurgeScope.PREVIEW_AND_LIVE)
