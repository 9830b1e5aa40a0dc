"""DNS based detection of hostnames served by Cloudflare."""

from typing import List, Optional

import dns.asyncresolver
import dns.exception
import structlog

logger = structlog.get_logger(__name__)

CLOUDFLARE_CNAME_SUFFIX = ".cloudflare.net"


class ZoneResolver:
    """Resolves CNAME chains and tells whether a hostname is a Cloudflare zone."""

    def __init__(self, resolver: Optional[dns.asyncresolver.Resolver] = None, max_depth: int = 5):
        self._resolver = resolver
        self.max_depth = max_depth

    @property
    def resolver(self) -> dns.asyncresolver.Resolver:
        if self._resolver is None:
            self._resolver = dns.asyncresolver.Resolver()
        return self._resolver

    async def resolve_cname(self, hostname: str) -> List[str]:
        """Follow the CNAME chain of `hostname`.

        Lookup errors are logged and end the chain; they never propagate.
        """
        names: List[str] = []
        current = hostname
        for _ in range(self.max_depth):
            try:
                answer = await self.resolver.resolve(current, "CNAME")
            except dns.exception.DNSException as e:
                if not names:
                    logger.error("failed to resolve CNAME", hostname=hostname, error=str(e))
                break
            targets = [record.target.to_text(omit_final_dot=True) for record in answer]
            if not targets:
                break
            names.extend(targets)
            current = targets[0]
        return names

    async def is_cloudflare_zone(self, hostname: str) -> bool:
        names = await self.resolve_cname(hostname)
        return any(name.endswith(CLOUDFLARE_CNAME_SUFFIX) for name in names)
