"""Surrogate key derivation and redundancy elimination."""

import base64
import hashlib
import hmac
import re
from dataclasses import dataclass
from typing import Iterable, List, Sequence, TypeVar

from cache_purge.models import PurgeParams

T = TypeVar("T")

_PLAIN_HTML_SUFFIX = re.compile(r"(index)?\.plain\.html$")
_MD_SUFFIX = re.compile(r"\.md$")

SURROGATE_KEY_SECRET = b"helix"


def compute_surrogate_key(value: str) -> str:
    """Derive a 16 character, URL-safe surrogate key from a canonical string."""
    digest = hmac.new(SURROGATE_KEY_SECRET, value.encode("utf-8"), hashlib.sha256).digest()
    encoded = base64.b64encode(digest).decode("ascii")
    return encoded[:16].replace("/", "_").replace("+", "-")


def compute_content_path_key(content_bus_id: str, path: str) -> str:
    path = _PLAIN_HTML_SUFFIX.sub("", path)
    path = _MD_SUFFIX.sub("", path)
    return compute_surrogate_key(f"{content_bus_id}{path}")


def compute_code_path_key(ref: str, repo: str, owner: str, path: str) -> str:
    return compute_surrogate_key(f"{ref}--{repo}--{owner}{path}")


@dataclass(frozen=True)
class PathKeyContext:
    """What is needed to derive the content and code keys of a path."""
    content_bus_id: str
    ref: str
    repo: str
    owner: str

    def keys_for(self, path: str) -> List[str]:
        content_key = compute_content_path_key(self.content_bus_id, path)
        return [
            content_key,
            f"p_{content_key}",
            compute_code_path_key(self.ref, self.repo, self.owner, path),
        ]


def remove_redundant_keys(ctx: PathKeyContext, params: PurgeParams) -> PurgeParams:
    """Drop the keys of every path that is going to be purged by URL anyway."""
    keys = list(params.keys)
    paths = list(params.paths)
    if not keys or not paths:
        return PurgeParams(keys=keys, paths=paths)
    for path in paths:
        for key in ctx.keys_for(path):
            if key in keys:
                keys.remove(key)
    return PurgeParams(keys=keys, paths=paths)


def remove_redundant_paths(ctx: PathKeyContext, params: PurgeParams) -> PurgeParams:
    """Drop every path whose surrogate keys are already being purged."""
    keys = list(params.keys)
    key_set = set(keys)
    paths = [
        path for path in params.paths
        if not any(key in key_set for key in ctx.keys_for(path))
    ]
    return PurgeParams(keys=keys, paths=paths)


def dedupe(values: Iterable[T]) -> List[T]:
    """Remove duplicates, keeping the first occurrence."""
    return list(dict.fromkeys(values))


def chunked(values: Sequence[T], size: int) -> List[List[T]]:
    return [list(values[i:i + size]) for i in range(0, len(values), size)]
