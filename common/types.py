from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class CacheStatus(str, Enum):
    """Value of the X-Cache response header."""
    HIT = "HIT"
    MISS = "MISS"
    BYPASS = "BYPASS"


@dataclass(slots=True)
class CacheEntry:
    """
    One cached tile/image on disk.

    Attributes:
        key: cache key (see tile_proxy.cache_keys.make_key).
        path: backing file; one entry owns exactly one file.
        size: byte length of the backing file at the last write.
        last_access: epoch seconds of the last successful read or write.
    """
    key: str
    path: Path
    size: int
    last_access: float


@dataclass(frozen=True, slots=True)
class TileRequest:
    """
    A normalized tile request. Built per incoming request, never persisted.

    Attributes:
        satellite: short satellite code as sent by the client ("19", "h9", ...).
        timestamp: raw capture timestamp token (YYYYMMDDhhmmss); None means "latest".
        date: raw 8-digit date token (YYYYMMDD); may be None or malformed.
        zoom: zoom level, already clamped to the provider's maximum.
        x, y: tile column / row, non-negative.
        upstream_base: optional scheme://host[/prefix] replacing the provider default.
    """
    satellite: str
    timestamp: Optional[str]
    date: Optional[str]
    zoom: int
    x: int
    y: int
    upstream_base: Optional[str] = None


@dataclass(slots=True)
class TileResult:
    """What the HTTP layer needs to answer a tile request."""
    content: bytes
    content_type: str
    cache_status: CacheStatus
    status_code: int


@dataclass(slots=True)
class ProxyResult:
    """Uncached pass-through response."""
    content: bytes
    content_type: str
    status_code: int
