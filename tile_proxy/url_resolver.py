from __future__ import annotations

from typing import Optional, Tuple
from urllib.parse import urlsplit

from common.types import TileRequest
from common.utils import clamp
from tile_proxy.providers import (
    AVAILABLE_DATES_TEMPLATE,
    LATEST_TIMES_TEMPLATE,
    Provider,
    get_provider,
)

# used when the date token is missing or not 8 digits
DEFAULT_DATE: Tuple[str, str, str] = ("1970", "01", "01")


def parse_date_token(token: Optional[str]) -> Tuple[str, str, str]:
    """YYYYMMDD → ("YYYY", "MM", "DD"); anything else → DEFAULT_DATE."""
    if token is None:
        return DEFAULT_DATE
    t = str(token).strip()
    if len(t) != 8 or not t.isascii() or not t.isdigit():
        return DEFAULT_DATE
    return t[0:4], t[4:6], t[6:8]


def clamp_zoom(satellite: Optional[str], zoom: int) -> int:
    return clamp(int(zoom), 0, get_provider(satellite).max_zoom)


def _with_base(url: str, upstream_base: Optional[str]) -> str:
    """
    Swap the scheme/host of `url` for `upstream_base` ("http://mirror:8080" or
    "http://mirror/prefix"); the path and query of `url` are kept.
    """
    if not upstream_base:
        return url
    parts = urlsplit(url)
    rest = parts.path
    if parts.query:
        rest += "?" + parts.query
    return upstream_base.rstrip("/") + rest


def resolve_upstream_url(request: TileRequest, upstream_base: Optional[str] = None) -> str:
    """
    Upstream URL for a tile (or, without a timestamp, for the provider's latest
    full-disk image).

    `upstream_base` falls back to request.upstream_base.
    """
    base_override = upstream_base or request.upstream_base
    provider = get_provider(request.satellite)

    if not request.timestamp:
        return _with_base(provider.latest_url, base_override)

    year, month, day = parse_date_token(request.date)
    zoom = clamp(int(request.zoom), 0, provider.max_zoom)
    return provider.tile_template.format(
        base=(base_override or provider.base_url).rstrip("/"),
        year=year,
        month=month,
        day=day,
        sat=provider.slug,
        sector=provider.sector,
        product=provider.product,
        timestamp=request.timestamp,
        zoom=f"{zoom:02d}",
        x=f"{max(0, int(request.x)):03d}",
        y=f"{max(0, int(request.y)):03d}",
    )


def _json_url(template: str, provider: Provider, upstream_base: Optional[str]) -> str:
    return template.format(
        base=(upstream_base or provider.base_url).rstrip("/"),
        sat=provider.slug,
        sector=provider.sector,
        product=provider.product,
    )


def resolve_latest_times_url(satellite: Optional[str], upstream_base: Optional[str] = None) -> str:
    return _json_url(LATEST_TIMES_TEMPLATE, get_provider(satellite), upstream_base)


def resolve_available_dates_url(satellite: Optional[str], upstream_base: Optional[str] = None) -> str:
    return _json_url(AVAILABLE_DATES_TEMPLATE, get_provider(satellite), upstream_base)
