from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from common.types import CacheStatus, ProxyResult, TileRequest, TileResult
from common.utils import blank_to_none, parse_int, sniff_content_type
from tile_proxy.cache_keys import make_key
from tile_proxy.cache_store import CacheStore
from tile_proxy.providers import is_known, resolve_provider
from tile_proxy.upstream import UpstreamClient, UpstreamError
from tile_proxy.url_resolver import (
    clamp_zoom,
    parse_date_token,
    resolve_available_dates_url,
    resolve_latest_times_url,
    resolve_upstream_url,
)


log = logging.getLogger(__name__)

UPSTREAM_UNAVAILABLE = 502
UNAVAILABLE_TILE_MSG = b"Failed to fetch upstream tile"
UNAVAILABLE_JSON_MSG = b"Failed to fetch upstream metadata"


def build_request(
    satellite: Optional[str],
    timestamp: Optional[str],
    date: Optional[str],
    zoom: object,
    x: object,
    y: object,
    upstream_base: Optional[str] = None,
) -> TileRequest:
    """
    Normalize raw query tokens into a TileRequest. Never fails: unparseable
    numbers become 0, negatives are raised to 0 and zoom is clamped to the
    provider ceiling.
    """
    sat = blank_to_none(satellite) or ""
    return TileRequest(
        satellite=sat,
        timestamp=blank_to_none(timestamp),
        date=blank_to_none(date),
        zoom=clamp_zoom(sat, parse_int(zoom, 0)),
        x=max(0, parse_int(x, 0)),
        y=max(0, parse_int(y, 0)),
        upstream_base=blank_to_none(upstream_base),
    )


def cache_key_for(request: TileRequest) -> str:
    """Key of a timestamped tile request; uses the zoom actually sent upstream."""
    year, month, day = parse_date_token(request.date)
    time_token = f"{year}{month}{day}-{request.timestamp}"
    zoom = clamp_zoom(request.satellite, request.zoom)
    return make_key(resolve_provider(request.satellite), time_token, zoom, max(0, request.x), max(0, request.y))


class TileService:
    """
    Fetch-through tile cache in front of the upstream providers.

    The cache store and upstream client are injected; the service holds no
    other shared state besides a few counters. Two concurrent misses for the
    same key both go upstream and both store (no request coalescing); the
    later write wins.
    """

    def __init__(self, cache: CacheStore, upstream: UpstreamClient):
        self.cache = cache
        self.upstream = upstream
        self._counts: Dict[str, int] = {"hits": 0, "misses": 0, "bypasses": 0, "upstream_errors": 0}
        self._counts_lock = threading.Lock()

    # -------- tiles --------

    def serve_tile(
        self,
        satellite: Optional[str],
        timestamp: Optional[str],
        date: Optional[str],
        zoom: object,
        x: object,
        y: object,
        upstream_base: Optional[str] = None,
    ) -> TileResult:
        req = build_request(satellite, timestamp, date, zoom, x, y, upstream_base)
        return self.serve_request(req)

    def serve_request(self, req: TileRequest) -> TileResult:
        if not is_known(req.satellite):
            log.debug("Unknown satellite %r, using %s", req.satellite, resolve_provider(req.satellite))
        # "latest" changes under the same request, so it is never cached
        if req.timestamp is None:
            self._count("bypasses")
            return self._fetch_tile(req, key=None)

        key = cache_key_for(req)
        data = self.cache.get(key)
        if data is not None:
            self._count("hits")
            log.debug("Tile cache hit %s", key)
            return TileResult(
                content=data,
                content_type=sniff_content_type(data, "image/png"),
                cache_status=CacheStatus.HIT,
                status_code=200,
            )

        self._count("misses")
        return self._fetch_tile(req, key=key)

    def _fetch_tile(self, req: TileRequest, key: Optional[str]) -> TileResult:
        status = CacheStatus.MISS if key is not None else CacheStatus.BYPASS
        url = resolve_upstream_url(req)
        try:
            resp = self.upstream.fetch(url)
        except UpstreamError as e:
            self._count("upstream_errors")
            log.warning(
                "Upstream tile fetch failed: %s", e.reason,
                extra={"extra": {"url": e.url, "satellite": req.satellite, "key": key}},
            )
            return TileResult(UNAVAILABLE_TILE_MSG, "text/plain", status, UPSTREAM_UNAVAILABLE)

        if not resp.ok or not resp.content:
            log.info(
                "Upstream returned %d (%d bytes), not caching",
                resp.status_code, len(resp.content),
                extra={"extra": {"url": url, "key": key}},
            )
            ctype = resp.content_type or sniff_content_type(resp.content, "text/plain")
            return TileResult(resp.content, ctype, status, resp.status_code)

        if key is not None:
            try:
                self.cache.put(key, resp.content)
            except OSError as e:
                log.warning("Could not cache tile %s: %s", key, e)

        ctype = resp.content_type or sniff_content_type(resp.content, "image/png")
        return TileResult(resp.content, ctype, status, resp.status_code)

    # -------- pass-through JSON --------

    def serve_latest_times(self, satellite: Optional[str], upstream_base: Optional[str] = None) -> ProxyResult:
        return self._pass_through(resolve_latest_times_url(blank_to_none(satellite), blank_to_none(upstream_base)))

    def serve_available_dates(self, satellite: Optional[str], upstream_base: Optional[str] = None) -> ProxyResult:
        return self._pass_through(resolve_available_dates_url(blank_to_none(satellite), blank_to_none(upstream_base)))

    def _pass_through(self, url: str) -> ProxyResult:
        try:
            resp = self.upstream.fetch(url)
        except UpstreamError as e:
            self._count("upstream_errors")
            log.warning("Upstream metadata fetch failed: %s", e.reason, extra={"extra": {"url": e.url}})
            return ProxyResult(UNAVAILABLE_JSON_MSG, "text/plain", UPSTREAM_UNAVAILABLE)
        return ProxyResult(resp.content, resp.content_type or "application/json", resp.status_code)

    # -------- stats --------

    def _count(self, name: str) -> None:
        with self._counts_lock:
            self._counts[name] += 1

    def stats(self) -> Dict[str, object]:
        with self._counts_lock:
            counts = dict(self._counts)
        return {"requests": counts, "cache": self.cache.stats()}
