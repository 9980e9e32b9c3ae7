"""
Legacy GOES full-disk proxy (/goes-proxy).

`?t=YYYY-MM-DD-HHMM` pulls the archived CONUS IR GeoTIFF from the Iowa
Environmental Mesonet and transcodes it to JPEG, since browsers cannot show
TIFF. Without a usable token the current GOES-18 GeoColor full disk is
returned as-is. Nothing here is cached.
"""

from __future__ import annotations

import io
import logging
from typing import Optional

from PIL import Image

from common.types import ProxyResult
from tile_proxy.upstream import UpstreamClient, UpstreamError

log = logging.getLogger(__name__)

IEM_ARCHIVE = "https://mesonet.agron.iastate.edu/archive/data/{year}/{month}/{day}/GIS/sat/conus_goes_ir4km_{hhmm}.tif"
GOES_LATEST = "https://cdn.star.nesdis.noaa.gov/GOES18/ABI/FD/GEOCOLOR/latest.jpg"
JPEG_QUALITY = 85


def goes_url(token: Optional[str]) -> str:
    """Archive TIFF URL for a YYYY-MM-DD-HHMM token, else the latest JPEG."""
    if token:
        parts = token.split("-")
        if len(parts) == 4:
            year, month, day, hhmm = parts
            return IEM_ARCHIVE.format(year=year, month=month, day=day, hhmm=hhmm)
    return GOES_LATEST


def tiff_to_jpeg(data: bytes, quality: int = JPEG_QUALITY) -> bytes:
    with Image.open(io.BytesIO(data)) as img:
        # IR products are single-band or paletted; JPEG wants L or RGB
        if img.mode not in ("L", "RGB"):
            img = img.convert("RGB")
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=quality)
        return out.getvalue()


def serve_goes(upstream: UpstreamClient, token: Optional[str]) -> ProxyResult:
    url = goes_url(token)
    log.info("Fetching GOES image %s", url)
    try:
        resp = upstream.fetch(url)
    except UpstreamError as e:
        log.warning("GOES proxy error: %s", e.reason, extra={"extra": {"url": e.url}})
        return ProxyResult(b"Failed to fetch GOES image", "text/plain", 502)

    body = resp.content
    if resp.ok and url.endswith(".tif"):
        try:
            jpeg = tiff_to_jpeg(body)
            log.info("Converted TIFF to JPEG: %d -> %d bytes", len(body), len(jpeg))
            body = jpeg
        except (OSError, ValueError) as e:
            # PIL raises UnidentifiedImageError (an OSError) for undecodable input
            log.warning("TIFF conversion failed, returning original bytes: %s", e)

    if resp.ok:
        return ProxyResult(body, "image/jpeg", resp.status_code)
    return ProxyResult(body, resp.content_type or "text/plain", resp.status_code)
