from __future__ import annotations

from typing import Optional


def clamp(v: int, lo: int, hi: int) -> int:
    return int(min(hi, max(lo, v)))


def parse_int(raw: Optional[object], default: int = 0) -> int:
    """
    Lenient integer parsing for query tokens.
    Accepts ints, digit strings and float-looking strings ("4.0"); anything else
    yields `default`.
    """
    if raw is None:
        return default
    if isinstance(raw, bool):
        return default
    if isinstance(raw, int):
        return raw
    s = str(raw).strip()
    if not s:
        return default
    try:
        return int(s)
    except ValueError:
        pass
    try:
        return int(float(s))
    except (ValueError, OverflowError):
        return default


def blank_to_none(raw: Optional[str]) -> Optional[str]:
    """Strip a query token; empty strings become None."""
    if raw is None:
        return None
    s = str(raw).strip()
    return s or None


# magic-number prefixes of the image formats upstream providers hand out
_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"II*\x00", "image/tiff"),
    (b"MM\x00*", "image/tiff"),
)


def sniff_content_type(data: bytes, default: str = "application/octet-stream") -> str:
    """Guess an image MIME type from the leading bytes."""
    for sig, mime in _SIGNATURES:
        if data.startswith(sig):
            return mime
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return default
