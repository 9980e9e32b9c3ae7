from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote

CACHE_SUFFIX = ".png"
MAX_KEY_LEN = 200

_SEP = "_"


def _component(value: object) -> str:
    # quote() leaves "_" and "." alone; "_" is the separator and a leading "."
    # would make a hidden file
    return quote(str(value), safe="").replace("_", "%5F").replace(".", "%2E")


def make_key(satellite: str, time_token: str, zoom: int, x: int, y: int) -> str:
    """
    Cache key for one tile: percent-encoded components joined by "_".

    Components never contain the separator, so distinct inputs give distinct
    keys, and the result never contains "/" so it is usable as a file name.
    Over-long keys are replaced by "h_<sha256>", which has a single separator
    and therefore cannot collide with a five-component key.
    """
    key = _SEP.join(_component(v) for v in (satellite, time_token, int(zoom), int(x), int(y)))
    if len(key) > MAX_KEY_LEN:
        key = "h" + _SEP + hashlib.sha256(key.encode("utf-8")).hexdigest()
    return key


def key_to_path(key: str, root: Union[str, Path]) -> Path:
    return Path(root) / f"{key}{CACHE_SUFFIX}"


def key_from_filename(name: str) -> Optional[str]:
    """Inverse of key_to_path for a bare file name; None if it is not a cache file."""
    if not name.endswith(CACHE_SUFFIX):
        return None
    stem = name[: -len(CACHE_SUFFIX)]
    if not stem or stem.startswith("."):
        return None
    return stem
