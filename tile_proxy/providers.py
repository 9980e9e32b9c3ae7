"""
Static satellite → upstream provider table.

Tiled imagery comes from CIRA's SLIDER CDN, which lays tiles out as

    {base}/data/imagery/YYYY/MM/DD/{sat}---{sector}/{product}/{timestamp}/{zz}/{yyy}_{xxx}.png

with a per-satellite zoom ceiling. "Latest" full-disk snapshots come from the
satellite operator's own CDN, so every provider carries its own URL for that.

Both lookups are total: an unknown code resolves to the default provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

SLIDER_BASE = "https://slider.cira.colostate.edu"

TILE_TEMPLATE = (
    "{base}/data/imagery/{year}/{month}/{day}/{sat}---{sector}/{product}"
    "/{timestamp}/{zoom}/{y}_{x}.png"
)
LATEST_TIMES_TEMPLATE = "{base}/data/json/{sat}/{sector}/{product}/latest_times.json"
AVAILABLE_DATES_TEMPLATE = "{base}/data/json/{sat}/{sector}/{product}/available_dates.json"

DEFAULT_PROVIDER_ID = "goes-19"
DEFAULT_MAX_ZOOM = 4


@dataclass(frozen=True)
class Provider:
    id: str
    max_zoom: int
    latest_url: str
    sector: str = "full_disk"
    product: str = "geocolor"
    base_url: str = SLIDER_BASE
    tile_template: str = TILE_TEMPLATE

    @property
    def slug(self) -> str:
        """Satellite identifier as used in the upstream path."""
        return self.id


def _nesdis_latest(sat: str) -> str:
    return f"https://cdn.star.nesdis.noaa.gov/{sat}/ABI/FD/GEOCOLOR/latest.jpg"


_PROVIDERS: Dict[str, Provider] = {
    p.id: p
    for p in (
        Provider("goes-16", 5, _nesdis_latest("GOES16")),
        Provider("goes-18", 5, _nesdis_latest("GOES18")),
        Provider("goes-19", 5, _nesdis_latest("GOES19")),
        Provider(
            "himawari", 5,
            "https://rammb.cira.colostate.edu/ramsdis/online/images/latest_hi_res/himawari-9/full_disk_ahi_true_color.jpg",
        ),
        Provider(
            "meteosat-0deg", 4,
            "https://eumetview.eumetsat.int/static-images/latestImages/EUMETSAT_MSG_RGBNatColourEnhncd_LowResolution.jpg",
            product="natural_color",
        ),
        Provider(
            "meteosat-9", 4,
            "https://eumetview.eumetsat.int/static-images/latestImages/EUMETSAT_MSGIODC_RGBNatColourEnhncd_LowResolution.jpg",
            product="natural_color",
        ),
        Provider(
            "gk2a", 4,
            "https://rammb.cira.colostate.edu/ramsdis/online/images/latest_hi_res/gk2a/full_disk_true_color.jpg",
        ),
    )
}

# short codes used by the front-end; provider ids are accepted as codes too
_ALIASES: Dict[str, str] = {
    "16": "goes-16",
    "18": "goes-18",
    "19": "goes-19",
    "h9": "himawari",
    "m0": "meteosat-0deg",
    "meteosat": "meteosat-0deg",
    "m9": "meteosat-9",
    "iodc": "meteosat-9",
}

# unknown codes: default provider, conservative zoom ceiling
_FALLBACK = Provider(
    DEFAULT_PROVIDER_ID,
    DEFAULT_MAX_ZOOM,
    _PROVIDERS[DEFAULT_PROVIDER_ID].latest_url,
)


def _lookup(code: Optional[str]) -> Optional[Provider]:
    if code is None:
        return None
    c = str(code).strip().lower()
    return _PROVIDERS.get(_ALIASES.get(c, c))


def get_provider(code: Optional[str]) -> Provider:
    """Full provider record for a satellite code (default provider if unknown)."""
    return _lookup(code) or _FALLBACK


def resolve_provider(code: Optional[str]) -> str:
    return get_provider(code).id


def max_zoom(code: Optional[str]) -> int:
    return get_provider(code).max_zoom


def is_known(code: Optional[str]) -> bool:
    return _lookup(code) is not None


def known_codes() -> Dict[str, str]:
    """code → provider id for every accepted code (aliases and ids)."""
    out = {pid: pid for pid in _PROVIDERS}
    out.update(_ALIASES)
    return out
