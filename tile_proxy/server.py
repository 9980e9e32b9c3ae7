from __future__ import annotations

import argparse
import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import uvicorn
import yaml
from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles

from common.logging_setup import get_logger, setup_logging
from common.types import CacheStatus, ProxyResult
from tile_proxy.cache_store import CacheStore
from tile_proxy.goes import serve_goes
from tile_proxy.providers import known_codes
from tile_proxy.tile_service import TileService
from tile_proxy.upstream import UpstreamClient


log = get_logger("tile_proxy")

DEFAULT_CONFIG_PATH = "config/params.yaml"

DEFAULTS: Dict[str, Any] = {
    "server": {"host": "0.0.0.0", "port": 8000, "static_dir": "web"},
    "cache": {"root": "data/cache", "max_mb": 512},
    "upstream": {"timeout_s": 15.0, "max_redirects": 5, "user_agent": "peepsat-proxy/0.3"},
    "logging": {"level": None},  # None: $LOG_LEVEL, else INFO
}


def _merge(base: Dict, override: Dict) -> Dict:
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if v is None and isinstance(out.get(k), dict):
            continue  # empty section in YAML
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def load_config(path: Optional[str] = None) -> Dict:
    """
    YAML config merged over DEFAULTS. Path: argument, else $PEEPSAT_CONFIG,
    else config/params.yaml. A missing file yields the defaults.
    """
    path = path or os.environ.get("PEEPSAT_CONFIG") or DEFAULT_CONFIG_PATH
    if not Path(path).exists():
        return copy.deepcopy(DEFAULTS)
    with open(path, "r") as f:
        return _merge(DEFAULTS, yaml.safe_load(f) or {})


def cache_max_bytes(cfg: Dict) -> int:
    c = cfg.get("cache", {})
    if c.get("max_bytes") is not None:
        return int(c["max_bytes"])
    return int(float(c.get("max_mb", 512)) * 1024 * 1024)


def build_service(cfg: Dict) -> TileService:
    """Construct and initialize the cache store, upstream client and tile service."""
    store = CacheStore(cfg["cache"]["root"], cache_max_bytes(cfg))
    store.initialize()
    up = cfg.get("upstream", {})
    client = UpstreamClient(
        timeout=float(up.get("timeout_s", 15.0)),
        max_redirects=int(up.get("max_redirects", 5)),
        user_agent=str(up.get("user_agent", "peepsat-proxy/0.3")),
    )
    return TileService(store, client)


def _respond(res: ProxyResult, headers: Optional[Dict[str, str]] = None) -> Response:
    return Response(content=res.content, media_type=res.content_type, status_code=res.status_code, headers=headers)


def create_app(cfg: Optional[Dict] = None, *, service: Optional[TileService] = None) -> FastAPI:
    """
    Build the proxy app. `service` may be passed in (tests); otherwise one is
    built from `cfg` (or the config file) and its cache index is loaded before
    the app is returned.

    Routes:
      /tile-proxy?sat&t&d&z&x&y&upstream   cached tile fetch, X-Cache header
      /latest-times?sat&upstream           SLIDER latest_times.json pass-through
      /available-dates?sat&upstream        SLIDER available_dates.json pass-through
      /goes-proxy?t=YYYY-MM-DD-HHMM        legacy GOES IR (TIFF→JPEG) / latest JPEG
      /health, /stats                      JSON
      /                                    static front-end bundle, if present
    """
    cfg = cfg if cfg is not None else load_config()
    svc = service or build_service(cfg)

    app = FastAPI(title="PeepSat Tile Proxy", version="0.3.0")
    app.state.tile_service = svc

    # the browser client runs from other origins during development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
        expose_headers=["X-Cache"],
    )

    # Query values are taken as strings and normalized by the service, so a
    # malformed token falls back to a default instead of a 422.
    @app.get("/tile-proxy")
    def tile_proxy(
        sat: Optional[str] = Query(None),
        t: Optional[str] = Query(None),
        d: Optional[str] = Query(None),
        z: Optional[str] = Query(None),
        x: Optional[str] = Query(None),
        y: Optional[str] = Query(None),
        upstream: Optional[str] = Query(None),
    ):
        res = svc.serve_tile(sat, t, d, z, x, y, upstream)
        headers = {"X-Cache": res.cache_status.value}
        if res.status_code == 200 and res.cache_status is not CacheStatus.BYPASS:
            headers["Cache-Control"] = "public, max-age=86400"
        else:
            headers["Cache-Control"] = "no-store"
        return Response(content=res.content, media_type=res.content_type, status_code=res.status_code, headers=headers)

    @app.get("/latest-times")
    def latest_times(sat: Optional[str] = Query(None), upstream: Optional[str] = Query(None)):
        return _respond(svc.serve_latest_times(sat, upstream), {"Cache-Control": "no-store"})

    @app.get("/available-dates")
    def available_dates(sat: Optional[str] = Query(None), upstream: Optional[str] = Query(None)):
        return _respond(svc.serve_available_dates(sat, upstream), {"Cache-Control": "no-store"})

    @app.get("/goes-proxy")
    def goes_proxy(t: Optional[str] = Query(None)):
        return _respond(serve_goes(svc.upstream, t))

    @app.get("/health")
    def health():
        return {"status": "ok", "cache": svc.cache.stats(), "satellites": known_codes()}

    @app.get("/stats")
    def stats():
        return svc.stats()

    static_dir = cfg.get("server", {}).get("static_dir")
    if static_dir and Path(static_dir).is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
    elif static_dir:
        log.info("Static directory %s not found; serving API only", static_dir)

    return app


def main() -> None:
    ap = argparse.ArgumentParser(description="PeepSat tile proxy")
    ap.add_argument("--config", default=None, help=f"YAML config (default: $PEEPSAT_CONFIG or {DEFAULT_CONFIG_PATH})")
    ap.add_argument("--host", default=None)
    ap.add_argument("--port", type=int, default=None)
    ap.add_argument("--cache-root", default=None, help="Override cache.root")
    ap.add_argument("--static-dir", default=None, help="Override server.static_dir")
    args = ap.parse_args()

    cfg = load_config(args.config)
    if args.cache_root:
        cfg["cache"]["root"] = args.cache_root
    if args.static_dir:
        cfg["server"]["static_dir"] = args.static_dir
    setup_logging(cfg.get("logging", {}).get("level"), force=True)

    host = args.host or cfg["server"]["host"]
    port = int(args.port or cfg["server"]["port"])
    app = create_app(cfg)
    log.info("Server running on http://%s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_config=None)


# -------- local dev entrypoint --------
if __name__ == "__main__":
    main()
