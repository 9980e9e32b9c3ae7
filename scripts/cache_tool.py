#!/usr/bin/env python3
"""
Inspect or pre-seed the tile proxy's on-disk cache.

The proxy rebuilds its index from the cache directory at startup, so files
written here are picked up on the next start.

Examples:
  python scripts/cache_tool.py ls --root data/cache
  python scripts/cache_tool.py stats --config config/params.yaml
  python scripts/cache_tool.py key --sat 19 --t 20240615153000 --d 20240615 --z 4 --x 7 --y 8
  python scripts/cache_tool.py seed --sat 19 --t 20240615153000 --d 20240615 --z 4 --x 7 --y 8 --file tile.png
  python scripts/cache_tool.py evict --bytes 10000000
"""
from __future__ import annotations

import argparse
import json
import os
import sys
import time
from pathlib import Path
from typing import List, Optional

# Add the project root to the path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from common.logging_setup import setup_logging
from tile_proxy.cache_store import CacheStore
from tile_proxy.server import cache_max_bytes, load_config
from tile_proxy.tile_service import build_request, cache_key_for


def _open_store(args: argparse.Namespace) -> CacheStore:
    cfg = load_config(args.config)
    root = args.root or cfg["cache"]["root"]
    store = CacheStore(root, cache_max_bytes(cfg))
    store.initialize()
    return store


def _key_from_args(args: argparse.Namespace) -> str:
    req = build_request(args.sat, args.t, args.d, args.z, args.x, args.y)
    return cache_key_for(req)


def cmd_ls(args: argparse.Namespace) -> int:
    store = _open_store(args)
    for e in store.entries():
        ts = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(e.last_access))
        print(f"{ts}  {e.size:>10d}  {e.key}")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    store = _open_store(args)
    print(json.dumps({"root": str(store.root), **store.stats()}, indent=2))
    return 0


def cmd_key(args: argparse.Namespace) -> int:
    print(_key_from_args(args))
    return 0


def cmd_seed(args: argparse.Namespace) -> int:
    data = Path(args.file).read_bytes()
    if not data:
        print(f"{args.file} is empty, nothing seeded", file=sys.stderr)
        return 1
    store = _open_store(args)
    entry = store.put(_key_from_args(args), data)
    print(f"seeded {entry.key} ({entry.size} bytes) -> {entry.path}")
    return 0


def cmd_evict(args: argparse.Namespace) -> int:
    store = _open_store(args)
    freed = store.evict(int(args.bytes))
    print(json.dumps({"freed": freed, **store.stats()}, indent=2))
    return 0


def _add_tile_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--sat", required=True, help="Satellite code (19, 18, h9, m0, ...)")
    p.add_argument("--t", required=True, help="Timestamp token YYYYMMDDhhmmss")
    p.add_argument("--d", default=None, help="Date token YYYYMMDD")
    p.add_argument("--z", default="0")
    p.add_argument("--x", default="0")
    p.add_argument("--y", default="0")


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Tile proxy cache tool")
    ap.add_argument("--config", default=None, help="YAML config (for cache.root / cache.max_mb)")
    ap.add_argument("--root", default=None, help="Cache directory (overrides config)")
    sub = ap.add_subparsers(dest="cmd", required=True)

    sub.add_parser("ls", help="List entries, least recently used first").set_defaults(func=cmd_ls)
    sub.add_parser("stats", help="Entry count and byte totals").set_defaults(func=cmd_stats)

    p = sub.add_parser("key", help="Print the cache key for a tile request")
    _add_tile_args(p)
    p.set_defaults(func=cmd_key)

    p = sub.add_parser("seed", help="Store a local image file under a tile's key")
    _add_tile_args(p)
    p.add_argument("--file", required=True)
    p.set_defaults(func=cmd_seed)

    p = sub.add_parser("evict", help="Evict least recently used entries")
    p.add_argument("--bytes", required=True, type=int, help="Bytes to free")
    p.set_defaults(func=cmd_evict)

    args = ap.parse_args(argv)
    setup_logging("WARNING", force=True)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
