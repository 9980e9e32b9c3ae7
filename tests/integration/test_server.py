"""
Integration tests for the tile proxy HTTP surface (FastAPI app, no network)
"""

import io
import os
import sys
from unittest.mock import Mock

import pytest
import requests
from fastapi.testclient import TestClient
from PIL import Image

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from tile_proxy.cache_keys import key_to_path
from tile_proxy.cache_store import CacheStore
from tile_proxy.server import DEFAULTS, cache_max_bytes, create_app, load_config
from tile_proxy.tile_service import TileService, build_request, cache_key_for
from tile_proxy.upstream import UpstreamClient

PNG = b"\x89PNG\r\n\x1a\n" + b"B" * 64
TILE_QS = "/tile-proxy?sat=19&t=20240615153000&d=20240615&z=4&x=7&y=8"


def _session(status=200, content=PNG, headers=None):
    session = Mock()
    session.headers = {}
    session.get.return_value = Mock(
        status_code=status, content=content, headers=headers if headers is not None else {"Content-Type": "image/png"}
    )
    return session


@pytest.fixture
def session():
    return _session()


@pytest.fixture
def cache_root(tmp_path):
    return tmp_path / "cache"


@pytest.fixture
def client(cache_root, session):
    store = CacheStore(cache_root, max_bytes=1_000_000)
    store.initialize()
    svc = TileService(store, UpstreamClient(timeout=5.0, max_redirects=3, session=session))
    app = create_app({"server": {"static_dir": None}}, service=svc)
    return TestClient(app)


class TestTileProxyRoute:
    """Test cases for /tile-proxy"""

    def test_miss_then_hit(self, client, session, cache_root):
        """The scenario from a cold cache through to a cached hit"""
        r1 = client.get(TILE_QS)
        assert r1.status_code == 200
        assert r1.content == PNG
        assert r1.headers["x-cache"] == "MISS"
        assert r1.headers["content-type"] == "image/png"
        assert session.get.call_args[0][0] == (
            "https://slider.cira.colostate.edu/data/imagery/2024/06/15/"
            "goes-19---full_disk/geocolor/20240615153000/04/008_007.png"
        )

        key = cache_key_for(build_request("19", "20240615153000", "20240615", 4, 7, 8))
        assert key_to_path(key, cache_root).read_bytes() == PNG

        r2 = client.get(TILE_QS)
        assert r2.status_code == 200
        assert r2.content == PNG
        assert r2.headers["x-cache"] == "HIT"
        assert session.get.call_count == 1

    def test_malformed_tokens_do_not_fail(self, client, session):
        """Garbage zoom/x/y/date are defaulted, not rejected"""
        r = client.get("/tile-proxy?sat=19&t=20240615153000&d=bad&z=abc&x=&y=-1")
        assert r.status_code == 200
        assert session.get.call_args[0][0].endswith("/1970/01/01/goes-19---full_disk/geocolor/20240615153000/00/000_000.png")

    def test_upstream_error_forwarded(self, cache_root):
        """Non-2xx upstream status reaches the client and nothing is cached"""
        store = CacheStore(cache_root, max_bytes=1_000)
        store.initialize()
        svc = TileService(store, UpstreamClient(session=_session(404, b"nope", {"Content-Type": "text/plain"})))
        c = TestClient(create_app({"server": {"static_dir": None}}, service=svc))

        r = c.get(TILE_QS)
        assert r.status_code == 404
        assert r.text == "nope"
        assert r.headers["cache-control"] == "no-store"
        assert len(store) == 0

    def test_network_error_is_502(self, cache_root):
        session = Mock()
        session.headers = {}
        session.get.side_effect = requests.ConnectionError("down")
        store = CacheStore(cache_root, max_bytes=1_000)
        store.initialize()
        c = TestClient(create_app({"server": {"static_dir": None}}, service=TileService(store, UpstreamClient(session=session))))

        r = c.get(TILE_QS)
        assert r.status_code == 502
        assert r.text == "Failed to fetch upstream tile"
        assert "cache" not in r.text.lower()

    def test_cors_header(self, client):
        """Browser clients on other origins may read tiles and the X-Cache header"""
        r = client.get(TILE_QS, headers={"Origin": "http://localhost:5173"})
        assert r.headers["access-control-allow-origin"] == "*"
        assert "x-cache" in r.headers["access-control-expose-headers"].lower()

    def test_latest_bypasses_cache(self, client, session):
        r = client.get("/tile-proxy?sat=19")
        assert r.status_code == 200
        assert r.headers["x-cache"] == "BYPASS"
        assert r.headers["cache-control"] == "no-store"


class TestOtherRoutes:
    """Test cases for pass-through, GOES, health and static routes"""

    def test_latest_times(self, client, session):
        session.get.return_value = Mock(
            status_code=200, content=b'{"timestamps_int": []}', headers={"Content-Type": "application/json"}
        )
        r = client.get("/latest-times?sat=19&upstream=http://mirror")
        assert r.status_code == 200
        assert r.json() == {"timestamps_int": []}
        assert session.get.call_args[0][0] == "http://mirror/data/json/goes-19/full_disk/geocolor/latest_times.json"

    def test_available_dates(self, client, session):
        session.get.return_value = Mock(status_code=200, content=b'{"dates_int": []}', headers={})
        r = client.get("/available-dates?sat=m0")
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("application/json")

    def test_goes_proxy_transcodes(self, client, session):
        buf = io.BytesIO()
        Image.new("L", (8, 8), color=50).save(buf, format="TIFF")
        session.get.return_value = Mock(status_code=200, content=buf.getvalue(), headers={})
        r = client.get("/goes-proxy?t=2024-06-15-1530")
        assert r.status_code == 200
        assert r.headers["content-type"] == "image/jpeg"
        assert r.content.startswith(b"\xff\xd8")

    def test_health_and_stats(self, client):
        client.get(TILE_QS)
        health = client.get("/health").json()
        assert health["status"] == "ok"
        assert health["cache"]["entries"] == 1
        assert health["satellites"]["19"] == "goes-19"
        stats = client.get("/stats").json()
        assert stats["requests"]["misses"] == 1

    def test_static_bundle(self, tmp_path, session):
        web = tmp_path / "web"
        web.mkdir()
        (web / "index.html").write_text("<html>peepsat</html>")
        store = CacheStore(tmp_path / "cache", max_bytes=1_000)
        store.initialize()
        svc = TileService(store, UpstreamClient(session=session))
        c = TestClient(create_app({"server": {"static_dir": str(web)}}, service=svc))

        r = c.get("/")
        assert r.status_code == 200
        assert "peepsat" in r.text
        # API routes still win over the static mount
        assert c.get("/health").status_code == 200


class TestConfig:
    """Test cases for configuration loading"""

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(str(tmp_path / "nope.yaml")) == DEFAULTS

    def test_yaml_merged_over_defaults(self, tmp_path):
        p = tmp_path / "params.yaml"
        p.write_text("cache:\n  root: /srv/cache\n  max_bytes: 2048\nlogging:\n")
        cfg = load_config(str(p))
        assert cfg["cache"]["root"] == "/srv/cache"
        assert cfg["server"]["port"] == 8000
        assert cfg["logging"] == DEFAULTS["logging"]
        assert cache_max_bytes(cfg) == 2048

    def test_env_config_path(self, tmp_path, monkeypatch):
        p = tmp_path / "env.yaml"
        p.write_text("server:\n  port: 9001\n")
        monkeypatch.setenv("PEEPSAT_CONFIG", str(p))
        assert load_config()["server"]["port"] == 9001

    def test_max_mb(self):
        assert cache_max_bytes({"cache": {"max_mb": 2}}) == 2 * 1024 * 1024

    def test_create_app_builds_service(self, tmp_path):
        """Without an injected service the cache index is loaded from disk"""
        root = tmp_path / "cache"
        root.mkdir()
        key = cache_key_for(build_request("19", "20240615153000", "20240615", 4, 7, 8))
        key_to_path(key, root).write_bytes(PNG)
        cfg = load_config(str(tmp_path / "missing.yaml"))
        cfg["cache"]["root"] = str(root)
        cfg["server"]["static_dir"] = None

        app = create_app(cfg)
        c = TestClient(app)
        r = c.get(TILE_QS)
        assert r.headers["x-cache"] == "HIT"
        assert r.content == PNG
