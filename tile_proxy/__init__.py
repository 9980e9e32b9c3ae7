"""
Tile Proxy: satellite imagery fetch-through cache

- Resolves /tile-proxy?sat&t&d&z&x&y requests to SLIDER tile URLs
- Serves tiles from a byte-bounded on-disk LRU cache (`data/cache/{key}.png`)
- Passes latest_times / available_dates JSON through with CORS headers
- Legacy /goes-proxy transcodes archived GOES GeoTIFFs to JPEG

Entry point:
    python -m tile_proxy.server --config config/params.yaml
"""
