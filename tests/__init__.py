"""
PeepSat Tile Proxy Test Suite

Structure:
- unit/: Unit tests for individual components (registry, keys, cache, resolver, service)
- integration/: FastAPI app exercised end to end with a mocked upstream session
"""
