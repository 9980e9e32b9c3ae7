"""Logging, shared types and small helpers used by tile_proxy and scripts."""
