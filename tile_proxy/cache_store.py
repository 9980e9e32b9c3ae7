from __future__ import annotations

import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Union

from common.types import CacheEntry
from tile_proxy.cache_keys import key_from_filename, key_to_path

log = logging.getLogger(__name__)

TEMP_SUFFIX = ".part"


class CacheStore:
    """
    Byte-bounded fetch-through tile cache: one file per entry under `root`
    plus an in-memory index rebuilt from the directory at startup.

        root/
          ├─ goes-19_20240615-20240615153000_4_7_8.png
          └─ ...

    No manifest is written; `initialize()` adopts whatever cache files are
    already present (including files dropped in by hand).

    Thread Safety:
        A single lock guards the index. It is held for index reads and
        mutations and for a whole eviction pass, never while reading a file
        or writing one. Writes go to a temp file; the rename into place and
        the index update happen together under the lock, so readers never see
        a partial tile and the file on disk always matches the indexed size.
    """

    def __init__(self, root: Union[str, Path], max_bytes: int):
        self.root = Path(root)
        self.max_bytes = int(max_bytes)
        self._index: Dict[str, CacheEntry] = {}
        self._total = 0
        self._lock = threading.Lock()
        self._initialized = False

    # -------- public API --------

    def initialize(self, root: Optional[Union[str, Path]] = None) -> None:
        """
        Build the index from a non-recursive scan of the cache root (`root`
        replaces the one given to the constructor). Call once, before request
        traffic starts; later calls are no-ops.
        """
        if self._initialized:
            return
        if root is not None:
            self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        index: Dict[str, CacheEntry] = {}
        skipped = 0
        with os.scandir(self.root) as it:
            for de in it:
                if de.name.endswith(TEMP_SUFFIX):
                    # interrupted write from a previous run
                    self._remove_quietly(Path(de.path))
                    continue
                key = key_from_filename(de.name)
                if key is None:
                    continue
                try:
                    if not de.is_file(follow_symlinks=False):
                        continue
                    st = de.stat(follow_symlinks=False)
                except OSError as e:
                    skipped += 1
                    log.warning("Skipping unreadable cache file %s: %s", de.name, e)
                    continue
                index[key] = CacheEntry(key=key, path=Path(de.path), size=int(st.st_size), last_access=float(st.st_mtime))

        with self._lock:
            self._index = index
            self._total = sum(e.size for e in index.values())
            self._initialized = True
            total = self._total
        log.info(
            "Tile cache ready: %d entries, %d bytes",
            len(index), total,
            extra={"extra": {"root": str(self.root), "max_bytes": self.max_bytes, "skipped": skipped}},
        )
        if total > self.max_bytes:
            with self._lock:
                self._evict_locked(self._total - self.max_bytes)

    def get(self, key: str) -> Optional[bytes]:
        """
        Cached bytes for `key`, or None when there is no backing file.
        A read error is logged and reported as a miss.
        """
        path = key_to_path(key, self.root)
        try:
            with path.open("rb") as f:
                data = f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            log.warning("Cache read failed for %s: %s", key, e)
            return None

        with self._lock:
            entry = self._index.get(key)
            if entry is not None:
                entry.last_access = max(entry.last_access, time.time())
        if entry is None:
            log.debug("Cache file %s exists but is not indexed", key)
        return data

    def put(self, key: str, data: bytes) -> CacheEntry:
        """
        Store `data` under `key` (full overwrite) and evict least recently used
        entries if the cache grew past `max_bytes`.

        Raises OSError if the file could not be written; the index is left as is.
        """
        path = key_to_path(key, self.root)
        tmp = self._write_temp(data)

        with self._lock:
            try:
                os.replace(tmp, path)
            except OSError:
                self._remove_quietly(tmp)
                raise
            prev = self._index.get(key)
            now = time.time()
            if prev is not None:
                self._total -= prev.size
                now = max(now, prev.last_access)
            entry = CacheEntry(key=key, path=path, size=len(data), last_access=now)
            self._index[key] = entry
            self._total += entry.size
            if self._total > self.max_bytes:
                self._evict_locked(self._total - self.max_bytes)
        return entry

    def evict(self, bytes_to_free: int) -> int:
        """Drop least recently used entries until `bytes_to_free` is reached. Returns bytes freed."""
        with self._lock:
            return self._evict_locked(bytes_to_free)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._index),
                "bytes": self._total,
                "max_bytes": self.max_bytes,
            }

    def entries(self) -> List[CacheEntry]:
        """Snapshot of the index, least recently used first."""
        with self._lock:
            snap = [CacheEntry(e.key, e.path, e.size, e.last_access) for e in self._index.values()]
        snap.sort(key=lambda e: (e.last_access, e.key))
        return snap

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._total

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._index

    def __len__(self) -> int:
        with self._lock:
            return len(self._index)

    # -------- internals --------

    def _evict_locked(self, bytes_to_free: int) -> int:
        if bytes_to_free <= 0:
            return 0
        freed = 0
        removed = 0
        failed = 0
        for entry in sorted(self._index.values(), key=lambda e: (e.last_access, e.key)):
            if freed >= bytes_to_free:
                break
            try:
                entry.path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                failed += 1
                log.warning("Eviction could not delete %s: %s", entry.key, e)
                continue
            del self._index[entry.key]
            self._total -= entry.size
            freed += entry.size
            removed += 1

        log.info(
            "Evicted %d cache entries (%d bytes)",
            removed, freed,
            extra={"extra": {"requested": bytes_to_free, "failed": failed, "total_bytes": self._total}},
        )
        return freed

    def _write_temp(self, data: bytes) -> Path:
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=".", suffix=TEMP_SUFFIX)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
        except BaseException:
            self._remove_quietly(Path(tmp))
            raise
        return Path(tmp)

    @staticmethod
    def _remove_quietly(path: Path) -> None:
        try:
            path.unlink()
        except OSError as e:
            log.debug("Could not remove %s: %s", path, e)
