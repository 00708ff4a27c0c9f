"""Content-addressed blob cache for remote payloads.

Stores fetched payloads (distribution dumps, registry metadata, SPARQL query
results) on disk under the hash of a logical key, so repeated runs never
re-fetch an identical payload.

Storage structure:
    {cache_dir}/{md5(key)}        raw payload
    {cache_dir}/{md5(key)}.gz     payload recorded as gzip-compressed

Example:
    data/cache/3f2a...c1          registry metadata for one dataset
    data/cache/9b07...e4.gz       a gzipped N-Triples dump

Entries are never invalidated by freshness checks; they are only removed by
an explicit purge. Write failures are logged and never propagate: caching is
an optimization, not a correctness dependency.

All I/O operations are async-compatible using asyncio.to_thread for non-blocking
execution.
"""

import asyncio
import gzip
import hashlib
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_GZIP_SUFFIX = ".gz"


@dataclass(frozen=True)
class CacheEntry:
    """A cached payload on disk."""

    key: str
    path: Path
    compressed: bool


class CacheStore:
    """Async on-disk cache keyed by a 128-bit hash of a logical identifier.

    The backing directory is created lazily on the first write.

    Args:
        base_path: Root directory for cache. Defaults to 'data/cache'.
    """

    def __init__(self, base_path: str | Path = "data/cache") -> None:
        self.base_path = Path(base_path)

    @staticmethod
    def key_for(url: str, query: str | None = None) -> str:
        """Hash a URL, or a URL plus query text, into a cache key.

        Args:
            url: Remote URL the payload comes from
            query: Query text sent to ``url``, if any

        Returns:
            32-character hex digest
        """
        logical = url if query is None else url + query
        return hashlib.md5(logical.encode("utf-8"), usedforsecurity=False).hexdigest()

    def _paths(self, key: str) -> tuple[Path, Path]:
        plain = self.base_path / key
        return plain, plain.with_name(key + _GZIP_SUFFIX)

    async def entry(self, key: str) -> CacheEntry | None:
        """Look up the cache entry for a key without reading it."""

        def _lookup() -> CacheEntry | None:
            plain, compressed = self._paths(key)
            if compressed.exists():
                return CacheEntry(key=key, path=compressed, compressed=True)
            if plain.exists():
                return CacheEntry(key=key, path=plain, compressed=False)
            return None

        return await asyncio.to_thread(_lookup)

    async def get(self, key: str) -> bytes | None:
        """Read a cached payload, decompressing it if it was stored compressed.

        Args:
            key: Cache key (see ``key_for``)

        Returns:
            Payload bytes, or None on a miss or an unreadable entry
        """
        found = await self.entry(key)
        if found is None:
            return None

        def _read() -> bytes | None:
            try:
                data = found.path.read_bytes()
                return gzip.decompress(data) if found.compressed else data
            except (OSError, EOFError, gzip.BadGzipFile) as e:
                logger.warning(
                    "Failed to read cache file %s: %s. "
                    "File may be corrupted — treating as a miss.",
                    found.path, e,
                )
                return None

        return await asyncio.to_thread(_read)

    async def put(self, key: str, data: bytes, compressed: bool = False) -> CacheEntry | None:
        """Store a payload verbatim.

        Args:
            key: Cache key (see ``key_for``)
            data: Payload bytes as received
            compressed: Whether ``data`` is gzip-compressed

        Returns:
            The written entry, or None if the write failed
        """
        plain, gz_path = self._paths(key)
        path = gz_path if compressed else plain

        def _write() -> None:
            self.base_path.mkdir(parents=True, exist_ok=True)
            tmp = path.with_name(path.name + ".part")
            tmp.write_bytes(data)
            tmp.replace(path)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            logger.warning("Failed to write cache file %s: %s", path, e)
            return None

        logger.debug("Cached %d bytes under %s", len(data), path.name)
        return CacheEntry(key=key, path=path, compressed=compressed)

    async def purge(self, older_than: timedelta | None = None) -> int:
        """Delete cache entries.

        Args:
            older_than: Only delete entries last written longer ago than this.
                None deletes everything.

        Returns:
            Number of entries deleted
        """
        if not self.base_path.exists():
            return 0

        def _purge() -> int:
            cutoff = None
            if older_than is not None:
                cutoff = time.time() - older_than.total_seconds()
            removed = 0
            for file_path in self.base_path.iterdir():
                if not file_path.is_file():
                    continue
                if cutoff is not None and file_path.stat().st_mtime >= cutoff:
                    continue
                file_path.unlink()
                removed += 1
            return removed

        removed = await asyncio.to_thread(_purge)
        logger.info("Purged %d cache entries from %s", removed, self.base_path)
        return removed

    async def stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with cache statistics:
                - entries: Number of cached payloads
                - compressed: How many of them are stored compressed
                - size_bytes: Total size on disk
        """
        if not self.base_path.exists():
            return {"entries": 0, "compressed": 0, "size_bytes": 0}

        def _stats() -> dict[str, Any]:
            files = [
                f for f in self.base_path.iterdir()
                if f.is_file() and not f.name.endswith(".part")
            ]
            return {
                "entries": len(files),
                "compressed": sum(1 for f in files if f.name.endswith(_GZIP_SUFFIX)),
                "size_bytes": sum(f.stat().st_size for f in files),
            }

        return await asyncio.to_thread(_stats)
