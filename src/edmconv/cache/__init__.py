"""Content-addressed response cache for edmconv.

Immutable, hash-keyed storage of remote payloads.
"""

from edmconv.cache.blob_store import CacheEntry, CacheStore

__all__ = ["CacheEntry", "CacheStore"]
