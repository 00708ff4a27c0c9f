"""Remote client layer for edmconv.

Async HTTP clients for:
- Arbitrary web resources: distribution dumps, external SPARQL endpoints
- Dataset register: catalog and dataset descriptions
- TriplyDB: managed datasets, services, stored queries, assets
"""

from edmconv.clients.base import APIProviderError, BaseAsyncClient, NotFoundError, RateLimiter
from edmconv.clients.registry import RegistryClient
from edmconv.clients.triplydb import TriplyDBClient
from edmconv.clients.web import WebClient

__all__ = [
    "BaseAsyncClient",
    "RateLimiter",
    "APIProviderError",
    "NotFoundError",
    "RegistryClient",
    "TriplyDBClient",
    "WebClient",
]
