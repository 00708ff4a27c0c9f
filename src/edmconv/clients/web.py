"""Client for arbitrary web resources: distribution dumps and external SPARQL endpoints.

Unlike the registry and store clients this one has no base URL; every call
takes an absolute URL.

Usage:
    from edmconv.clients.web import WebClient

    async with WebClient() as web:
        headers = await web.head("https://example.org/dump.nt.gz")
        rows = await web.sparql_select("https://example.org/sparql", "SELECT ...")
"""

import httpx

from edmconv.clients.base import BaseAsyncClient
from edmconv.clients.sparql import SparqlProtocolMixin


class WebClient(SparqlProtocolMixin, BaseAsyncClient):
    """Async client for absolute URLs.

    Args:
        rate_limit: Max requests per second (default: 20)
        timeout: Request timeout in seconds (default: 30)
    """

    def __init__(self, rate_limit: int = 20, timeout: float = 30.0) -> None:
        super().__init__(base_url="", rate_limit=rate_limit, timeout=timeout)

    async def head(self, url: str) -> httpx.Headers:
        """Probe a URL and return its response headers."""
        response = await self._send("HEAD", url)
        return response.headers

    async def fetch(self, url: str) -> tuple[bytes, httpx.Headers]:
        """Download a resource.

        Returns:
            Body bytes and response headers
        """
        response = await self._send("GET", url)
        return response.content, response.headers
