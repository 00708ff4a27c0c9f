"""EndpointResolver — choose the cheapest viable way to query a dataset.

Tiers, in ascending order of cost:

1. External: the distribution is itself a SPARQL endpoint. No probing.
2. In-memory: the distribution is a dump small enough to fetch (Content-Length
   below ``max_inmemory_size``) and parse into an in-process store.
3. Managed: the dump is imported into a TriplyDB dataset named after the hash
   of the dataset IRI, and a SPARQL service is started on it.

A failure in tier 2 is logged and falls through to tier 3. Only when every
applicable tier fails is ``ResolutionExhausted`` raised.

Usage:
    resolver = EndpointResolver(web, cache, reconciler=reconciler, account="me")
    handle = await resolver.resolve(descriptor)
"""

import asyncio
import hashlib
import logging

from edmconv.cache.blob_store import CacheStore
from edmconv.clients.base import APIProviderError
from edmconv.clients.web import WebClient
from edmconv.exceptions import RemoteProvisioningFailure, ResolutionExhausted
from edmconv.graphs import is_gzip_hinted, maybe_decompress, new_store, parse_into, rdf_format
from edmconv.models import (
    DatasetDescriptor,
    EndpointHandle,
    EndpointTier,
    ExternalEndpoint,
    InMemoryEndpoint,
    ManagedEndpoint,
)
from edmconv.pipeline.reconciler import ResourceReconciler

logger = logging.getLogger(__name__)

DEFAULT_SERVICE = "default"


def managed_dataset_name(dataset_iri: str) -> str:
    """Name of the managed dataset holding a copy of ``dataset_iri``."""
    return hashlib.md5(dataset_iri.encode("utf-8"), usedforsecurity=False).hexdigest()


class EndpointResolver:
    """Resolve descriptors to endpoint handles.

    Args:
        web: Open client for distribution URLs
        cache: Response cache for fetched dumps
        reconciler: Reconciler for the managed store; None disables tier 3
        account: Managed store account; required when ``reconciler`` is given
        max_inmemory_size: Largest dump (bytes) loaded into memory
    """

    def __init__(
        self,
        web: WebClient,
        cache: CacheStore,
        reconciler: ResourceReconciler | None = None,
        account: str | None = None,
        max_inmemory_size: int = 20_000_000,
    ) -> None:
        self.web = web
        self.cache = cache
        self.reconciler = reconciler
        self.account = account
        self.max_inmemory_size = max_inmemory_size

    async def resolve(self, descriptor: DatasetDescriptor) -> EndpointHandle:
        """Pick an endpoint for a dataset.

        Args:
            descriptor: Catalog entry to resolve

        Returns:
            The handle of the first tier that succeeded

        Raises:
            ResolutionExhausted: If no tier succeeded
        """
        if descriptor.data_url is None:
            raise ResolutionExhausted(descriptor.iri, {"catalog": "no data URL"})

        if descriptor.is_sparql_endpoint:
            logger.info("%s: external SPARQL endpoint %s", descriptor.iri, descriptor.data_url)
            return ExternalEndpoint(query_url=descriptor.data_url)

        reasons: dict[str, str] = {}

        try:
            handle = await self._load_in_memory(descriptor)
        except Exception as e:
            reasons[EndpointTier.IN_MEMORY.value] = str(e) or type(e).__name__
            logger.warning(
                "%s: in-memory tier failed (%s). Falling back to managed store",
                descriptor.iri, reasons[EndpointTier.IN_MEMORY.value],
            )
        else:
            if handle is not None:
                return handle
            reasons[EndpointTier.IN_MEMORY.value] = "payload too large or size unknown"

        if self.reconciler is None or self.account is None:
            reasons[EndpointTier.MANAGED.value] = "no managed store configured"
            raise ResolutionExhausted(descriptor.iri, reasons)

        try:
            return await self._provision(descriptor)
        except RemoteProvisioningFailure as e:
            reasons[EndpointTier.MANAGED.value] = str(e)
            raise ResolutionExhausted(descriptor.iri, reasons) from e

    async def _load_in_memory(self, descriptor: DatasetDescriptor) -> InMemoryEndpoint | None:
        """Fetch and parse a small dump. None when the dump is not small enough."""
        url = descriptor.data_url
        key = self.cache.key_for(url)
        cached = await self.cache.get(key)

        if cached is not None:
            logger.info("%s: using cached payload for %s", descriptor.iri, url)
            payload = cached
            content_type = None
        else:
            headers = await self.web.head(url)
            length = headers.get("content-length")
            if length is None or not length.isdigit() or int(length) >= self.max_inmemory_size:
                logger.info(
                    "%s: Content-Length %s not below %d. Skipping in-memory tier",
                    descriptor.iri, length, self.max_inmemory_size,
                )
                return None

            body, response_headers = await self.web.fetch(url)
            hinted = is_gzip_hinted(url, response_headers.get("content-encoding"))
            payload, was_compressed = await asyncio.to_thread(maybe_decompress, body, hinted)
            await self.cache.put(key, body if was_compressed else payload, compressed=was_compressed)
            content_type = response_headers.get("content-type")

        fmt = rdf_format(url=url, content_type=content_type, declared=descriptor.data_format)
        store = new_store()
        size = await asyncio.to_thread(parse_into, store, payload, fmt)
        if size == 0:
            raise ValueError(f"parsed 0 statements from {url} as {fmt}")

        logger.info("%s: loaded %d statements in memory (%s)", descriptor.iri, size, fmt)
        return InMemoryEndpoint(store=store)

    async def _provision(self, descriptor: DatasetDescriptor) -> ManagedEndpoint:
        """Make sure a managed dataset with a running service mirrors the dump."""
        name = managed_dataset_name(descriptor.iri)
        client = self.reconciler.client
        try:
            dataset = await self.reconciler.ensure_dataset(self.account, name)
            info = await client.get_dataset(self.account, name)
            if info.get("graphCount", 0) == 0:
                logger.info("%s: importing %s into %s/%s", descriptor.iri, descriptor.data_url, self.account, name)
                await client.import_from_urls(self.account, name, [descriptor.data_url])
            service = await self.reconciler.ensure_service(dataset, DEFAULT_SERVICE)
        except APIProviderError as e:
            raise RemoteProvisioningFailure(
                f"could not provision {self.account}/{name}: {e}"
            ) from e

        logger.info("%s: managed endpoint %s", descriptor.iri, service.endpoint)
        return ManagedEndpoint(dataset=dataset, service=service)
