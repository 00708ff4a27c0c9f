"""Dataset register (catalog) client.

The register is a SPARQL repository listing datasets as dcat:Dataset with
their distributions. Two queries are used:
- one bulk SELECT that yields the catalog (one row per distribution)
- one CONSTRUCT per dataset that yields its full description

Usage:
    from edmconv.clients.registry import RegistryClient

    async with RegistryClient(url) as registry:
        descriptors = await registry.list_datasets()
"""

import logging
from typing import Any

from edmconv.clients.base import BaseAsyncClient
from edmconv.clients.sparql import SPARQL_RESULTS_JSON, parse_bindings, strip_angle_brackets
from edmconv.models import SPARQL_QUERY_MEDIA_TYPE, DatasetDescriptor

logger = logging.getLogger(__name__)

CATALOG_QUERY = """\
PREFIX dcat: <http://www.w3.org/ns/dcat#>
PREFIX dct: <http://purl.org/dc/terms/>
PREFIX schema: <http://schema.org/>
SELECT ?datasetIri ?dataUrl ?dataFormat ?title WHERE {
  ?datasetIri a dcat:Dataset .
  OPTIONAL { ?datasetIri dct:title ?dctTitle }
  OPTIONAL { ?datasetIri schema:name ?schemaName }
  BIND(COALESCE(?dctTitle, ?schemaName, "") AS ?title)
  OPTIONAL {
    ?datasetIri dcat:distribution ?distribution .
    ?distribution dcat:accessURL ?dataUrl .
    OPTIONAL { ?distribution dct:format ?format0 }
    OPTIONAL { ?distribution dcat:mediaType ?mediaType0 }
    BIND(STR(COALESCE(?format0, ?mediaType0, "")) AS ?dataFormat)
  }
}"""

METADATA_QUERY = """\
PREFIX dcat: <http://www.w3.org/ns/dcat#>
CONSTRUCT { ?s ?p ?o } WHERE {
  GRAPH ?g {
    ?dataset a dcat:Dataset .
    ?s ?p ?o
  }
}"""

# Distribution formats the in-memory tier can parse, in order of preference.
RDF_MEDIA_TYPES = (
    "application/n-quads",
    "application/n-triples",
    "application/trig",
    "text/turtle",
    "application/turtle",
    "text/n3",
    "application/rdf+xml",
    "application/ld+json",
)


def metadata_query(dataset_iri: str) -> str:
    """CONSTRUCT query describing one dataset."""
    return METADATA_QUERY.replace("?dataset", f"<{dataset_iri}>")


def _format_rank(data_format: str) -> int:
    if data_format == SPARQL_QUERY_MEDIA_TYPE:
        return 0
    if data_format in RDF_MEDIA_TYPES:
        return 1 + RDF_MEDIA_TYPES.index(data_format)
    return len(RDF_MEDIA_TYPES) + 1


def rows_to_descriptors(rows: list[dict[str, str]]) -> list[DatasetDescriptor]:
    """Collapse catalog rows into one descriptor per dataset IRI.

    When a dataset has several distributions, a SPARQL endpoint wins, then
    RDF dumps in ``RDF_MEDIA_TYPES`` order. A dataset without any access URL
    still yields a descriptor (with ``data_url=None``) so it can be reported.

    Args:
        rows: Flattened SELECT rows of ``CATALOG_QUERY``

    Returns:
        Descriptors in first-seen order
    """
    best: dict[str, DatasetDescriptor] = {}
    for row in rows:
        iri = strip_angle_brackets(row.get("datasetIri", ""))
        if not iri:
            continue
        data_url = row.get("dataUrl")
        candidate = DatasetDescriptor(
            iri=iri,
            data_url=strip_angle_brackets(data_url) if data_url else None,
            data_format=row.get("dataFormat", "").strip(),
            title=row.get("title", "").strip(),
        )
        current = best.get(iri)
        if current is None:
            best[iri] = candidate
            continue
        if current.data_url is None and candidate.data_url is not None:
            best[iri] = candidate
        elif candidate.data_url is not None and (
            _format_rank(candidate.data_format) < _format_rank(current.data_format)
        ):
            best[iri] = candidate
    return list(best.values())


class RegistryClient(BaseAsyncClient):
    """Async client for the dataset register SPARQL repository.

    Args:
        url: Repository URL (SPARQL endpoint)
        rate_limit: Max requests per second (default: 5)
        timeout: Request timeout in seconds (default: 30)
    """

    def __init__(self, url: str, rate_limit: int = 5, timeout: float = 30.0) -> None:
        super().__init__(base_url=url, rate_limit=rate_limit, timeout=timeout)

    async def select(self, query: str) -> list[dict[str, str]]:
        """Run a SELECT query against the register."""
        result: dict[str, Any] = await self._request(
            "POST",
            self.base_url,
            content=query,
            headers={
                "accept": SPARQL_RESULTS_JSON,
                "content-type": SPARQL_QUERY_MEDIA_TYPE,
            },
        )
        return parse_bindings(result)

    async def construct(self, query: str) -> bytes:
        """Run a CONSTRUCT query against the register, returning Turtle."""
        response = await self._send(
            "POST",
            self.base_url,
            content=query,
            headers={
                "accept": "text/turtle",
                "content-type": SPARQL_QUERY_MEDIA_TYPE,
            },
        )
        return response.content

    async def list_datasets(self) -> list[DatasetDescriptor]:
        """Fetch the catalog.

        Returns:
            One descriptor per registered dataset
        """
        rows = await self.select(CATALOG_QUERY)
        descriptors = rows_to_descriptors(rows)
        logger.info(
            "Catalog: %d rows -> %d datasets", len(rows), len(descriptors),
        )
        return descriptors
