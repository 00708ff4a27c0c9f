"""SPARQL protocol helpers shared by the HTTP clients."""

from typing import Any

SPARQL_RESULTS_JSON = "application/sparql-results+json"
RDF_ACCEPT = "text/turtle, application/n-triples;q=0.9, application/trig;q=0.8"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def parse_bindings(result: dict[str, Any]) -> list[dict[str, str]]:
    """Flatten a SPARQL JSON result into one ``{variable: value}`` dict per row.

    Unbound variables are absent from their row.

    Args:
        result: SPARQL JSON result containing ``result["results"]["bindings"]``

    Returns:
        Rows in result order

    Raises:
        KeyError: If the result document is malformed
    """
    rows: list[dict[str, str]] = []
    for binding in result["results"]["bindings"]:
        rows.append({key: term["value"] for key, term in binding.items()})
    return rows


def strip_angle_brackets(value: str) -> str:
    """Turn ``<http://x>`` into ``http://x``; other values pass through."""
    value = value.strip()
    if value.startswith("<") and value.endswith(">"):
        return value[1:-1]
    return value


class SparqlProtocolMixin:
    """SELECT / CONSTRUCT over the SPARQL 1.1 protocol (form-encoded POST).

    Mixed into ``BaseAsyncClient`` subclasses; uses their ``_send``.
    """

    async def sparql_select(self, endpoint: str, query: str) -> list[dict[str, str]]:
        """Run a SELECT query.

        Args:
            endpoint: SPARQL endpoint URL
            query: SELECT query text

        Returns:
            One ``{variable: value}`` dict per solution
        """
        response = await self._send(
            "POST",
            endpoint,
            data={"query": query},
            headers={"accept": SPARQL_RESULTS_JSON, "content-type": FORM_CONTENT_TYPE},
        )
        return parse_bindings(response.json())

    async def sparql_construct(self, endpoint: str, query: str) -> tuple[bytes, str]:
        """Run a CONSTRUCT query.

        Returns:
            Serialized RDF and its content type
        """
        response = await self._send(
            "POST",
            endpoint,
            data={"query": query},
            headers={"accept": RDF_ACCEPT, "content-type": FORM_CONTENT_TYPE},
        )
        return response.content, response.headers.get("content-type", "text/turtle")
