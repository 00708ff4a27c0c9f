"""Transform — run the EDM CONSTRUCT templates against an endpoint.

Templates are ``.rq`` files addressed by logical name. ``?id`` is the record
placeholder: in dataset mode it stays a variable and the template runs once;
in instance mode a ``retrieve-instances`` SELECT lists the records and every
template runs once per record with ``?id`` bound to that record's IRI.

How a query executes depends on the endpoint tier:

    External   SPARQL protocol POST to the third-party endpoint
    In-memory  rdflib query on the in-process store (off the event loop)
    Managed    stored query (reconciled, then run) in dataset mode;
               SPARQL protocol POST to the dataset service per record
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from importlib.resources import files
from pathlib import Path
from typing import assert_never

from rdflib import Dataset, Graph, URIRef

from edmconv.clients.sparql import SPARQL_RESULTS_JSON, parse_bindings
from edmconv.clients.triplydb import TriplyDBClient
from edmconv.clients.web import WebClient
from edmconv.exceptions import TemplateNotFoundError, TransformQueryFailure
from edmconv.graphs import parse_graph, rdf_format
from edmconv.models import (
    EndpointHandle,
    ExternalEndpoint,
    InMemoryEndpoint,
    ManagedEndpoint,
    QuerySpec,
)
from edmconv.pipeline.reconciler import ResourceReconciler

logger = logging.getLogger(__name__)

INSTANCES_TEMPLATE = "retrieve-instances"

_ID_PLACEHOLDER = re.compile(r"\?id\b")
_QUERY_NAME_INVALID = re.compile(r"[^A-Za-z0-9-]+")


@dataclass(frozen=True)
class TransformTemplate:
    """A named SPARQL template."""

    name: str
    text: str

    def for_instance(self, iri: str) -> str:
        """Template text with the record placeholder bound to ``iri``."""
        return _ID_PLACEHOLDER.sub(lambda _m: f"<{iri}>", self.text)

    @classmethod
    def from_file(cls, path: str | Path) -> "TransformTemplate":
        path = Path(path)
        return cls(name=path.stem, text=path.read_text(encoding="utf-8"))


def load_template(name: str, query_dir: str | Path | None = None) -> TransformTemplate:
    """Load one template by logical name.

    A file in ``query_dir`` takes precedence over the packaged template.

    Raises:
        TemplateNotFoundError: If neither location has ``<name>.rq``
    """
    filename = f"{name}.rq"
    if query_dir is not None:
        override = Path(query_dir) / filename
        if override.is_file():
            return TransformTemplate.from_file(override)

    packaged = files("edmconv") / "queries" / filename
    if not packaged.is_file():
        raise TemplateNotFoundError(f"No transform template named '{name}'")
    return TransformTemplate(name=name, text=packaged.read_text(encoding="utf-8"))


def load_templates(names: list[str], query_dir: str | Path | None = None) -> list[TransformTemplate]:
    """Load templates in the given order."""
    return [load_template(name, query_dir) for name in names]


def _construct_in_memory(store: Dataset, query: str) -> Graph:
    result = Graph()
    for triple in store.query(query):
        result.add(triple)
    return result


def _select_ids_in_memory(store: Dataset, query: str) -> list[str]:
    return [str(row[0]) for row in store.query(query) if isinstance(row[0], URIRef)]


class Transformer:
    """Executes transform templates against any endpoint tier.

    Args:
        templates: CONSTRUCT templates, run in order
        mode: "dataset" or "instance"
        web: Open client for external endpoints
        triplydb: Open TriplyDB client; needed for managed endpoints
        reconciler: Reconciler used for stored queries on the managed tier
        instances: SELECT listing record IRIs in its ``?id`` column
    """

    def __init__(
        self,
        templates: list[TransformTemplate],
        mode: str = "dataset",
        web: WebClient | None = None,
        triplydb: TriplyDBClient | None = None,
        reconciler: ResourceReconciler | None = None,
        instances: TransformTemplate | None = None,
    ) -> None:
        if mode not in {"dataset", "instance"}:
            raise ValueError(f"Unknown transform mode '{mode}'")
        self.templates = templates
        self.mode = mode
        self.web = web
        self.triplydb = triplydb
        self.reconciler = reconciler
        self.instances = instances or load_template(INSTANCES_TEMPLATE)

    async def run(self, handle: EndpointHandle) -> Graph:
        """Run every template and collect the results in one graph.

        Raises:
            TransformQueryFailure: On the first template that cannot execute
        """
        output = Graph()
        if self.mode == "instance":
            ids = await self.instance_ids(handle)
            logger.info("Transforming %d records with %d templates", len(ids), len(self.templates))
            for template in self.templates:
                for iri in ids:
                    output += await self.construct(handle, template, template.for_instance(iri))
        else:
            for template in self.templates:
                result = await self.construct(handle, template, template.text, stored=True)
                logger.info("%s: %d triples", template.name, len(result))
                output += result
        return output

    async def instance_ids(self, handle: EndpointHandle) -> list[str]:
        """IRIs of the records to transform one by one."""
        query = self.instances.text
        try:
            match handle:
                case ExternalEndpoint(query_url=url):
                    rows = await self.web.sparql_select(url, query)
                    return [row["id"] for row in rows if "id" in row]
                case InMemoryEndpoint(store=store):
                    return await asyncio.to_thread(_select_ids_in_memory, store, query)
                case ManagedEndpoint(dataset=dataset):
                    name = self.stored_query_name(self.instances, dataset.name)
                    await self.reconciler.ensure_query(
                        dataset.account, name, QuerySpec(query_text=query, dataset=dataset),
                    )
                    body = await self.triplydb.run_query(
                        dataset.account, name, accept=SPARQL_RESULTS_JSON,
                    )
                    rows = parse_bindings(json.loads(body))
                    return [row["id"] for row in rows if "id" in row]
                case _:
                    assert_never(handle)
        except Exception as e:
            raise TransformQueryFailure(self.instances.name, str(e)) from e

    async def construct(
        self,
        handle: EndpointHandle,
        template: TransformTemplate,
        query: str,
        stored: bool = False,
    ) -> Graph:
        """Execute one CONSTRUCT query.

        Args:
            handle: Endpoint to query
            template: Template the query was built from
            query: Concrete query text
            stored: On the managed tier, run it as a reconciled stored query

        Raises:
            TransformQueryFailure: If the query cannot be executed or its
                result cannot be parsed
        """
        try:
            match handle:
                case ExternalEndpoint(query_url=url):
                    data, content_type = await self.web.sparql_construct(url, query)
                case InMemoryEndpoint(store=store):
                    return await asyncio.to_thread(_construct_in_memory, store, query)
                case ManagedEndpoint(dataset=dataset, service=service):
                    if stored:
                        name = self.stored_query_name(template, dataset.name)
                        await self.reconciler.ensure_query(
                            dataset.account, name, QuerySpec(query_text=query, dataset=dataset),
                        )
                        data = await self.triplydb.run_query(dataset.account, name)
                        content_type = "text/turtle"
                    else:
                        data, content_type = await self.triplydb.sparql_construct(
                            service.endpoint, query,
                        )
                case _:
                    assert_never(handle)
            return await asyncio.to_thread(parse_graph, data, rdf_format(content_type=content_type))
        except Exception as e:
            raise TransformQueryFailure(template.name, str(e)) from e

    @staticmethod
    def stored_query_name(template: TransformTemplate, dataset_name: str) -> str:
        """Stored query name, unique per template and managed dataset."""
        return _QUERY_NAME_INVALID.sub("-", f"{template.name}-{dataset_name[:12]}")
