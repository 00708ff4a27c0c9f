"""RDF helpers — format detection, decompression, parsing and serialization.

Thin layer over rdflib so the pipeline talks about payloads, media types and
named graphs instead of parser plugins.
"""

import gzip
import logging
from pathlib import PurePosixPath
from urllib.parse import urlsplit

from rdflib import Dataset, Graph, URIRef
from rdflib.util import guess_format

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"

# Media type -> rdflib parser/serializer name
MEDIA_TYPE_FORMATS = {
    "text/turtle": "turtle",
    "application/turtle": "turtle",
    "application/x-turtle": "turtle",
    "application/n-triples": "nt",
    "application/n-quads": "nquads",
    "application/trig": "trig",
    "text/n3": "n3",
    "application/rdf+xml": "xml",
    "application/ld+json": "json-ld",
}


def _url_path(url: str) -> str:
    return urlsplit(url).path


def is_gzip_hinted(url: str, content_encoding: str | None = None) -> bool:
    """Whether the URL extension or the Content-Encoding header announce gzip."""
    if PurePosixPath(_url_path(url)).suffix.lower() == ".gz":
        return True
    return (content_encoding or "").lower() in {"gzip", "application/gzip", "x-gzip"}


def maybe_decompress(body: bytes, hinted: bool) -> tuple[bytes, bool]:
    """Decompress a payload announced as gzip.

    The transport may already have removed a real ``Content-Encoding: gzip``,
    so the gzip magic bytes decide whether anything is left to undo.

    Returns:
        Decoded payload and whether it was compressed on arrival
    """
    if hinted and body[:2] == GZIP_MAGIC:
        return gzip.decompress(body), True
    return body, False


def _media_type_format(media_type: str | None) -> str | None:
    # Generic types such as text/plain or application/octet-stream say nothing.
    if not media_type:
        return None
    return MEDIA_TYPE_FORMATS.get(media_type.split(";", 1)[0].strip().lower())


def rdf_format(
    url: str | None = None,
    content_type: str | None = None,
    declared: str | None = None,
) -> str:
    """Pick the rdflib format for a payload.

    Precedence: the catalog's declared media type, the response media type,
    the URL extension, then Turtle.

    Args:
        url: Where the payload came from
        content_type: Response Content-Type header
        declared: Media type the catalog declares for the distribution
    """
    for media_type in (declared, content_type):
        fmt = _media_type_format(media_type)
        if fmt:
            return fmt
    if url:
        path = _url_path(url)
        if path.lower().endswith(".gz"):
            path = path[:-3]
        guessed = guess_format(path)
        if guessed:
            return guessed
    return "turtle"


def new_store() -> Dataset:
    """Fresh graph store; queries see the union of all its graphs."""
    return Dataset(default_union=True)


def parse_into(store: Dataset, data: bytes, fmt: str, graph: str | None = None) -> int:
    """Parse a serialized payload into a store.

    Args:
        store: Target store
        data: Serialized RDF
        fmt: rdflib format name
        graph: Named graph for triple formats (default graph when None)

    Returns:
        Number of statements in the store afterwards
    """
    if graph is not None and fmt not in {"nquads", "trig"}:
        store.graph(URIRef(graph)).parse(data=data, format=fmt)
    else:
        store.parse(data=data, format=fmt)
    return len(store)


def parse_graph(data: bytes, fmt: str) -> Graph:
    """Parse a triples payload into a standalone graph."""
    graph = Graph()
    graph.parse(data=data, format=fmt)
    return graph


def add_to_graph(store: Dataset, graph_iri: str, triples: Graph) -> int:
    """Copy triples into a named graph of a store.

    Returns:
        Number of triples copied
    """
    target = store.graph(URIRef(graph_iri))
    count = 0
    for triple in triples:
        target.add(triple)
        count += 1
    return count


def serialize(store: Dataset, fmt: str = "trig") -> bytes:
    """Serialize a store (all named graphs) to bytes."""
    return store.serialize(format=fmt, encoding="utf-8")
