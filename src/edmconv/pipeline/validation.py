"""SHACL validation of dataset descriptions and EDM output.

Validation never stops a dataset: results are turned into ``Violation``
values and copied into the batch-wide report graph, tagged with the dataset
they came from.

Shapes files:
    shacl_edm.ttl                    EDM output (ProvidedCHO, Aggregation)
    shacl_dataset_dump_dcat.ttl      DCAT dataset descriptions
    shacl_dataset_dump_schema.ttl    schema.org dataset descriptions
"""

import asyncio
import logging
from dataclasses import dataclass, field
from importlib.resources import files
from pathlib import Path

from pyshacl import validate
from rdflib import BNode, Dataset, Graph, URIRef
from rdflib.namespace import DCTERMS, RDF, SH

from edmconv.exceptions import ShapesNotFoundError

logger = logging.getLogger(__name__)

EDM_SHAPES = ["shacl_edm.ttl"]
DATASET_SHAPES = ["shacl_dataset_dump_dcat.ttl", "shacl_dataset_dump_schema.ttl"]


@dataclass(frozen=True)
class Violation:
    """One SHACL validation result."""

    focus_node: str
    message: str
    path: str | None = None
    severity: str = "Violation"
    source_shape: str | None = None


@dataclass
class ValidationReport:
    """Outcome of validating one graph."""

    conforms: bool
    violations: list[Violation] = field(default_factory=list)
    results_graph: Graph = field(default_factory=Graph)


def _local_name(iri: str) -> str:
    return iri.rsplit("#", 1)[-1].rsplit("/", 1)[-1]


def _violations(results_graph: Graph) -> list[Violation]:
    found = []
    for result in results_graph.subjects(RDF.type, SH.ValidationResult):
        focus = results_graph.value(result, SH.focusNode)
        message = results_graph.value(result, SH.resultMessage)
        path = results_graph.value(result, SH.resultPath)
        severity = results_graph.value(result, SH.resultSeverity)
        shape = results_graph.value(result, SH.sourceShape)
        found.append(
            Violation(
                focus_node=str(focus),
                message=str(message) if message is not None else "",
                path=str(path) if isinstance(path, URIRef) else None,
                severity=_local_name(str(severity)) if severity is not None else "Violation",
                source_shape=str(shape) if isinstance(shape, URIRef) else None,
            )
        )
    return found


def resolve_shapes(names: list[str], shapes_dir: str | Path | None = None) -> list[Path]:
    """Locate shapes files, preferring ``shapes_dir`` over the packaged ones.

    Raises:
        ShapesNotFoundError: If a file exists in neither location
    """
    paths = []
    for name in names:
        if shapes_dir is not None and (Path(shapes_dir) / name).is_file():
            paths.append(Path(shapes_dir) / name)
            continue
        packaged = files("edmconv") / "shapes" / name
        if not packaged.is_file():
            raise ShapesNotFoundError(f"Shapes file '{name}' not found")
        paths.append(Path(str(packaged)))
    return paths


class ShapeValidator:
    """Validate graphs against a fixed set of SHACL shapes.

    Args:
        shapes: Graph holding the shapes
    """

    def __init__(self, shapes: Graph) -> None:
        self.shapes = shapes

    @classmethod
    def from_files(cls, paths: list[str | Path]) -> "ShapeValidator":
        """Load shapes from Turtle files.

        Raises:
            ShapesNotFoundError: If any file is missing
        """
        shapes = Graph()
        for path in paths:
            path = Path(path)
            if not path.is_file():
                raise ShapesNotFoundError(f"Shapes file not found: {path}")
            shapes.parse(path, format="turtle")
        logger.debug("Loaded %d shape triples from %d files", len(shapes), len(paths))
        return cls(shapes)

    @classmethod
    def packaged(cls, names: list[str], shapes_dir: str | Path | None = None) -> "ShapeValidator":
        return cls.from_files(resolve_shapes(names, shapes_dir))

    async def validate(self, data: Graph) -> ValidationReport:
        """Validate a graph; all results are collected (no early termination)."""

        def _run() -> ValidationReport:
            conforms, results_graph, _text = validate(
                data_graph=data,
                shacl_graph=self.shapes,
                inference="none",
                abort_on_first=False,
                allow_warnings=True,
            )
            return ValidationReport(
                conforms=bool(conforms),
                violations=_violations(results_graph),
                results_graph=results_graph,
            )

        return await asyncio.to_thread(_run)


def record_violations(
    report: ValidationReport,
    store: Dataset,
    report_graph: str,
    dataset_iri: str,
) -> int:
    """Copy validation results into the shared report graph.

    Each ``sh:ValidationResult`` is tagged with ``dct:source <dataset_iri>``.

    Returns:
        Number of results recorded
    """
    if report.conforms:
        return 0
    target = store.graph(URIRef(report_graph))
    # Fresh blank nodes keep results of different datasets apart.
    renamed: dict[BNode, BNode] = {}

    def _term(term):
        if isinstance(term, BNode):
            return renamed.setdefault(term, BNode())
        return term

    for s, p, o in report.results_graph:
        target.add((_term(s), p, _term(o)))
    results = list(report.results_graph.subjects(RDF.type, SH.ValidationResult))
    for result in results:
        target.add((_term(result), DCTERMS.source, URIRef(dataset_iri)))
    return len(results)
