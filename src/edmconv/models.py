"""Data model shared by the pipeline components.

- DatasetDescriptor: one catalog entry (immutable, identity = IRI)
- EndpointHandle: closed union of the three endpoint tiers
- Remote references: TriplyDB dataset / service handles
- DatasetOutcome / BatchReport: per-dataset terminal states of a batch run
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import pandas as pd
from rdflib import Dataset

SPARQL_QUERY_MEDIA_TYPE = "application/sparql-query"


@dataclass(frozen=True)
class DatasetDescriptor:
    """One dataset as listed in the catalog.

    Attributes:
        iri: Dataset IRI (identity)
        data_url: Distribution access URL, None when the catalog lacks one
        data_format: Distribution media type (e.g. "text/turtle")
        title: Human-readable dataset title
    """

    iri: str
    data_url: str | None
    data_format: str
    title: str

    @property
    def is_sparql_endpoint(self) -> bool:
        return self.data_format == SPARQL_QUERY_MEDIA_TYPE

    @property
    def output_graph(self) -> str:
        """Named graph holding the EDM output of this dataset."""
        return f"{self.iri}edm"


class EndpointTier(Enum):
    """Endpoint resolution strategy, in ascending order of cost."""

    EXTERNAL = "external"
    IN_MEMORY = "in-memory"
    MANAGED = "managed"


@dataclass(frozen=True)
class RemoteDatasetRef:
    """A dataset on the managed store."""

    account: str
    name: str
    id: str


@dataclass(frozen=True)
class RemoteServiceRef:
    """A query service running on a managed dataset."""

    account: str
    dataset: str
    name: str
    type: str
    endpoint: str


@dataclass(frozen=True)
class ExternalEndpoint:
    """A third-party SPARQL endpoint, queried over the SPARQL protocol."""

    query_url: str

    @property
    def tier(self) -> EndpointTier:
        return EndpointTier.EXTERNAL


@dataclass(frozen=True)
class InMemoryEndpoint:
    """An in-process graph store owned by one sub-pipeline."""

    store: Dataset

    @property
    def tier(self) -> EndpointTier:
        return EndpointTier.IN_MEMORY


@dataclass(frozen=True)
class ManagedEndpoint:
    """A provisioned remote dataset plus an active query service on it."""

    dataset: RemoteDatasetRef
    service: RemoteServiceRef

    @property
    def tier(self) -> EndpointTier:
        return EndpointTier.MANAGED


EndpointHandle = ExternalEndpoint | InMemoryEndpoint | ManagedEndpoint


@dataclass(frozen=True)
class QuerySpec:
    """Desired state of a stored query on the managed store.

    Attributes:
        query_text: SPARQL text the stored query must hold
        dataset: Dataset the stored query must target
        output: Preferred render output (e.g. "response", "table")
        variables: Declared API variables, if any
    """

    query_text: str
    dataset: RemoteDatasetRef
    output: str | None = None
    variables: list[dict[str, Any]] | None = None


class DatasetState(Enum):
    """Per-dataset state of a batch run."""

    PENDING = "PENDING"
    PUBLISHED = "PUBLISHED"
    SKIPPED_INVALID = "SKIPPED_INVALID"
    FAILED = "FAILED"


@dataclass
class DatasetOutcome:
    """Terminal result of one dataset's sub-pipeline."""

    iri: str
    title: str
    state: DatasetState = DatasetState.PENDING
    tier: EndpointTier | None = None
    published_as: str | None = None
    triples: int = 0
    violations: int = 0
    failed_step: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "iri": self.iri,
            "title": self.title,
            "state": self.state.value,
            "tier": self.tier.value if self.tier else None,
            "published_as": self.published_as,
            "triples": self.triples,
            "violations": self.violations,
            "failed_step": self.failed_step,
            "error": self.error,
        }


@dataclass
class BatchReport:
    """Aggregate result of a batch run."""

    outcomes: list[DatasetOutcome] = field(default_factory=list)
    violations: int = 0

    def count(self, state: DatasetState) -> int:
        return sum(1 for o in self.outcomes if o.state is state)

    def by_iri(self) -> dict[str, DatasetOutcome]:
        return {o.iri: o for o in self.outcomes}

    def to_frame(self) -> pd.DataFrame:
        """One row per dataset, in processing order."""
        columns = [
            "iri", "title", "state", "tier", "published_as",
            "triples", "violations", "failed_step", "error",
        ]
        return pd.DataFrame([o.to_dict() for o in self.outcomes], columns=columns)
