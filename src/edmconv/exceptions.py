"""Exception taxonomy for the harvest pipeline.

Per-dataset failures (resolution, provisioning, transform, publish) are caught
at the sub-pipeline boundary by the orchestrator. Batch-wide failures
(catalog fetch, missing shapes) abort the run.

Shape violations are not exceptions: they are recorded as
``edmconv.pipeline.validation.Violation`` values.
"""


class HarvestError(Exception):
    """Base exception for edmconv."""


class CatalogFetchFailure(HarvestError):
    """The registry could not be queried; no datasets are retrievable."""


class ShapesNotFoundError(HarvestError):
    """A configured SHACL shapes file does not exist."""


class RemoteProvisioningFailure(HarvestError):
    """A managed remote dataset or service could not be provisioned."""


class ResolutionExhausted(HarvestError):
    """No endpoint tier succeeded for a dataset.

    Attributes:
        dataset_iri: IRI of the dataset that could not be resolved
        reasons: Tier name -> reason it was rejected
    """

    def __init__(self, dataset_iri: str, reasons: dict[str, str]) -> None:
        self.dataset_iri = dataset_iri
        self.reasons = reasons
        detail = "; ".join(f"{tier}: {reason}" for tier, reason in reasons.items())
        super().__init__(f"No endpoint tier succeeded for {dataset_iri} ({detail})")


class TransformQueryFailure(HarvestError):
    """A transform query could not be executed against the endpoint."""

    def __init__(self, query_name: str, message: str) -> None:
        self.query_name = query_name
        super().__init__(f"Transform query '{query_name}' failed: {message}")


class PublishFailure(HarvestError):
    """The output graph could not be written to the destination."""


class TemplateNotFoundError(HarvestError):
    """A transform template is neither packaged nor in the query directory."""
