"""Pipeline module — catalog harvest, endpoint resolution, transformation.

Components:
- ResourceReconciler: idempotent create-or-recreate of remote artifacts
- EndpointResolver: three-tier endpoint selection per dataset
- Transformer: EDM CONSTRUCT templates over any endpoint tier
- ShapeValidator: non-fatal SHACL validation
- Publisher: TriplyDB or local file output
- DatasetOrchestrator: batch loop with per-dataset failure isolation
"""

from edmconv.pipeline.orchestrator import DatasetOrchestrator
from edmconv.pipeline.publisher import Publisher, derive_dataset_name
from edmconv.pipeline.reconciler import ResourceReconciler
from edmconv.pipeline.resolver import EndpointResolver
from edmconv.pipeline.transform import TransformTemplate, Transformer, load_templates
from edmconv.pipeline.validation import ShapeValidator, ValidationReport, Violation

__all__ = [
    "DatasetOrchestrator",
    "EndpointResolver",
    "Publisher",
    "ResourceReconciler",
    "ShapeValidator",
    "TransformTemplate",
    "Transformer",
    "ValidationReport",
    "Violation",
    "derive_dataset_name",
    "load_templates",
]
