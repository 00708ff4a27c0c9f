"""Orchestrator — catalog harvest and per-dataset conversion.

One batch:
  1. Fetch the catalog from the registry (failure aborts the batch)
  2. For each dataset, one at a time:
       metadata → resolve → transform → validate → publish
     Any failure is logged with the dataset IRI and step; the loop continues.
  3. Publish the aggregate violation report

Per-dataset states: PENDING → PUBLISHED | SKIPPED_INVALID | FAILED

Usage:
    orchestrator = DatasetOrchestrator(Settings())
    report = await orchestrator.run_batch()
    print(report.to_frame())
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from pathlib import Path

from rdflib import Dataset

from edmconv.cache.blob_store import CacheStore
from edmconv.clients.base import APIProviderError
from edmconv.clients.registry import RegistryClient, metadata_query
from edmconv.clients.triplydb import TriplyDBClient
from edmconv.clients.web import WebClient
from edmconv.config import Settings
from edmconv.exceptions import CatalogFetchFailure, HarvestError
from edmconv.graphs import add_to_graph, new_store, parse_graph
from edmconv.models import (
    BatchReport,
    DatasetDescriptor,
    DatasetOutcome,
    DatasetState,
    EndpointHandle,
)
from edmconv.pipeline.publisher import Publisher, derive_dataset_name
from edmconv.pipeline.reconciler import ResourceReconciler
from edmconv.pipeline.resolver import EndpointResolver
from edmconv.pipeline.transform import TransformTemplate, Transformer, load_templates
from edmconv.pipeline.validation import (
    DATASET_SHAPES,
    EDM_SHAPES,
    ShapeValidator,
    ValidationReport,
    record_violations,
)

logger = logging.getLogger(__name__)


@dataclass
class BatchContext:
    """State shared by every sub-pipeline of one batch."""

    settings: Settings
    report: Dataset = field(default_factory=new_store)
    outcomes: list[DatasetOutcome] = field(default_factory=list)

    def to_report(self) -> BatchReport:
        return BatchReport(
            outcomes=list(self.outcomes),
            violations=sum(o.violations for o in self.outcomes),
        )


@dataclass
class SubPipelineContext:
    """Working state of one dataset; dropped once its outcome is recorded."""

    descriptor: DatasetDescriptor
    parent: BatchContext
    outcome: DatasetOutcome
    handle: EndpointHandle | None = None
    output: Dataset = field(default_factory=new_store)
    validation: ValidationReport | None = None


@dataclass
class _Session:
    """Open clients and the components built on them."""

    registry: RegistryClient
    resolver: EndpointResolver
    transformer: Transformer
    publisher: Publisher
    metadata_validator: ShapeValidator
    edm_validator: ShapeValidator


class DatasetOrchestrator:
    """Drives catalog harvests.

    Args:
        settings: Configuration for this orchestrator
        cache: Response cache (default: one under ``settings.cache_dir``)
    """

    def __init__(self, settings: Settings, cache: CacheStore | None = None) -> None:
        self.settings = settings
        self.cache = cache or CacheStore(base_path=settings.cache_dir)

    async def run_batch(self) -> BatchReport:
        """Convert every dataset in the catalog.

        Raises:
            CatalogFetchFailure: If the catalog cannot be fetched
            HarvestError: If the batch cannot be set up (shapes, templates,
                missing credentials)
        """
        async with AsyncExitStack() as stack:
            session = await self._open_session(stack)
            descriptors = await self.fetch_catalog(session.registry)
            return await self._run(session, descriptors)

    async def run_single_dataset(
        self,
        iri: str,
        destination: str | None = None,
        query_file: str | Path | None = None,
    ) -> BatchReport:
        """Convert one catalog entry.

        Args:
            iri: Dataset IRI as listed in the catalog
            destination: Publish name (default: derived from the title)
            query_file: Local template replacing the configured ones

        Raises:
            HarvestError: If ``iri`` is not in the catalog
        """
        templates = [TransformTemplate.from_file(query_file)] if query_file else None
        async with AsyncExitStack() as stack:
            session = await self._open_session(stack, templates)
            descriptors = await self.fetch_catalog(session.registry)
            selected = [d for d in descriptors if d.iri == iri]
            if not selected:
                raise HarvestError(f"Dataset {iri} is not in the catalog")
            return await self._run(session, selected, destination)

    async def fetch_catalog(self, registry: RegistryClient) -> list[DatasetDescriptor]:
        """Fetch all catalog entries.

        Raises:
            CatalogFetchFailure: If the registry query fails
        """
        try:
            return await registry.list_datasets()
        except (APIProviderError, KeyError) as e:
            raise CatalogFetchFailure(f"Could not fetch the catalog from {registry.base_url}: {e}") from e

    async def _open_session(
        self,
        stack: AsyncExitStack,
        templates: list[TransformTemplate] | None = None,
    ) -> _Session:
        s = self.settings
        metadata_validator = ShapeValidator.packaged(DATASET_SHAPES, s.shapes_dir)
        edm_validator = ShapeValidator.packaged(EDM_SHAPES, s.shapes_dir)
        if templates is None:
            templates = load_templates(s.transform_queries, s.query_dir)

        registry = await stack.enter_async_context(
            RegistryClient(s.registry_url, rate_limit=s.registry_rate_limit, timeout=s.request_timeout)
        )
        web = await stack.enter_async_context(WebClient(timeout=s.request_timeout))

        triplydb = None
        reconciler = None
        account = None
        if s.triplydb_token:
            triplydb = await stack.enter_async_context(
                TriplyDBClient(
                    s.triplydb_url,
                    token=s.triplydb_token,
                    rate_limit=s.triplydb_rate_limit,
                    timeout=s.request_timeout,
                    poll_interval=s.job_poll_interval,
                    max_wait=s.job_max_wait,
                )
            )
            reconciler = ResourceReconciler(triplydb)
            account = s.triplydb_account or await triplydb.get_account_name()
            logger.info("Managed store: %s (account %s)", s.triplydb_url, account)
        elif s.publish_target == "triplydb":
            raise HarvestError("Publishing to TriplyDB needs TRIPLYDB_TOKEN")
        else:
            logger.info("No TriplyDB token: managed tier disabled")

        return _Session(
            registry=registry,
            resolver=EndpointResolver(
                web,
                self.cache,
                reconciler=reconciler,
                account=account,
                max_inmemory_size=s.max_inmemory_size,
            ),
            transformer=Transformer(
                templates,
                mode=s.transform_mode,
                web=web,
                triplydb=triplydb,
                reconciler=reconciler,
            ),
            publisher=Publisher(
                target=s.publish_target,
                reconciler=reconciler,
                account=account,
                data_dir=s.data_dir,
                dump_asset=s.publish_dump_asset,
            ),
            metadata_validator=metadata_validator,
            edm_validator=edm_validator,
        )

    async def _run(
        self,
        session: _Session,
        descriptors: list[DatasetDescriptor],
        destination: str | None = None,
    ) -> BatchReport:
        batch = BatchContext(settings=self.settings)
        logger.info("Processing %d datasets", len(descriptors))

        for i, descriptor in enumerate(descriptors, 1):
            logger.info("[%d/%d] %s (%s)", i, len(descriptors), descriptor.iri, descriptor.title)
            outcome = await self.process_dataset(session, batch, descriptor, destination)
            batch.outcomes.append(outcome)

        report = batch.to_report()
        await self._publish_report(session, batch)
        logger.info(
            "Batch done: %d published, %d skipped, %d failed, %d violations",
            report.count(DatasetState.PUBLISHED),
            report.count(DatasetState.SKIPPED_INVALID),
            report.count(DatasetState.FAILED),
            report.violations,
        )
        return report

    async def process_dataset(
        self,
        session: _Session,
        batch: BatchContext,
        descriptor: DatasetDescriptor,
        destination: str | None = None,
    ) -> DatasetOutcome:
        """Run one dataset's sub-pipeline. Never raises."""
        ctx = SubPipelineContext(
            descriptor=descriptor,
            parent=batch,
            outcome=DatasetOutcome(iri=descriptor.iri, title=descriptor.title),
        )
        outcome = ctx.outcome
        step = "metadata"
        try:
            outcome.violations += await self._check_metadata(session, ctx)
            if descriptor.data_url is None:
                outcome.state = DatasetState.SKIPPED_INVALID
                outcome.error = "Catalog entry has no distribution URL"
                logger.warning("%s: skipped, no distribution URL", descriptor.iri)
                return outcome

            step = "resolve"
            ctx.handle = await session.resolver.resolve(descriptor)
            outcome.tier = ctx.handle.tier

            step = "transform"
            result = await session.transformer.run(ctx.handle)
            outcome.triples = add_to_graph(ctx.output, descriptor.output_graph, result)
            logger.info("%s: %d EDM triples (%s tier)", descriptor.iri, outcome.triples, outcome.tier.value)

            step = "validate"
            ctx.validation = await session.edm_validator.validate(result)
            outcome.violations += self._record(ctx, ctx.validation)

            step = "publish"
            name = destination or derive_dataset_name(descriptor.title, descriptor.iri)
            outcome.published_as = await session.publisher.publish(ctx.output, name)
            outcome.state = DatasetState.PUBLISHED
        except Exception as e:
            outcome.state = DatasetState.FAILED
            outcome.failed_step = step
            outcome.error = str(e)
            logger.error("%s: %s step failed: %s", descriptor.iri, step, e, exc_info=True)
        return outcome

    async def _check_metadata(self, session: _Session, ctx: SubPipelineContext) -> int:
        """Validate the registry description of a dataset. Returns the violation count."""
        iri = ctx.descriptor.iri
        query = metadata_query(iri)
        key = self.cache.key_for(session.registry.base_url, query)
        data = await self.cache.get(key)
        if data is None:
            try:
                data = await session.registry.construct(query)
            except APIProviderError as e:
                logger.warning("%s: could not fetch dataset description: %s", iri, e)
                return 0
            await self.cache.put(key, data)

        try:
            description = await asyncio.to_thread(parse_graph, data, "turtle")
        except Exception as e:
            logger.warning("%s: could not parse dataset description: %s", iri, e)
            return 0
        report = await session.metadata_validator.validate(description)
        if not report.conforms:
            logger.warning("%s: dataset description has %d violations", iri, len(report.violations))
        return self._record(ctx, report)

    def _record(self, ctx: SubPipelineContext, report: ValidationReport) -> int:
        """Add violations to the dataset's own output and to the batch report."""
        graph = self.settings.report_graph
        record_violations(report, ctx.output, graph, ctx.descriptor.iri)
        return record_violations(report, ctx.parent.report, graph, ctx.descriptor.iri)

    async def _publish_report(self, session: _Session, batch: BatchContext) -> None:
        if len(batch.report) == 0:
            logger.info("No violations recorded; skipping report publication")
            return
        try:
            where = await session.publisher.publish(batch.report, self.settings.report_dataset)
        except HarvestError as e:
            logger.error("Could not publish the violation report: %s", e)
            return
        logger.info("Violation report published to %s", where)
