"""ResourceReconciler — converge named remote artifacts to a desired state.

Every ``ensure_*`` operation follows one pattern: look the named resource up;
if it exists and matches, keep it; if it exists but drifted, delete and
recreate it (never patch in place); if it is missing, create it.

Operations are idempotent: a second call with the same spec is a no-op.
Calls for different names share no state. Calls for the *same* name are not
locked; callers must not run them concurrently.

Usage:
    reconciler = ResourceReconciler(triplydb_client)
    dataset = await reconciler.ensure_dataset(account, "my-dataset")
    service = await reconciler.ensure_service(dataset)
    await reconciler.ensure_query(account, "my-query", QuerySpec(text, dataset))
"""

import logging
from pathlib import Path
from typing import Any

from edmconv.clients.base import APIProviderError, NotFoundError
from edmconv.clients.triplydb import TriplyDBClient
from edmconv.models import QuerySpec, RemoteDatasetRef, RemoteServiceRef

logger = logging.getLogger(__name__)


def _stored_query_text(info: dict[str, Any]) -> str | None:
    return ((info.get("requestConfig") or {}).get("payload") or {}).get("query")


def _stored_dataset_id(info: dict[str, Any]) -> str | None:
    dataset = info.get("dataset")
    if isinstance(dataset, dict):
        return dataset.get("id")
    return dataset


class ResourceReconciler:
    """Idempotent create-or-recreate operations on the managed store.

    Args:
        client: An open TriplyDB client
    """

    def __init__(self, client: TriplyDBClient) -> None:
        self.client = client

    async def ensure_dataset(self, account: str, name: str) -> RemoteDatasetRef:
        """Get the named dataset, creating it if it does not exist."""
        try:
            info = await self.client.get_dataset(account, name)
        except NotFoundError:
            logger.info("Creating dataset %s/%s", account, name)
            info = await self.client.create_dataset(account, name)
        return RemoteDatasetRef(account=account, name=name, id=info["id"])

    async def ensure_query(self, account: str, name: str, spec: QuerySpec) -> dict[str, Any]:
        """Ensure a stored query with ``name`` holds ``spec.query_text`` on ``spec.dataset``.

        An existing query whose text or dataset differs is deleted and
        recreated.

        Args:
            account: Owner of the stored query
            name: Stored query name ([A-Za-z0-9-])
            spec: Desired state

        Returns:
            Info of the stored query that now matches ``spec``
        """
        try:
            info = await self.client.get_query(account, name)
        except NotFoundError:
            info = None

        if info is not None:
            if (
                _stored_query_text(info) == spec.query_text
                and _stored_dataset_id(info) == spec.dataset.id
            ):
                logger.debug("Query %s/%s is up to date", account, name)
                return info
            logger.info("Query %s/%s is out of date. Recreating", account, name)
            await self._remove_query(account, name)

        logger.info("Creating query %s/%s on dataset %s", account, name, spec.dataset.name)
        return await self.client.create_query(
            account,
            name,
            dataset_id=spec.dataset.id,
            query_text=spec.query_text,
            output=spec.output,
            variables=spec.variables,
        )

    async def _remove_query(self, account: str, name: str) -> None:
        # Absence is the goal, so a failed delete is only worth a log line.
        try:
            await self.client.delete_query(account, name)
        except APIProviderError as e:
            logger.warning("Could not delete query %s/%s: %s", account, name, e)

    async def ensure_service(
        self,
        dataset: RemoteDatasetRef,
        name: str = "default",
        service_type: str = "sparql",
    ) -> RemoteServiceRef:
        """Ensure ``dataset`` has a running, synchronized service called ``name``.

        Args:
            dataset: Dataset that hosts the service
            name: Service name
            service_type: Type used when the service must be created

        Returns:
            Reference to the service
        """
        try:
            info = await self.client.get_service(dataset.account, dataset.name, name)
        except NotFoundError:
            logger.info(
                "Creating %s service '%s' on %s/%s",
                service_type, name, dataset.account, dataset.name,
            )
            info = await self.client.create_service(
                dataset.account, dataset.name, name, service_type,
            )
        else:
            if info.get("outOfSync"):
                logger.info(
                    "Service '%s' on %s/%s is out of sync. Updating",
                    name, dataset.account, dataset.name,
                )
                info = await self.client.update_service(dataset.account, dataset.name, name)

        return RemoteServiceRef(
            account=dataset.account,
            dataset=dataset.name,
            name=name,
            type=info.get("type", service_type),
            endpoint=info.get("endpoint")
            or self.client.service_endpoint(dataset.account, dataset.name, name),
        )

    async def put_asset(self, dataset: RemoteDatasetRef, path: Path, asset_name: str) -> dict[str, Any]:
        """Upload a file as asset ``asset_name``, replacing any existing one."""
        try:
            asset = await self.client.get_asset(dataset.account, dataset.name, asset_name)
        except NotFoundError:
            pass
        else:
            logger.info("Replacing asset %s on %s/%s", asset_name, dataset.account, dataset.name)
            await self.client.delete_asset(dataset.account, dataset.name, asset["identifier"])
        return await self.client.upload_asset(dataset.account, dataset.name, path, asset_name)
