"""TriplyDB API client — the managed remote triple store.

Provides async access to the TriplyDB REST API:
- Datasets: get, create, clear graphs
- Jobs: import from URLs, upload files (polled until finished)
- Services: get, create, synchronize
- Queries: get, create, delete, run
- Assets: find, upload, delete
- SPARQL protocol against a dataset's service endpoint

Every lookup raises ``NotFoundError`` when the resource does not exist;
reconciliation (``edmconv.pipeline.reconciler``) is built on that contract.

Usage:
    from edmconv.clients.triplydb import TriplyDBClient

    async with TriplyDBClient(url, token="...") as tdb:
        account = await tdb.get_account_name()
        info = await tdb.get_dataset(account, "my-dataset")
"""

import asyncio
import logging
from pathlib import Path
from typing import Any

from edmconv.clients.base import APIProviderError, BaseAsyncClient, NotFoundError
from edmconv.clients.sparql import SparqlProtocolMixin

logger = logging.getLogger(__name__)

_JOB_DONE = "finished"
_JOB_FAILED = {"error", "canceled", "cancelled"}


class TriplyDBClient(SparqlProtocolMixin, BaseAsyncClient):
    """Async client for TriplyDB.

    Args:
        url: API base URL (e.g. "https://api.triplydb.com")
        token: API token (sent as bearer token)
        rate_limit: Max requests per second (default: 10)
        timeout: Request timeout in seconds (default: 30)
        poll_interval: Seconds between job status polls (default: 2)
        max_wait: Longest wait for one job in seconds (default: 6 hours)
    """

    def __init__(
        self,
        url: str,
        token: str | None = None,
        rate_limit: int = 10,
        timeout: float = 30.0,
        poll_interval: float = 2.0,
        max_wait: float = 21_600.0,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        super().__init__(base_url=url, headers=headers, rate_limit=rate_limit, timeout=timeout)
        self.poll_interval = poll_interval
        self.max_wait = max_wait

    # --- Accounts ---

    async def get_account_name(self) -> str:
        """Name of the account that owns the token."""
        me = await self.get("/me")
        return me["accountName"]

    # --- Datasets ---

    async def get_dataset(self, account: str, name: str) -> dict[str, Any]:
        """Dataset info (id, name, displayName, graphCount, ...)."""
        return await self.get(f"/datasets/{account}/{name}")

    async def create_dataset(
        self,
        account: str,
        name: str,
        access_level: str = "private",
        display_name: str | None = None,
    ) -> dict[str, Any]:
        """Create an empty dataset."""
        body: dict[str, Any] = {"name": name, "accessLevel": access_level}
        if display_name:
            body["displayName"] = display_name
        return await self.post(f"/datasets/{account}", json_data=body)

    async def clear_graphs(self, account: str, name: str) -> None:
        """Remove every graph from a dataset."""
        await self.delete(f"/datasets/{account}/{name}/graphs")

    # --- Jobs ---

    async def wait_for_job(self, account: str, dataset: str, job_id: str) -> dict[str, Any]:
        """Poll a job until it finishes.

        Raises:
            APIProviderError: If the job fails or does not finish within max_wait
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.max_wait
        while True:
            job = await self.get(f"/datasets/{account}/{dataset}/jobs/{job_id}")
            status = job.get("status")
            if status == _JOB_DONE:
                return job
            if status in _JOB_FAILED:
                raise APIProviderError(
                    f"Job {job_id} on {account}/{dataset} ended with status '{status}': "
                    f"{job.get('error', {}).get('message', 'no message')}"
                )
            if loop.time() >= deadline:
                raise APIProviderError(
                    f"Job {job_id} on {account}/{dataset} did not finish within {self.max_wait:.0f}s"
                )
            logger.debug("Job %s on %s/%s is %s", job_id, account, dataset, status)
            await asyncio.sleep(self.poll_interval)

    async def import_from_urls(self, account: str, dataset: str, urls: list[str]) -> dict[str, Any]:
        """Let the store download and import RDF from URLs.

        Returns:
            The finished job
        """
        job = await self.post(
            f"/datasets/{account}/{dataset}/jobs",
            json_data={"type": "download", "downloadUrls": urls},
        )
        logger.info("Import job %s started on %s/%s for %s", job["jobId"], account, dataset, urls)
        return await self.wait_for_job(account, dataset, job["jobId"])

    async def upload_file(
        self,
        account: str,
        dataset: str,
        filename: str,
        data: bytes,
        overwrite_all: bool = True,
    ) -> dict[str, Any]:
        """Upload serialized RDF into a dataset.

        Args:
            filename: Name sent with the upload (its extension names the syntax)
            data: Serialized RDF
            overwrite_all: Replace every existing graph in the dataset

        Returns:
            The finished job
        """
        job = await self.post(
            f"/datasets/{account}/{dataset}/jobs",
            json_data={"type": "upload", "overwriteAll": overwrite_all},
        )
        job_id = job["jobId"]
        await self._send(
            "POST",
            f"/datasets/{account}/{dataset}/jobs/{job_id}/add",
            files={"file": (filename, data)},
        )
        await self._send("POST", f"/datasets/{account}/{dataset}/jobs/{job_id}/start")
        return await self.wait_for_job(account, dataset, job_id)

    # --- Services ---

    def service_endpoint(self, account: str, dataset: str, service: str) -> str:
        """SPARQL endpoint URL of a service."""
        return f"{self.base_url}/datasets/{account}/{dataset}/services/{service}/sparql"

    async def get_service(self, account: str, dataset: str, name: str) -> dict[str, Any]:
        """Service info (name, type, status, outOfSync, ...)."""
        return await self.get(f"/datasets/{account}/{dataset}/services/{name}")

    async def create_service(
        self, account: str, dataset: str, name: str, service_type: str = "sparql"
    ) -> dict[str, Any]:
        """Start a new service on a dataset."""
        return await self.post(
            f"/datasets/{account}/{dataset}/services",
            json_data={"name": name, "type": service_type},
        )

    async def update_service(self, account: str, dataset: str, name: str) -> dict[str, Any]:
        """Synchronize a service with the current dataset contents."""
        return await self.post(
            f"/datasets/{account}/{dataset}/services/{name}",
            json_data={"sync": True},
        )

    # --- Queries ---

    async def get_query(self, account: str, name: str) -> dict[str, Any]:
        """Stored query info (id, dataset, requestConfig, ...)."""
        return await self.get(f"/queries/{account}/{name}")

    async def create_query(
        self,
        account: str,
        name: str,
        dataset_id: str,
        query_text: str,
        output: str | None = None,
        variables: list[dict[str, Any]] | None = None,
        access_level: str = "private",
    ) -> dict[str, Any]:
        """Store a new query whose first version holds ``query_text``."""
        body: dict[str, Any] = {
            "name": name,
            "dataset": dataset_id,
            "accessLevel": access_level,
            "requestConfig": {"payload": {"query": query_text}},
        }
        if output:
            body["renderConfig"] = {"output": output}
        if variables:
            body["variables"] = variables
        return await self.post(f"/queries/{account}", json_data=body)

    async def delete_query(self, account: str, name: str) -> None:
        """Delete a stored query."""
        await self.delete(f"/queries/{account}/{name}")

    async def run_query(self, account: str, name: str, accept: str = "text/turtle") -> bytes:
        """Execute a stored query and return the raw result body."""
        response = await self._send(
            "GET", f"/queries/{account}/{name}/run", headers={"accept": accept},
        )
        return response.content

    # --- Assets ---

    async def get_asset(self, account: str, dataset: str, name: str) -> dict[str, Any]:
        """Find an asset by file name.

        Raises:
            NotFoundError: If the dataset has no asset with that name
        """
        assets = await self.get(
            f"/datasets/{account}/{dataset}/assets", params={"fileName": name},
        )
        for asset in assets:
            if asset.get("assetName") == name:
                return asset
        raise NotFoundError(f"No asset '{name}' in {account}/{dataset}", status_code=404)

    async def delete_asset(self, account: str, dataset: str, asset_id: str) -> None:
        """Delete an asset (all its versions)."""
        await self.delete(f"/datasets/{account}/{dataset}/assets/{asset_id}")

    async def upload_asset(self, account: str, dataset: str, path: Path, name: str) -> dict[str, Any]:
        """Upload a local file as a new asset."""
        data = await asyncio.to_thread(Path(path).read_bytes)
        response = await self._send(
            "POST",
            f"/datasets/{account}/{dataset}/assets",
            files={"file": (name, data)},
        )
        return response.json()
