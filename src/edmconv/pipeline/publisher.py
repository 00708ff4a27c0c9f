"""Publisher — write output graphs to their destination.

Two targets:
- triplydb: upload into a destination dataset (replacing previous graphs),
  then make sure its SPARQL service is in sync; optionally attach the dump as
  an asset
- file: write TriG to ``{data_dir}/rdf/{name}.trig``

Destination names are derived from dataset titles (see
``derive_dataset_name``).
"""

import asyncio
import hashlib
import logging
import re
from pathlib import Path

from rdflib import Dataset

from edmconv.clients.base import APIProviderError
from edmconv.exceptions import PublishFailure
from edmconv.graphs import serialize
from edmconv.pipeline.reconciler import ResourceReconciler

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 35

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def derive_dataset_name(title: str, iri: str) -> str:
    """Destination name for a dataset.

    The title is lower-cased and split on runs of non-alphanumeric
    characters; the parts are joined in camel case and cut at 35 characters.
    A title without alphanumerics falls back to ``ds`` plus 16 hex characters
    of the IRI hash.

    Examples:
        >>> derive_dataset_name("Rise – Centsprenten!!", "http://x")
        'riseCentsprenten'
    """
    parts = [p for p in _NON_ALNUM.split(title.lower()) if p]
    if not parts:
        digest = hashlib.md5(iri.encode("utf-8"), usedforsecurity=False).hexdigest()
        return f"ds{digest[:16]}"
    name = parts[0] + "".join(p[0].upper() + p[1:] for p in parts[1:])
    return name[:MAX_NAME_LENGTH]


class Publisher:
    """Publish serialized graphs.

    Args:
        target: "triplydb" or "file"
        reconciler: Reconciler on an open TriplyDB client (triplydb target)
        account: Destination account (triplydb target)
        data_dir: Root of local output (file target)
        dump_asset: Also attach the TriG dump as an asset (triplydb target)
    """

    def __init__(
        self,
        target: str = "triplydb",
        reconciler: ResourceReconciler | None = None,
        account: str | None = None,
        data_dir: str | Path = "data",
        dump_asset: bool = False,
    ) -> None:
        if target == "triplydb" and (reconciler is None or account is None):
            raise ValueError("The triplydb target needs a reconciler and an account")
        self.target = target
        self.reconciler = reconciler
        self.account = account
        self.data_dir = Path(data_dir)
        self.dump_asset = dump_asset

    async def publish(self, store: Dataset, name: str) -> str:
        """Publish every named graph of ``store`` under ``name``.

        Returns:
            Where the data went (``account/name`` or a file path)

        Raises:
            PublishFailure: If the destination could not be written
        """
        data = await asyncio.to_thread(serialize, store, "trig")
        if self.target == "file":
            return await self._write_file(data, name)
        return await self._upload(data, name)

    async def _write_file(self, data: bytes, name: str) -> str:
        path = self.data_dir / "rdf" / f"{name}.trig"

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise PublishFailure(f"Could not write {path}: {e}") from e
        logger.info("Wrote %d bytes to %s", len(data), path)
        return str(path)

    async def _upload(self, data: bytes, name: str) -> str:
        client = self.reconciler.client
        filename = f"{name}.trig"
        try:
            dataset = await self.reconciler.ensure_dataset(self.account, name)
            await client.upload_file(self.account, name, filename, data, overwrite_all=True)
            await self.reconciler.ensure_service(dataset)
            if self.dump_asset:
                dump = self.data_dir / "rdf" / filename
                await asyncio.to_thread(dump.parent.mkdir, parents=True, exist_ok=True)
                await asyncio.to_thread(dump.write_bytes, data)
                await self.reconciler.put_asset(dataset, dump, filename)
        except (APIProviderError, OSError) as e:
            raise PublishFailure(f"Could not publish {self.account}/{name}: {e}") from e
        logger.info("Published %d bytes to %s/%s", len(data), self.account, name)
        return f"{self.account}/{name}"
