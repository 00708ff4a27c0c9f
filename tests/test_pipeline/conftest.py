"""Shared fixtures for pipeline tests.

FakeTriplyDB keeps datasets, services, stored queries and assets in dicts and
follows the TriplyDBClient contract: lookups raise NotFoundError when the
resource is missing.
"""

import itertools
from pathlib import Path

import pytest

from edmconv.clients.base import APIProviderError, NotFoundError
from edmconv.pipeline.reconciler import ResourceReconciler


class FakeTriplyDB:
    """In-memory stand-in for TriplyDBClient."""

    base_url = "https://api.triplydb.test"

    def __init__(self) -> None:
        self.datasets: dict[tuple[str, str], dict] = {}
        self.services: dict[tuple[str, str, str], dict] = {}
        self.queries: dict[tuple[str, str], dict] = {}
        self.assets: dict[tuple[str, str, str], dict] = {}
        self.uploads: list[tuple[str, str, str, bytes, bool]] = []
        self.imports: list[tuple[str, str, list[str]]] = []
        self.calls: list[str] = []
        self.fail_delete_query = False
        self.fail_create_dataset = False
        self.query_results: dict[str, bytes] = {}
        self._ids = itertools.count(1)

    def _next_id(self) -> str:
        return f"id{next(self._ids)}"

    # --- Datasets ---

    async def get_dataset(self, account, name):
        self.calls.append("get_dataset")
        try:
            return dict(self.datasets[(account, name)])
        except KeyError:
            raise NotFoundError(f"No dataset {account}/{name}", status_code=404)

    async def create_dataset(self, account, name, access_level="private", display_name=None):
        self.calls.append("create_dataset")
        if self.fail_create_dataset:
            raise APIProviderError("Request failed: 403", status_code=403)
        info = {"id": self._next_id(), "name": name, "graphCount": 0}
        self.datasets[(account, name)] = info
        return dict(info)

    async def import_from_urls(self, account, dataset, urls):
        self.calls.append("import_from_urls")
        self.imports.append((account, dataset, list(urls)))
        self.datasets[(account, dataset)]["graphCount"] = 1
        return {"status": "finished"}

    async def upload_file(self, account, dataset, filename, data, overwrite_all=True):
        self.calls.append("upload_file")
        self.uploads.append((account, dataset, filename, data, overwrite_all))
        self.datasets[(account, dataset)]["graphCount"] = 1
        for key, service in self.services.items():
            if key[:2] == (account, dataset):
                service["outOfSync"] = True
        return {"status": "finished"}

    # --- Services ---

    def service_endpoint(self, account, dataset, service):
        return f"{self.base_url}/datasets/{account}/{dataset}/services/{service}/sparql"

    async def get_service(self, account, dataset, name):
        self.calls.append("get_service")
        try:
            return dict(self.services[(account, dataset, name)])
        except KeyError:
            raise NotFoundError(f"No service {name}", status_code=404)

    async def create_service(self, account, dataset, name, service_type="sparql"):
        self.calls.append("create_service")
        info = {
            "name": name,
            "type": service_type,
            "outOfSync": False,
            "endpoint": self.service_endpoint(account, dataset, name),
        }
        self.services[(account, dataset, name)] = info
        return dict(info)

    async def update_service(self, account, dataset, name):
        self.calls.append("update_service")
        self.services[(account, dataset, name)]["outOfSync"] = False
        return dict(self.services[(account, dataset, name)])

    # --- Queries ---

    async def get_query(self, account, name):
        self.calls.append("get_query")
        try:
            return dict(self.queries[(account, name)])
        except KeyError:
            raise NotFoundError(f"No query {name}", status_code=404)

    async def create_query(
        self, account, name, dataset_id, query_text, output=None, variables=None,
        access_level="private",
    ):
        self.calls.append("create_query")
        info = {
            "id": self._next_id(),
            "name": name,
            "dataset": {"id": dataset_id},
            "requestConfig": {"payload": {"query": query_text}},
        }
        self.queries[(account, name)] = info
        return dict(info)

    async def delete_query(self, account, name):
        self.calls.append("delete_query")
        if self.fail_delete_query:
            raise APIProviderError("Request failed: 500", status_code=500)
        self.queries.pop((account, name), None)

    async def run_query(self, account, name, accept="text/turtle"):
        self.calls.append("run_query")
        return self.query_results.get(name, b"")

    # --- Assets ---

    async def get_asset(self, account, dataset, name):
        self.calls.append("get_asset")
        try:
            return dict(self.assets[(account, dataset, name)])
        except KeyError:
            raise NotFoundError(f"No asset {name}", status_code=404)

    async def delete_asset(self, account, dataset, asset_id):
        self.calls.append("delete_asset")
        for key, asset in list(self.assets.items()):
            if asset["identifier"] == asset_id:
                del self.assets[key]

    async def upload_asset(self, account, dataset, path, name):
        self.calls.append("upload_asset")
        info = {"identifier": self._next_id(), "assetName": name, "size": Path(path).stat().st_size}
        self.assets[(account, dataset, name)] = info
        return dict(info)


@pytest.fixture
def fake_triplydb() -> FakeTriplyDB:
    return FakeTriplyDB()


@pytest.fixture
def reconciler(fake_triplydb: FakeTriplyDB) -> ResourceReconciler:
    return ResourceReconciler(fake_triplydb)


SCHEMA_TURTLE = b"""\
@prefix schema: <http://schema.org/> .

<https://example.org/object/1> a schema:VisualArtwork ;
    schema:name "Gezicht op Delft" ;
    schema:license <http://creativecommons.org/publicdomain/zero/1.0/> ;
    schema:url <https://example.org/page/1> ;
    schema:provider [ schema:name "Voorbeeldmuseum" ] .

<https://example.org/object/2> a schema:Photograph ;
    schema:description "Straatbeeld" .
"""


@pytest.fixture
def schema_turtle() -> bytes:
    return SCHEMA_TURTLE
