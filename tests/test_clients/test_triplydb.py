"""Tests for the TriplyDB client."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from edmconv.clients.base import APIProviderError, NotFoundError
from edmconv.clients.triplydb import TriplyDBClient

API = "https://api.triplydb.test"


@pytest.fixture
def client() -> TriplyDBClient:
    return TriplyDBClient(API, token="secret", poll_interval=0, max_wait=5)


class TestAccountsAndDatasets:
    @pytest.mark.asyncio
    async def test_sends_bearer_token(self, respx_mock, client):
        route = respx_mock.get(f"{API}/me").mock(
            return_value=httpx.Response(200, json={"accountName": "nde"})
        )

        async with client:
            assert await client.get_account_name() == "nde"

        assert route.calls.last.request.headers["authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_missing_dataset_raises_not_found(self, respx_mock, client):
        respx_mock.get(f"{API}/datasets/nde/absent").mock(return_value=httpx.Response(404))

        async with client:
            with pytest.raises(NotFoundError):
                await client.get_dataset("nde", "absent")

    @pytest.mark.asyncio
    async def test_create_dataset(self, respx_mock, client):
        route = respx_mock.post(f"{API}/datasets/nde").mock(
            return_value=httpx.Response(201, json={"id": "ds1", "name": "rise"})
        )

        async with client:
            info = await client.create_dataset("nde", "rise", display_name="Rise")

        assert info["id"] == "ds1"
        body = json.loads(route.calls.last.request.content)
        assert body == {"name": "rise", "accessLevel": "private", "displayName": "Rise"}


class TestJobs:
    @pytest.mark.asyncio
    async def test_import_polls_until_finished(self, respx_mock, client):
        respx_mock.post(f"{API}/datasets/nde/rise/jobs").mock(
            return_value=httpx.Response(200, json={"jobId": "j1", "status": "created"})
        )
        poll = respx_mock.get(f"{API}/datasets/nde/rise/jobs/j1")
        poll.side_effect = [
            httpx.Response(200, json={"jobId": "j1", "status": "importing"}),
            httpx.Response(200, json={"jobId": "j1", "status": "finished"}),
        ]

        async with client:
            job = await client.import_from_urls("nde", "rise", ["https://d/1.ttl"])

        assert job["status"] == "finished"
        assert poll.call_count == 2

    @pytest.mark.asyncio
    async def test_failed_job_raises(self, respx_mock, client):
        respx_mock.post(f"{API}/datasets/nde/rise/jobs").mock(
            return_value=httpx.Response(200, json={"jobId": "j1"})
        )
        respx_mock.get(f"{API}/datasets/nde/rise/jobs/j1").mock(
            return_value=httpx.Response(200, json={"status": "error", "error": {"message": "bad syntax"}})
        )

        async with client:
            with pytest.raises(APIProviderError, match="bad syntax"):
                await client.import_from_urls("nde", "rise", ["https://d/1.ttl"])

    @pytest.mark.asyncio
    async def test_job_wait_is_capped(self, respx_mock):
        respx_mock.post(f"{API}/datasets/nde/rise/jobs").mock(
            return_value=httpx.Response(200, json={"jobId": "j1"})
        )
        respx_mock.get(f"{API}/datasets/nde/rise/jobs/j1").mock(
            return_value=httpx.Response(200, json={"status": "importing"})
        )

        with patch("edmconv.clients.triplydb.asyncio.sleep", new=AsyncMock()):
            async with TriplyDBClient(API, poll_interval=1, max_wait=0) as client:
                with pytest.raises(APIProviderError, match="did not finish"):
                    await client.import_from_urls("nde", "rise", ["https://d/1.ttl"])

    @pytest.mark.asyncio
    async def test_upload_file_adds_and_starts(self, respx_mock, client):
        create = respx_mock.post(f"{API}/datasets/nde/rise/jobs").mock(
            return_value=httpx.Response(200, json={"jobId": "j2"})
        )
        add = respx_mock.post(f"{API}/datasets/nde/rise/jobs/j2/add").mock(
            return_value=httpx.Response(200, json={})
        )
        start = respx_mock.post(f"{API}/datasets/nde/rise/jobs/j2/start").mock(
            return_value=httpx.Response(200, json={})
        )
        respx_mock.get(f"{API}/datasets/nde/rise/jobs/j2").mock(
            return_value=httpx.Response(200, json={"status": "finished"})
        )

        async with client:
            await client.upload_file("nde", "rise", "rise.trig", b"<a> <b> <c> .")

        assert json.loads(create.calls.last.request.content)["overwriteAll"] is True
        assert b"rise.trig" in add.calls.last.request.content
        assert start.call_count == 1


class TestServicesAndQueries:
    def test_service_endpoint(self, client):
        assert client.service_endpoint("nde", "rise", "default") == (
            f"{API}/datasets/nde/rise/services/default/sparql"
        )

    @pytest.mark.asyncio
    async def test_create_query_body(self, respx_mock, client):
        route = respx_mock.post(f"{API}/queries/nde").mock(
            return_value=httpx.Response(201, json={"id": "q1"})
        )

        async with client:
            await client.create_query("nde", "q", dataset_id="ds1", query_text="SELECT * {}", output="table")

        body = json.loads(route.calls.last.request.content)
        assert body["dataset"] == "ds1"
        assert body["requestConfig"]["payload"]["query"] == "SELECT * {}"
        assert body["renderConfig"] == {"output": "table"}

    @pytest.mark.asyncio
    async def test_run_query_returns_raw_body(self, respx_mock, client):
        route = respx_mock.get(f"{API}/queries/nde/q/run").mock(
            return_value=httpx.Response(200, content=b"<a> <b> <c> .")
        )

        async with client:
            data = await client.run_query("nde", "q")

        assert data == b"<a> <b> <c> ."
        assert route.calls.last.request.headers["accept"] == "text/turtle"


class TestAssets:
    @pytest.mark.asyncio
    async def test_get_asset_by_name(self, respx_mock, client):
        respx_mock.get(f"{API}/datasets/nde/rise/assets").mock(
            return_value=httpx.Response(200, json=[{"assetName": "rise.trig", "identifier": "a1"}])
        )

        async with client:
            asset = await client.get_asset("nde", "rise", "rise.trig")

        assert asset["identifier"] == "a1"

    @pytest.mark.asyncio
    async def test_absent_asset_raises_not_found(self, respx_mock, client):
        respx_mock.get(f"{API}/datasets/nde/rise/assets").mock(return_value=httpx.Response(200, json=[]))

        async with client:
            with pytest.raises(NotFoundError):
                await client.get_asset("nde", "rise", "rise.trig")
