"""Tests for the web client and the SPARQL protocol helpers."""

from urllib.parse import parse_qs

import httpx
import pytest

from edmconv.clients.base import APIProviderError
from edmconv.clients.sparql import parse_bindings, strip_angle_brackets
from edmconv.clients.web import WebClient

ENDPOINT = "https://sparql.example.org/query"


class TestSparqlHelpers:
    def test_parse_bindings_flattens_rows(self):
        result = {
            "head": {"vars": ["id", "label"]},
            "results": {
                "bindings": [
                    {"id": {"type": "uri", "value": "https://example.org/1"},
                     "label": {"type": "literal", "value": "One"}},
                    {"id": {"type": "uri", "value": "https://example.org/2"}},
                ]
            },
        }

        rows = parse_bindings(result)

        assert rows == [
            {"id": "https://example.org/1", "label": "One"},
            {"id": "https://example.org/2"},
        ]

    def test_parse_bindings_rejects_malformed_result(self):
        with pytest.raises(KeyError):
            parse_bindings({"boolean": True})

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("<https://example.org/x>", "https://example.org/x"),
            ("  <https://example.org/x> ", "https://example.org/x"),
            ("https://example.org/x", "https://example.org/x"),
            ("<unterminated", "<unterminated"),
        ],
    )
    def test_strip_angle_brackets(self, value, expected):
        assert strip_angle_brackets(value) == expected


class TestWebClient:
    @pytest.mark.asyncio
    async def test_head_returns_headers(self, respx_mock):
        respx_mock.head("https://data.example.org/dump.nt.gz").mock(
            return_value=httpx.Response(200, headers={"content-length": "1234"})
        )

        async with WebClient() as web:
            headers = await web.head("https://data.example.org/dump.nt.gz")

        assert headers["content-length"] == "1234"

    @pytest.mark.asyncio
    async def test_fetch_returns_body_and_headers(self, respx_mock):
        respx_mock.get("https://data.example.org/dump.ttl").mock(
            return_value=httpx.Response(200, content=b"<a> <b> <c> .", headers={"content-type": "text/turtle"})
        )

        async with WebClient() as web:
            body, headers = await web.fetch("https://data.example.org/dump.ttl")

        assert body == b"<a> <b> <c> ."
        assert headers["content-type"] == "text/turtle"

    @pytest.mark.asyncio
    async def test_fetch_error_raises(self, respx_mock):
        respx_mock.get("https://data.example.org/gone.ttl").mock(return_value=httpx.Response(410))

        async with WebClient() as web:
            with pytest.raises(APIProviderError) as exc_info:
                await web.fetch("https://data.example.org/gone.ttl")

        assert exc_info.value.status_code == 410

    @pytest.mark.asyncio
    async def test_sparql_select_posts_form(self, respx_mock):
        route = respx_mock.post(ENDPOINT).mock(
            return_value=httpx.Response(
                200,
                json={"head": {"vars": ["id"]}, "results": {"bindings": [{"id": {"type": "uri", "value": "https://example.org/1"}}]}},
            )
        )

        async with WebClient() as web:
            rows = await web.sparql_select(ENDPOINT, "SELECT ?id WHERE { ?id ?p ?o }")

        assert rows == [{"id": "https://example.org/1"}]
        request = route.calls.last.request
        assert request.headers["accept"] == "application/sparql-results+json"
        assert parse_qs(request.content.decode())["query"] == ["SELECT ?id WHERE { ?id ?p ?o }"]

    @pytest.mark.asyncio
    async def test_sparql_construct_reports_content_type(self, respx_mock):
        respx_mock.post(ENDPOINT).mock(
            return_value=httpx.Response(
                200, content=b"<a> <b> <c> .", headers={"content-type": "application/n-triples; charset=utf-8"},
            )
        )

        async with WebClient() as web:
            data, content_type = await web.sparql_construct(ENDPOINT, "CONSTRUCT WHERE { ?s ?p ?o }")

        assert data == b"<a> <b> <c> ."
        assert content_type.startswith("application/n-triples")
