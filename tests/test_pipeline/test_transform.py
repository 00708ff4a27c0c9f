"""Tests for transform templates and the Transformer."""

import json
from urllib.parse import parse_qs

import httpx
import pytest
from rdflib import Literal, URIRef
from rdflib.namespace import RDF

from edmconv.clients.web import WebClient
from edmconv.exceptions import TemplateNotFoundError, TransformQueryFailure
from edmconv.graphs import new_store, parse_into
from edmconv.models import (
    ExternalEndpoint,
    InMemoryEndpoint,
    ManagedEndpoint,
    RemoteDatasetRef,
    RemoteServiceRef,
)
from edmconv.pipeline.transform import (
    TransformTemplate,
    Transformer,
    load_template,
    load_templates,
)

EDM = "http://www.europeana.eu/schemas/edm/"
PROVIDED_CHO = URIRef(EDM + "ProvidedCHO")
OBJECT_1 = URIRef("https://example.org/object/1")
OBJECT_2 = URIRef("https://example.org/object/2")

ALL_TEMPLATES = [
    "eccbooks2edm",
    "eccucfix2edm",
    "finnabooks2edm",
    "ksamsok2edm",
    "nmvw2edm",
    "schema2edm",
]


@pytest.fixture
def in_memory(schema_turtle) -> InMemoryEndpoint:
    store = new_store()
    parse_into(store, schema_turtle, "turtle")
    return InMemoryEndpoint(store=store)


@pytest.fixture
def managed() -> ManagedEndpoint:
    dataset = RemoteDatasetRef(account="nde", name="0123456789abcdef0123456789abcdef", id="ds1")
    service = RemoteServiceRef(
        account="nde",
        dataset=dataset.name,
        name="default",
        type="sparql",
        endpoint="https://api.triplydb.test/datasets/nde/x/services/default/sparql",
    )
    return ManagedEndpoint(dataset=dataset, service=service)


class TestTemplates:
    def test_all_packaged_templates_load(self):
        templates = load_templates(ALL_TEMPLATES)

        assert [t.name for t in templates] == ALL_TEMPLATES
        for template in templates:
            assert "CONSTRUCT" in template.text
            assert "?id" in template.text

    def test_for_instance_binds_placeholder(self):
        template = TransformTemplate(
            name="t", text="CONSTRUCT { ?id a ?type } WHERE { ?id a ?type ; ?identifier ?x }"
        )

        query = template.for_instance("https://example.org/object/1")

        assert query.count("<https://example.org/object/1>") == 2
        assert "?identifier" in query
        assert "?id " not in query

    def test_query_dir_overrides_packaged(self, tmp_path):
        (tmp_path / "schema2edm.rq").write_text("CONSTRUCT WHERE { ?id ?p ?o }")

        template = load_template("schema2edm", query_dir=tmp_path)

        assert template.text == "CONSTRUCT WHERE { ?id ?p ?o }"

    def test_unknown_template_raises(self):
        with pytest.raises(TemplateNotFoundError, match="no-such-query"):
            load_template("no-such-query")

    def test_from_file_uses_stem_as_name(self, tmp_path):
        path = tmp_path / "local.rq"
        path.write_text("CONSTRUCT WHERE { ?s ?p ?o }")

        assert TransformTemplate.from_file(path).name == "local"


class TestInMemoryTransform:
    @pytest.mark.asyncio
    async def test_dataset_mode(self, in_memory):
        transformer = Transformer(load_templates(["schema2edm"]))

        output = await transformer.run(in_memory)

        assert (OBJECT_1, RDF.type, PROVIDED_CHO) in output
        assert (OBJECT_2, RDF.type, PROVIDED_CHO) in output
        assert (OBJECT_1, URIRef(EDM + "type"), Literal("IMAGE")) in output

    @pytest.mark.asyncio
    async def test_instance_mode_matches_dataset_mode(self, in_memory):
        templates = load_templates(["schema2edm"])

        per_dataset = await Transformer(templates, mode="dataset").run(in_memory)
        per_instance = await Transformer(templates, mode="instance").run(in_memory)

        assert set(per_instance) == set(per_dataset)

    @pytest.mark.asyncio
    async def test_templates_without_matches_add_nothing(self, in_memory):
        output = await Transformer(load_templates(["ksamsok2edm", "nmvw2edm"])).run(in_memory)

        assert len(output) == 0

    @pytest.mark.asyncio
    async def test_broken_query_raises_transform_failure(self, in_memory):
        broken = TransformTemplate(name="broken", text="CONSTRUCT { ?id a ?t } WHERE {")

        with pytest.raises(TransformQueryFailure, match="broken"):
            await Transformer([broken]).run(in_memory)


class TestExternalTransform:
    @pytest.mark.asyncio
    async def test_construct_posts_form_query(self, respx_mock):
        endpoint = "https://sparql.example.org/query"
        route = respx_mock.post(endpoint).mock(
            return_value=httpx.Response(
                200,
                content=b"<https://example.org/object/1> a <http://www.europeana.eu/schemas/edm/ProvidedCHO> .",
                headers={"content-type": "text/turtle"},
            )
        )

        async with WebClient() as web:
            transformer = Transformer(load_templates(["schema2edm"]), web=web)
            output = await transformer.run(ExternalEndpoint(query_url=endpoint))

        assert (OBJECT_1, RDF.type, PROVIDED_CHO) in output
        form = parse_qs(route.calls.last.request.content.decode())
        assert "CONSTRUCT" in form["query"][0]

    @pytest.mark.asyncio
    async def test_instance_mode_selects_then_constructs(self, respx_mock):
        endpoint = "https://sparql.example.org/query"
        select_result = {
            "head": {"vars": ["id"]},
            "results": {"bindings": [{"id": {"type": "uri", "value": str(OBJECT_1)}}]},
        }

        def respond(request: httpx.Request) -> httpx.Response:
            query = parse_qs(request.content.decode())["query"][0]
            if "SELECT" in query:
                return httpx.Response(200, json=select_result)
            assert f"<{OBJECT_1}>" in query
            return httpx.Response(
                200,
                content=f"<{OBJECT_1}> a <{PROVIDED_CHO}> .".encode(),
                headers={"content-type": "text/turtle"},
            )

        respx_mock.post(endpoint).mock(side_effect=respond)

        async with WebClient() as web:
            transformer = Transformer(load_templates(["schema2edm"]), mode="instance", web=web)
            output = await transformer.run(ExternalEndpoint(query_url=endpoint))

        assert (OBJECT_1, RDF.type, PROVIDED_CHO) in output

    @pytest.mark.asyncio
    async def test_endpoint_error_raises_transform_failure(self, respx_mock):
        endpoint = "https://sparql.example.org/query"
        respx_mock.post(endpoint).mock(return_value=httpx.Response(400, text="bad query"))

        async with WebClient() as web:
            transformer = Transformer(load_templates(["schema2edm"]), web=web)
            with pytest.raises(TransformQueryFailure, match="schema2edm"):
                await transformer.run(ExternalEndpoint(query_url=endpoint))


class TestManagedTransform:
    @pytest.mark.asyncio
    async def test_dataset_mode_runs_reconciled_stored_query(self, managed, reconciler, fake_triplydb):
        template = load_template("schema2edm")
        name = Transformer.stored_query_name(template, managed.dataset.name)
        fake_triplydb.query_results[name] = f"<{OBJECT_1}> a <{PROVIDED_CHO}> .".encode()

        transformer = Transformer([template], triplydb=fake_triplydb, reconciler=reconciler)
        output = await transformer.run(managed)
        await transformer.run(managed)

        assert name == "schema2edm-0123456789ab"
        assert (OBJECT_1, RDF.type, PROVIDED_CHO) in output
        assert fake_triplydb.calls.count("create_query") == 1
        stored = fake_triplydb.queries[("nde", name)]
        assert stored["requestConfig"]["payload"]["query"] == template.text

    def test_stored_query_name_is_url_safe(self, managed):
        local = TransformTemplate(name="my_query.v2 (copy)", text="CONSTRUCT WHERE { ?id ?p ?o }")

        name = Transformer.stored_query_name(local, managed.dataset.name)

        assert name == "my-query-v2-copy--0123456789ab"
        assert all(c.isascii() and (c.isalnum() or c == "-") for c in name)

    @pytest.mark.asyncio
    async def test_instance_ids_from_stored_select(self, managed, reconciler, fake_triplydb):
        instances = load_template("retrieve-instances")
        name = Transformer.stored_query_name(instances, managed.dataset.name)
        fake_triplydb.query_results[name] = json.dumps({
            "head": {"vars": ["id"]},
            "results": {"bindings": [{"id": {"type": "uri", "value": str(OBJECT_2)}}]},
        }).encode()

        transformer = Transformer([], mode="instance", triplydb=fake_triplydb, reconciler=reconciler)
        ids = await transformer.instance_ids(managed)

        assert ids == [str(OBJECT_2)]


class TestExhaustiveDispatch:
    @pytest.mark.asyncio
    async def test_unknown_handle_is_rejected(self):
        transformer = Transformer(load_templates(["schema2edm"]))

        with pytest.raises(TransformQueryFailure):
            await transformer.run(object())

    def test_unknown_mode_is_rejected(self):
        with pytest.raises(ValueError, match="Unknown transform mode"):
            Transformer([], mode="record")
