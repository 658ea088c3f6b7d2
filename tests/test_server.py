import asyncio
import ast
import importlib.util
import itertools
import json
import sys
from pathlib import Path
from unittest.mock import MagicMock

import fastapi
import pytest

from api_bindgen.generator.server import generate_server
from api_bindgen.parser.base import DescriptorError, SchemaFile
from api_bindgen.parser.descriptor import parse_descriptor

FIXTURES = Path(__file__).parent / "fixtures"

_counter = itertools.count()


def _import_source(source: str, tmp_path: Path, monkeypatch):
    name = f"generated_bindings_{next(_counter)}"
    path = tmp_path / f"{name}.py"
    path.write_text(source, encoding="utf-8")
    spec = importlib.util.spec_from_file_location(name, path)
    module = importlib.util.module_from_spec(spec)
    monkeypatch.setitem(sys.modules, name, module)
    spec.loader.exec_module(module)
    return module


class FakeRequest:
    """Stands in for fastapi.Request: body bytes plus path/query lookups."""

    def __init__(self, body: bytes = b"", query: dict | None = None, path: dict | None = None):
        self._body = body
        self.body_reads = 0
        self.query_params = query or {}
        self.path_params = path or {}

    async def body(self) -> bytes:
        self.body_reads += 1
        return self._body


@pytest.fixture
def pets(tmp_path, monkeypatch):
    source = generate_server(parse_descriptor(FIXTURES / "pets.yaml"), "pets.yaml")
    return _import_source(source, tmp_path, monkeypatch)


@pytest.fixture
def store(tmp_path, monkeypatch):
    source = generate_server(parse_descriptor(FIXTURES / "store.yaml"), "store.yaml")
    return _import_source(source, tmp_path, monkeypatch)


def _pets_impl(module):
    class Impl(module.PetsHTTPServer):
        seen = None

        async def get_pet(self, ctx, body):
            self.seen = body
            return module.Pet(Id=body.Id, Name="Rex")

    return Impl()


def _store_impl(module, error: Exception | None = None):
    class Impl(module.StoreHTTPServer):
        seen = None

        async def list_pets(self, ctx, body):
            self.seen = body
            return module.ListPetsResponse()

        async def update_pet(self, ctx, body):
            self.seen = body
            if error is not None:
                raise error
            return module.Pet(id=body.pet_id)

        async def create_pet(self, ctx, body):
            self.seen = body
            return body

    return Impl()


class TestGeneratedSource:
    def test_is_valid_python(self):
        source = generate_server(parse_descriptor(FIXTURES / "store.yaml"))
        ast.parse(source)

    def test_header_and_source(self):
        source = generate_server(parse_descriptor(FIXTURES / "pets.yaml"), "pets.yaml")
        lines = source.splitlines()
        assert lines[0] == "# Code generated by api-bindgen. DO NOT EDIT."
        assert lines[1] == "# source: pets.yaml"

    def test_service_entry_points(self):
        source = generate_server(parse_descriptor(FIXTURES / "pets.yaml"))
        assert "class PetsHTTPServer(abc.ABC):" in source
        assert "class _PetsController:" in source
        assert "def register_pets_http_server(router: fastapi.APIRouter, srv: PetsHTTPServer) -> None:" in source
        assert 'router.add_api_route("/pets/{id}", ctrl.get_pet, methods=["GET"], response_model=None)' in source

    def test_get_never_reads_body(self):
        source = generate_server(parse_descriptor(FIXTURES / "pets.yaml"))
        assert "ctx.body()" not in source
        assert "model_validate_json" not in source

    def test_parameter_keys_are_emitted_verbatim(self):
        source = generate_server(parse_descriptor(FIXTURES / "store.yaml"))
        assert 'ctx.path_params.get("pet_id")' in source
        assert 'ctx.query_params.get("limit")' in source
        assert 'get(",' not in source

    def test_comments_are_rendered(self):
        source = generate_server(parse_descriptor(FIXTURES / "pets.yaml"))
        assert "# Looks a pet up by id." in source
        assert "# Returns a single pet by id." in source

    def test_idempotent(self):
        descriptor = parse_descriptor(FIXTURES / "store.yaml")
        assert generate_server(descriptor) == generate_server(descriptor)

    def test_well_known_route_input_is_rejected(self):
        descriptor = SchemaFile(
            package="p",
            services=[{"name": "S", "routes": [{
                "name": "Put", "method": "PUT", "path": "/doc",
                "input": "google.protobuf.Struct", "output": "Ack",
            }]}],
            messages=[{"name": "Ack"}],
        )
        with pytest.raises(DescriptorError):
            generate_server(descriptor)

    @pytest.mark.parametrize("names", [
        ["datetime"],
        ["typing"],
        ["pydantic"],
        ["str"],
        ["class"],
        ["3d"],
        ["a.B", "a_B"],
    ])
    def test_clashing_class_names_are_rejected(self, names):
        descriptor = SchemaFile(package="p", messages=[{"name": n} for n in names])
        with pytest.raises(DescriptorError):
            generate_server(descriptor)

    def test_repeated_message_keeps_first_declaration(self, tmp_path, monkeypatch):
        descriptor = SchemaFile(package="p", messages=[
            {"name": "Dup", "fields": [{"name": "first", "kind": "string"}]},
            {"name": "Dup", "fields": [{"name": "second", "kind": "string"}]},
        ])
        source = generate_server(descriptor)
        assert source.count("class Dup(pydantic.BaseModel):") == 1
        module = _import_source(source, tmp_path, monkeypatch)
        assert list(module.Dup.model_fields) == ["first"]

    def test_service_without_routes(self, tmp_path, monkeypatch):
        descriptor = SchemaFile(package="p", services=[{"name": "Empty"}])
        module = _import_source(generate_server(descriptor), tmp_path, monkeypatch)
        router = MagicMock()
        module.register_empty_http_server(router, MagicMock())
        router.add_api_route.assert_not_called()


class TestGeneratedModels:
    def test_zero_values(self, store):
        pet = store.Pet()
        assert pet.id == ""
        assert pet.age == 0
        assert pet.weight == 0.0
        assert pet.vaccinated is False
        assert pet.photo == b""
        assert pet.color == "COLOR_UNSPECIFIED"
        assert pet.owner is None
        assert pet.born_at is None
        assert pet.attributes is None
        assert pet.nicknames == []
        assert pet.siblings == {}

    def test_group_field_is_skipped(self, store):
        assert "legacy" not in store.Pet.model_fields

    def test_aliases_use_json_names(self, store):
        data = json.loads(store.ListPetsResponse(next_page_token="t").model_dump_json(by_alias=True))
        assert data == {"pets": [], "nextPageToken": "t"}

    def test_decode_by_alias_and_name(self, store):
        a = store.UpdatePetRequest.model_validate_json(b'{"petId": "1"}')
        b = store.UpdatePetRequest.model_validate_json(b'{"pet_id": "1"}')
        assert a.pet_id == b.pet_id == "1"

    def test_cyclic_models(self, store):
        owner = store.Owner(id="o1", pets=[store.Pet(id="p1", siblings={"p2": store.Pet(id="p2")})])
        data = json.loads(owner.model_dump_json(by_alias=True))
        assert data["pets"][0]["siblings"]["p2"]["id"] == "p2"
        restored = store.Owner.model_validate_json(owner.model_dump_json(by_alias=True))
        assert restored.pets[0].siblings["p2"].id == "p2"

    def test_bytes_travel_as_base64(self, store):
        pet = store.Pet.model_validate_json(b'{"photo": "/w=="}')
        assert pet.photo == b"\xff"
        data = json.loads(store.Pet(photo=b"\xff").model_dump_json(by_alias=True))
        assert data["photo"] == "/w=="

    def test_binary_output_is_encoded(self, store):
        class Impl(_store_impl(store).__class__):
            async def create_pet(self, ctx, body):
                return store.Pet(photo=b"\x00\xff")

        ctrl = store._StoreController(Impl())
        response = asyncio.run(ctrl.create_pet(FakeRequest()))
        assert response.status_code == 200
        assert json.loads(response.body)["photo"] == "AP8="

    def test_timestamp_field(self, store):
        pet = store.Pet.model_validate_json(b'{"bornAt": "2020-01-02T03:04:05Z"}')
        assert pet.born_at.year == 2020


class TestGeneratedDispatch:
    def test_interface_is_abstract(self, pets):
        with pytest.raises(TypeError):
            pets.PetsHTTPServer()

    def test_get_overlays_path_and_encodes_output(self, pets):
        impl = _pets_impl(pets)
        ctrl = pets._PetsController(impl)
        request = FakeRequest(path={"id": "7"})

        response = asyncio.run(ctrl.get_pet(request))

        assert request.body_reads == 0
        assert impl.seen.Id == "7"
        assert response.status_code == 200
        assert response.media_type == "application/json"
        assert json.loads(response.body) == {"Id": "7", "Name": "Rex"}

    def test_path_beats_query_beats_body(self, store):
        impl = _store_impl(store)
        ctrl = store._StoreController(impl)
        request = FakeRequest(
            body=b'{"petId": "body", "pet": {"name": "Rex"}}',
            query={"pet_id": "query"},
            path={"pet_id": "path"},
        )

        asyncio.run(ctrl.update_pet(request))

        assert request.body_reads == 1
        assert impl.seen.pet_id == "path"
        assert impl.seen.pet.name == "Rex"

    def test_query_beats_body(self, store):
        impl = _store_impl(store)
        ctrl = store._StoreController(impl)
        asyncio.run(ctrl.update_pet(FakeRequest(body=b'{"petId": "body"}', query={"pet_id": "query"})))
        assert impl.seen.pet_id == "query"

    def test_absent_parameters_keep_body_value(self, store):
        impl = _store_impl(store)
        ctrl = store._StoreController(impl)
        asyncio.run(ctrl.update_pet(FakeRequest(body=b'{"petId": "body"}')))
        assert impl.seen.pet_id == "body"

    def test_empty_body_leaves_zero_value(self, store):
        impl = _store_impl(store)
        ctrl = store._StoreController(impl)
        asyncio.run(ctrl.create_pet(FakeRequest()))
        assert impl.seen == store.Pet()

    def test_query_overlay_assigns_string(self, store):
        impl = _store_impl(store)
        ctrl = store._StoreController(impl)
        asyncio.run(ctrl.list_pets(FakeRequest(query={"limit": "5", "owner": "o1"})))
        assert impl.seen.limit == "5"
        assert impl.seen.owner_id == "o1"

    def test_decode_error_is_client_error(self, store):
        impl = _store_impl(store)
        ctrl = store._StoreController(impl)
        with pytest.raises(fastapi.HTTPException) as exc_info:
            asyncio.run(ctrl.update_pet(FakeRequest(body=b"{not json")))
        assert exc_info.value.status_code == 400
        assert impl.seen is None

    def test_handler_error_propagates(self, store):
        impl = _store_impl(store, error=RuntimeError("boom"))
        ctrl = store._StoreController(impl)
        with pytest.raises(RuntimeError, match="boom"):
            asyncio.run(ctrl.update_pet(FakeRequest(body=b"{}")))


class TestGeneratedRegistration:
    def test_mounts_routes_in_declaration_order(self, store):
        router = MagicMock()
        store.register_store_http_server(router, _store_impl(store))
        calls = [(c.args[0], c.kwargs["methods"]) for c in router.add_api_route.call_args_list]
        assert calls == [
            ("/pets", ["GET"]),
            ("/pets/{pet_id}", ["PUT"]),
            ("/pets", ["POST"]),
        ]

    def test_each_service_has_its_own_register(self, store):
        router = MagicMock()
        impl = MagicMock(spec=store.OwnersHTTPServer)
        store.register_owners_http_server(router, impl)
        path, handler = router.add_api_route.call_args.args
        assert path == "/owners/{id}"
        assert handler.__name__ == "get_owner"
