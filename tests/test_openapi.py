import json
from pathlib import Path

import pytest

from api_doc_scraper.errors import OpenApiErrorCode, OpenApiParseError
from api_doc_scraper.models import AuthType, HttpMethod
from api_doc_scraper.parsers.openapi import (
    PLACEHOLDER_BASE_URL,
    is_structured_spec,
    parse_spec,
    resolve_refs,
)

FIXTURES = Path(__file__).parent / "fixtures"


def _endpoint(doc, method, path):
    return next(e for e in doc.endpoints if e.method == method and e.path == path)


class TestOpenApi3:
    @pytest.fixture
    def result(self):
        return parse_spec((FIXTURES / "petstore.yaml").read_text(), "https://petstore.example.com/openapi.yaml")

    def test_document_info(self, result):
        doc = result.doc
        assert result.openapi_version == "3.0.3"
        assert result.is_valid
        assert doc.name == "Petstore"
        assert doc.version == "1.0.0"
        assert doc.base_url == "https://petstore.example.com/v1"
        assert doc.metadata.ai_confidence == 1.0
        assert doc.metadata.source_urls == ["https://petstore.example.com/openapi.yaml"]

    def test_endpoints(self, result):
        doc = result.doc
        assert len(doc.endpoints) == 4
        list_pets = _endpoint(doc, HttpMethod.GET, "/pets")
        assert list_pets.name == "List pets"
        assert list_pets.slug == "listpets"
        assert list_pets.tags == ["pets"]
        assert [p.name for p in list_pets.query_parameters] == ["limit", "cursor"]
        assert list_pets.query_parameters[0].type == "integer"

    def test_path_level_parameters_merge(self, result):
        create = _endpoint(result.doc, HttpMethod.POST, "/pets")
        assert [p.name for p in create.header_parameters] == ["X-Request-Id"]

    def test_path_parameters_required(self, result):
        get_pet = _endpoint(result.doc, HttpMethod.GET, "/pets/{petId}")
        assert get_pet.path_parameters[0].name == "petId"
        assert get_pet.path_parameters[0].required is True
        assert set(get_pet.responses) == {"200", "404"}

    def test_refs_are_resolved(self, result):
        list_pets = _endpoint(result.doc, HttpMethod.GET, "/pets")
        schema = list_pets.responses["200"].schema_
        assert schema["properties"]["next_cursor"]["type"] == "string"
        assert schema["properties"]["data"]["items"]["properties"]["name"]["type"] == "string"

    def test_request_body(self, result):
        create = _endpoint(result.doc, HttpMethod.POST, "/pets")
        assert create.request_body.required is True
        assert create.request_body.content_type == "application/json"
        assert create.request_body.schema_["required"] == ["id", "name"]

    def test_deprecated_flag(self, result):
        assert _endpoint(result.doc, HttpMethod.DELETE, "/pets/{petId}").deprecated is True

    def test_bearer_auth(self, result):
        auth = result.doc.auth_methods
        assert len(auth) == 1
        assert auth[0].type == AuthType.BEARER
        assert auth[0].param_name == "Authorization"


class TestSwagger2:
    @pytest.fixture
    def doc(self):
        return parse_spec((FIXTURES / "swagger2.json").read_text()).doc

    def test_base_url_from_host(self, doc):
        assert doc.base_url == "https://orders.example.com/api"
        assert doc.version == "2.1"

    def test_body_parameter(self, doc):
        create = _endpoint(doc, HttpMethod.POST, "/orders")
        assert create.slug == "createorder"
        assert create.name == "createOrder"
        assert set(create.request_body.schema_["properties"]) == {"id", "total"}
        assert create.request_body.required is True

    def test_form_data(self, doc):
        upload = _endpoint(doc, HttpMethod.POST, "/uploads")
        body = upload.request_body
        assert body.content_type == "multipart/form-data"
        assert body.schema_["properties"]["file"] == {"type": "string", "format": "binary"}
        assert body.schema_["required"] == ["file"]

    def test_name_fallbacks(self, doc):
        list_orders = _endpoint(doc, HttpMethod.GET, "/orders")
        assert list_orders.name == "List orders"
        assert list_orders.slug == "get-orders"
        assert list_orders.responses["200"].schema_["type"] == "array"

    def test_api_key_auth(self, doc):
        auth = doc.auth_methods[0]
        assert auth.type == AuthType.API_KEY
        assert auth.location == "header"
        assert auth.param_name == "X-API-Key"


class TestEdgeCases:
    def test_missing_servers_uses_placeholder(self):
        result = parse_spec({"openapi": "3.1.0", "info": {"title": "T"}, "paths": {}})
        assert result.doc.base_url == PLACEHOLDER_BASE_URL
        assert any("placeholder" in w for w in result.warnings)

    def test_server_variables(self):
        spec = {
            "openapi": "3.0.0",
            "info": {"title": "T"},
            "servers": [{"url": "https://{region}.api.test/", "variables": {"region": {"default": "eu"}}}],
            "paths": {},
        }
        assert parse_spec(spec).doc.base_url == "https://eu.api.test"

    def test_unsupported_version(self):
        with pytest.raises(OpenApiParseError) as exc:
            parse_spec({"swagger": "1.2", "info": {"title": "Old"}, "paths": {}})
        assert exc.value.code == OpenApiErrorCode.UNSUPPORTED_VERSION

    def test_not_an_object(self):
        with pytest.raises(OpenApiParseError) as exc:
            parse_spec("- just\n- a list\n")
        assert exc.value.code == OpenApiErrorCode.INVALID_FORMAT

    def test_invalid_yaml(self):
        with pytest.raises(OpenApiParseError) as exc:
            parse_spec("openapi: [unclosed")
        assert exc.value.code == OpenApiErrorCode.PARSE_ERROR

    def test_validation_problems_are_warnings(self):
        result = parse_spec({"openapi": "3.0.0", "paths": {}})
        assert result.is_valid is False
        assert "Validation error: missing info object" in result.warnings
        assert result.doc.name == "Untitled API"

    def test_missing_responses_get_default(self):
        spec = {"openapi": "3.0.0", "info": {"title": "T"}, "paths": {"/ping": {"get": {}}}}
        endpoint = parse_spec(spec).doc.endpoints[0]
        assert endpoint.name == "GET /ping"
        assert "200" in endpoint.responses


class TestResolveRefs:
    def test_recursive_schema_terminates(self):
        spec = {
            "components": {"schemas": {"Node": {
                "type": "object",
                "properties": {"child": {"$ref": "#/components/schemas/Node"}},
            }}},
            "root": {"$ref": "#/components/schemas/Node"},
        }
        resolved = resolve_refs(spec, [])
        child = resolved["root"]["properties"]["child"]
        assert child == {"$ref": "#/components/schemas/Node"}

    def test_dangling_ref_warns_once(self):
        warnings = []
        spec = {"a": {"$ref": "#/missing"}, "b": {"$ref": "#/missing"}}
        resolved = resolve_refs(spec, warnings)
        assert resolved["a"] == {"$ref": "#/missing"}
        assert warnings == ["Unresolved reference: #/missing"]


class TestIsStructuredSpec:
    def test_markers(self):
        assert is_structured_spec(json.dumps({"openapi": "3.0.0"}))
        assert is_structured_spec("swagger: '2.0'\npaths: {}\n")
        assert is_structured_spec({"info": {"title": "x"}, "paths": {"/a": {}}})

    def test_documentation_text(self):
        assert not is_structured_spec("# Widgets API\n\nGET /widgets lists widgets.")
        assert not is_structured_spec("")
