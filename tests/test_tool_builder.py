"""Unit tests for tool derivation."""

import pytest
from pydantic import ValidationError

from openapi_adapter.models import ToolDefinition
from openapi_adapter.openapi import build_document
from openapi_adapter.tool_builder import (
    ToolCollisionError,
    build_input_model,
    build_tools,
    count_id_collisions,
    derive_tool_id,
    duplicate_parameter_names,
    duplicate_tool_ids,
    index_tools,
    sanitize_param_name,
    title_case,
)


def _document(paths):
    return build_document({"openapi": "3.0.0", "info": {"title": "t", "version": "1"}, "paths": paths})


def _ok():
    return {"responses": {"200": {"description": "ok"}}}


class TestIdentifiers:
    """Test tool identifier derivation."""

    @pytest.mark.parametrize(
        "method,path,expected",
        [
            ("GET", "/users/{id}", "getUsers_id"),
            ("POST", "/orders", "postOrders"),
            ("DELETE", "/a-b/{c}", "deleteA_b_c"),
            ("get", "/users/{id}/posts", "getUsers_id_posts"),
            ("PATCH", "/", "patch"),
            ("GET", "/v1.0/items", "getV1.0_items"),
            ("GET", "users", "getUsers"),
        ],
    )
    def test_derive_tool_id(self, method, path, expected):
        """Test identifiers follow the documented derivation."""
        assert derive_tool_id(path, method) == expected

    def test_title_case(self):
        """Test only letters after separators are upper-cased."""
        assert title_case("users_id") == "Users_id"
        assert title_case("a.b c") == "A.B C"
        assert title_case("2fa") == "2fa"


class TestSanitize:
    """Test parameter name sanitization."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("user-id", "user_id"),
            ("x.y", "x_y"),
            ("X-Request-Id", "X_Request_Id"),
            ("filter[name]", "filter_name_"),
            ("plain", "plain"),
        ],
    )
    def test_sanitize_param_name(self, name, expected):
        assert sanitize_param_name(name) == expected


class TestBuildTools:
    """Test building tool definitions from a document."""

    def test_order_and_identifiers(self, petstore_document):
        """Test tools come out in document declaration order."""
        tools = build_tools(petstore_document)

        assert [(t.method, t.path, t.tool_id) for t in tools] == [
            ("GET", "/pets", "getPets"),
            ("POST", "/pets", "postPets"),
            ("GET", "/pets/{petId}", "getPets_petId"),
            ("DELETE", "/pets/{petId}", "deletePets_petId"),
            ("PUT", "/pet-tags/{tag-id}", "putPet_tags_tag_id"),
        ]

    def test_deterministic(self, petstore_document):
        """Test repeated builds are equal."""
        assert build_tools(petstore_document) == build_tools(petstore_document)

    def test_descriptions(self, petstore_document):
        """Test summary, then description, then method and path."""
        tools = index_tools(build_tools(petstore_document))

        assert tools["getPets"].description == "List pets"
        assert tools["deletePets_petId"].description == "Remove a pet"
        assert tools["putPet_tags_tag_id"].description == "PUT /pet-tags/{tag-id}"

    def test_parameter_classification(self, petstore_document):
        """Test locations, types and enums of the list operation."""
        tool = index_tools(build_tools(petstore_document))["getPets"]

        limit, status, request_id = tool.parameters
        assert (limit.location, limit.primitive_type, limit.required) == ("query", "integer", False)
        assert status.enum_values == ("available", "sold")
        assert status.description == "Filter by status"
        assert request_id.location == "header"
        assert request_id.sanitized_name == "X_Request_Id"

    def test_path_level_parameters_merged(self, petstore_document):
        """Test path-level and referenced parameters reach the operation."""
        tool = index_tools(build_tools(petstore_document))["getPets_petId"]

        assert [(p.name, p.location, p.primitive_type) for p in tool.parameters] == [
            ("petId", "path", "string"),
            ("verbose", "query", "boolean"),
        ]

    def test_cookie_parameters_skipped(self, petstore_document):
        """Test cookie parameters are not part of the tool."""
        tool = index_tools(build_tools(petstore_document))["putPet_tags_tag_id"]

        assert [p.name for p in tool.parameters] == ["tag-id"]
        assert tool.parameters[0].sanitized_name == "tag_id"

    def test_body_detection(self, petstore_document):
        """Test has_body, body_required and the default description."""
        tools = index_tools(build_tools(petstore_document))

        assert tools["postPets"].has_body is True
        assert tools["postPets"].body_required is True
        assert tools["postPets"].body_description == "Request body"
        assert tools["putPet_tags_tag_id"].has_body is True
        assert tools["putPet_tags_tag_id"].body_required is False
        assert tools["getPets"].has_body is False
        assert tools["getPets"].body_required is False

    def test_body_without_schema_is_ignored(self):
        """Test a request body whose media types carry no schema."""
        operation = {**_ok(), "requestBody": {"required": True, "content": {"text/plain": {}}}}
        (tool,) = build_tools(_document({"/upload": {"post": operation}}))

        assert tool.has_body is False
        assert tool.body_required is False

    def test_required_before_optional(self):
        """Test required parameters are moved ahead, keeping arrival order."""
        operation = {
            **_ok(),
            "parameters": [
                {"name": "a", "in": "query", "schema": {"type": "string"}},
                {"name": "b", "in": "query", "required": True, "schema": {"type": "string"}},
                {"name": "c", "in": "header", "schema": {"type": "string"}},
                {"name": "d", "in": "path", "required": True, "schema": {"type": "string"}},
            ],
        }
        (tool,) = build_tools(_document({"/x/{d}": {"get": operation}}))

        assert [p.name for p in tool.parameters] == ["b", "d", "a", "c"]

    def test_type_defaults(self):
        """Test unknown or missing types fall back to string."""
        operation = {
            **_ok(),
            "parameters": [
                {"name": "ids", "in": "query", "schema": {"type": "array", "items": {"type": "integer"}}},
                {"name": "n", "in": "query", "schema": {"type": "number"}},
                {"name": "raw", "in": "query"},
                {"name": "ext", "in": "query", "schema": {"$ref": "other.yaml#/Thing"}},
                {"name": "mixed", "in": "query", "schema": {"type": "string", "enum": ["a", 1, "b"]}},
                {"name": "numbers", "in": "query", "schema": {"type": "string", "enum": [1, 2]}},
            ],
        }
        (tool,) = build_tools(_document({"/x": {"get": operation}}))

        types = {p.name: (p.primitive_type, p.enum_values) for p in tool.parameters}
        assert types == {
            "ids": ("string", None),
            "n": ("number", None),
            "raw": ("string", None),
            "ext": ("string", None),
            "mixed": ("string", ("a", "b")),
            "numbers": ("string", None),
        }


class TestCollisions:
    """Test identifier and parameter name collisions."""

    @pytest.fixture
    def colliding_document(self):
        return _document({"/a-b": {"get": _ok()}, "/a_b": {"get": _ok()}, "/c": {"get": _ok()}})

    def test_duplicates_kept_and_reported(self, colliding_document):
        """Test colliding tools are all kept and reported."""
        tools = build_tools(colliding_document)

        assert [t.tool_id for t in tools] == ["getA_b", "getA_b", "getC"]
        assert list(duplicate_tool_ids(tools)) == ["getA_b"]
        assert count_id_collisions(tools) == 1

    def test_index_last_write_wins(self, colliding_document):
        """Test the later operation wins when indexing by id."""
        index = index_tools(build_tools(colliding_document))

        assert index["getA_b"].path == "/a_b"
        assert len(index) == 2

    def test_strict_mode_raises(self, colliding_document):
        """Test strict mode rejects colliding identifiers."""
        with pytest.raises(ToolCollisionError, match="getA_b"):
            build_tools(colliding_document, strict=True)

    def test_duplicate_parameter_names(self):
        """Test parameters that sanitize to the same name are reported."""
        operation = {
            **_ok(),
            "parameters": [
                {"name": "user-id", "in": "query", "schema": {"type": "string"}},
                {"name": "user.id", "in": "header", "schema": {"type": "string"}},
            ],
        }
        (tool,) = build_tools(_document({"/x": {"get": operation}}))

        assert duplicate_parameter_names(tool) == ["user_id"]


class TestInputModel:
    """Test the pydantic argument model."""

    @pytest.fixture
    def tools(self, petstore_document):
        return index_tools(build_tools(petstore_document))

    def test_aliases_and_types(self, tools):
        """Test fields validate and dump under original names."""
        model = build_input_model(tools["getPets"])

        payload = model.model_validate({"limit": "5", "status": "sold", "X-Request-Id": "r1"})

        assert payload.model_dump(by_alias=True, exclude_none=True) == {
            "limit": 5,
            "status": "sold",
            "X-Request-Id": "r1",
        }

    def test_enum_rejects_unknown_value(self, tools):
        """Test enum parameters only accept declared values."""
        model = build_input_model(tools["getPets"])

        with pytest.raises(ValidationError):
            model.model_validate({"status": "lost"})

    def test_required_parameters(self, tools):
        """Test required path parameters must be given."""
        model = build_input_model(tools["getPets_petId"])

        with pytest.raises(ValidationError):
            model.model_validate({"verbose": True})
        assert model.model_validate({"petId": "p1"}).model_dump(by_alias=True, exclude_none=True) == {
            "petId": "p1"
        }

    def test_body_field(self, tools):
        """Test required body and extra arguments are kept."""
        model = build_input_model(tools["postPets"])

        with pytest.raises(ValidationError):
            model.model_validate({})
        payload = model.model_validate({"body": {"name": "Rex"}, "note": "x"})
        assert payload.model_dump(by_alias=True, exclude_none=True) == {
            "body": {"name": "Rex"},
            "note": "x",
        }

    def test_optional_body(self, tools):
        model = build_input_model(tools["putPet_tags_tag_id"])

        payload = model.model_validate({"tag-id": "t1"})

        assert payload.model_dump(by_alias=True, exclude_none=True) == {"tag-id": "t1"}

    def test_colliding_field_names(self):
        """Test parameters sanitizing to one name each keep a field."""
        document = _document(
            {
                "/users": {
                    "get": {
                        "parameters": [
                            {"name": "user-id", "in": "query", "required": True, "schema": {"type": "integer"}},
                            {"name": "user.id", "in": "header", "schema": {"type": "string"}},
                        ],
                        **_ok(),
                    }
                }
            }
        )
        model = build_input_model(build_tools(document)[0])

        schema = model.model_json_schema()
        assert set(schema["properties"]) == {"user-id", "user.id"}
        assert schema["required"] == ["user-id"]
        payload = model.model_validate({"user-id": "7", "user.id": "h"})
        assert payload.model_dump(by_alias=True, exclude_none=True) == {"user-id": 7, "user.id": "h"}
        with pytest.raises(ValidationError):
            model.model_validate({"user.id": "h"})

    def test_parameter_named_body(self):
        """Test a parameter named body does not replace the request body field."""
        document = _document(
            {
                "/notes": {
                    "post": {
                        "parameters": [
                            {"name": "body", "in": "query", "required": True, "schema": {"type": "string"}}
                        ],
                        "requestBody": {
                            "content": {"application/json": {"schema": {"type": "object"}}}
                        },
                        **_ok(),
                    }
                }
            }
        )
        model = build_input_model(build_tools(document)[0])

        schema = model.model_json_schema()
        assert set(schema["properties"]) == {"body", "body_2"}
        assert schema["required"] == ["body_2"]
        with pytest.raises(ValidationError):
            model.model_validate({"body": {"text": "hi"}})
        payload = model.model_validate({"body_2": "q"})
        assert payload.model_dump(by_alias=True, exclude_none=True) == {"body": "q"}


class TestToolDefinitionDict:
    """Test dict conversion used by generated servers."""

    def test_from_dict_restores_definition(self, petstore_document):
        for tool in build_tools(petstore_document):
            assert ToolDefinition.from_dict(tool.to_dict()) == tool
