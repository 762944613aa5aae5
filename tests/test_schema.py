from api_doc_scraper.schema import (
    ArraySchema,
    CompositeSchema,
    IntegerSchema,
    NullSchema,
    NumberSchema,
    ObjectSchema,
    StringSchema,
    open_object,
    property_names,
    schema_from_dict,
)


def test_empty_input_is_untyped():
    assert isinstance(schema_from_dict(None), CompositeSchema)
    assert isinstance(schema_from_dict({}), CompositeSchema)


def test_nullable_type_list():
    schema = schema_from_dict({"type": ["string", "null"], "format": "date-time"})
    assert isinstance(schema, StringSchema)
    assert schema.nullable is True
    assert schema.format == "date-time"


def test_only_null_in_type_list():
    assert isinstance(schema_from_dict({"type": ["null"]}), NullSchema)


def test_object_inferred_from_properties():
    schema = schema_from_dict({
        "properties": {"count": {"type": "integer", "minimum": 1}},
        "required": ["count", 7],
    })
    assert isinstance(schema, ObjectSchema)
    assert isinstance(schema.properties["count"], IntegerSchema)
    assert schema.properties["count"].minimum == 1
    assert schema.required == ["count"]


def test_array_inferred_from_items():
    schema = schema_from_dict({"items": {"type": "string"}, "maxItems": 10})
    assert isinstance(schema, ArraySchema)
    assert isinstance(schema.items, StringSchema)
    assert schema.max_items == 10


def test_additional_properties_schema():
    schema = schema_from_dict({"type": "object", "additionalProperties": {"type": "number"}})
    assert isinstance(schema.additional_properties, NumberSchema)


def test_boolean_bounds_are_ignored():
    schema = schema_from_dict({"type": "number", "minimum": True, "maximum": 9.5})
    assert schema.minimum is None
    assert schema.maximum == 9.5


def test_composite_keeps_alternatives():
    schema = schema_from_dict({"oneOf": [{"type": "string"}, {"type": "integer"}, "junk"]})
    assert isinstance(schema, CompositeSchema)
    assert [type(s) for s in schema.one_of] == [StringSchema, IntegerSchema]


def test_unresolved_ref():
    schema = schema_from_dict({"$ref": "#/components/schemas/Missing"})
    assert isinstance(schema, CompositeSchema)
    assert schema.ref == "#/components/schemas/Missing"
    assert schema.to_dict() == {"$ref": "#/components/schemas/Missing"}


def test_to_dict_uses_json_schema_names():
    schema = StringSchema(format="email", min_length=3)
    assert schema.to_dict() == {"type": "string", "format": "email", "minLength": 3}


def test_nested_schema_survives_conversion():
    raw = {
        "type": "object",
        "properties": {
            "id": {"type": "integer"},
            "tags": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["id"],
    }
    assert schema_from_dict(raw).to_dict() == raw


def test_open_object():
    schema = open_object("Response data")
    assert schema.to_dict() == {
        "type": "object",
        "description": "Response data",
        "properties": {},
        "additionalProperties": True,
    }


def test_property_names():
    schema = schema_from_dict({"type": "object", "properties": {"a": {}, "b": {"type": "string"}}})
    assert property_names(schema) == ["a", "b"]
    assert property_names(StringSchema()) == []
