"""Typed JSON Schema variants.

Raw schemas from OpenAPI documents and model output arrive as nested
dicts. ``schema_from_dict`` converts them once into one of the variant
models below so generation code can branch on the variant class instead
of probing keys. ``to_dict`` goes back to plain JSON Schema.
"""

from typing import Any, Literal, Union

from pydantic import BaseModel, Field

_NUMERIC_KEYS = ("minimum", "maximum")


class _BaseSchema(BaseModel):
    description: str | None = None
    default: Any = None
    enum: list[Any] | None = None
    nullable: bool | None = None

    model_config = {"populate_by_name": True}

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class StringSchema(_BaseSchema):
    type: Literal["string"] = "string"
    format: str | None = None
    pattern: str | None = None
    min_length: int | None = Field(default=None, alias="minLength")
    max_length: int | None = Field(default=None, alias="maxLength")


class NumberSchema(_BaseSchema):
    type: Literal["number"] = "number"
    minimum: float | None = None
    maximum: float | None = None


class IntegerSchema(_BaseSchema):
    type: Literal["integer"] = "integer"
    minimum: int | None = None
    maximum: int | None = None


class BooleanSchema(_BaseSchema):
    type: Literal["boolean"] = "boolean"


class NullSchema(_BaseSchema):
    type: Literal["null"] = "null"


class ArraySchema(_BaseSchema):
    type: Literal["array"] = "array"
    items: "JsonSchema | None" = None
    max_items: int | None = Field(default=None, alias="maxItems")


class ObjectSchema(_BaseSchema):
    type: Literal["object"] = "object"
    properties: dict[str, "JsonSchema"] = Field(default_factory=dict)
    required: list[str] | None = None
    additional_properties: "bool | JsonSchema | None" = Field(
        default=None, alias="additionalProperties"
    )


class CompositeSchema(_BaseSchema):
    """Untyped schema: oneOf/anyOf/allOf, unresolved $ref, or anything goes."""

    type: None = None
    one_of: list["JsonSchema"] | None = Field(default=None, alias="oneOf")
    any_of: list["JsonSchema"] | None = Field(default=None, alias="anyOf")
    all_of: list["JsonSchema"] | None = Field(default=None, alias="allOf")
    ref: str | None = Field(default=None, alias="$ref")


JsonSchema = Union[
    ObjectSchema,
    ArraySchema,
    StringSchema,
    NumberSchema,
    IntegerSchema,
    BooleanSchema,
    NullSchema,
    CompositeSchema,
]

for _model in (ArraySchema, ObjectSchema, CompositeSchema):
    _model.model_rebuild()


def open_object(description: str | None = None) -> ObjectSchema:
    """An object schema that accepts any properties."""
    return ObjectSchema(description=description, additional_properties=True)


def schema_from_dict(raw: dict[str, Any] | None) -> JsonSchema:
    """Convert a raw JSON Schema dict into its variant model."""
    if not raw or not isinstance(raw, dict):
        return CompositeSchema()

    common: dict[str, Any] = {
        "description": raw.get("description") if isinstance(raw.get("description"), str) else None,
        "default": raw.get("default"),
        "enum": raw.get("enum") if isinstance(raw.get("enum"), list) else None,
        "nullable": raw.get("nullable") if isinstance(raw.get("nullable"), bool) else None,
    }

    schema_type = raw.get("type")
    if isinstance(schema_type, list):
        non_null = [t for t in schema_type if t != "null"]
        if len(non_null) < len(schema_type):
            common["nullable"] = True
        schema_type = non_null[0] if non_null else "null"
    if schema_type is None and ("properties" in raw or "additionalProperties" in raw):
        schema_type = "object"
    if schema_type is None and "items" in raw:
        schema_type = "array"

    if schema_type == "object":
        additional = raw.get("additionalProperties")
        if isinstance(additional, dict):
            additional = schema_from_dict(additional)
        elif not isinstance(additional, bool):
            additional = None
        props = raw.get("properties") or {}
        required = raw.get("required")
        return ObjectSchema(
            **common,
            properties={
                name: schema_from_dict(prop)
                for name, prop in props.items()
                if isinstance(prop, dict)
            },
            required=[r for r in required if isinstance(r, str)] if isinstance(required, list) else None,
            additional_properties=additional,
        )
    if schema_type == "array":
        items = raw.get("items")
        return ArraySchema(
            **common,
            items=schema_from_dict(items) if isinstance(items, dict) else None,
            max_items=_int_or_none(raw.get("maxItems")),
        )
    if schema_type == "string":
        return StringSchema(
            **common,
            format=_str_or_none(raw.get("format")),
            pattern=_str_or_none(raw.get("pattern")),
            min_length=_int_or_none(raw.get("minLength")),
            max_length=_int_or_none(raw.get("maxLength")),
        )
    if schema_type == "number":
        return NumberSchema(**common, **_numeric_bounds(raw, float))
    if schema_type == "integer":
        return IntegerSchema(**common, **_numeric_bounds(raw, int))
    if schema_type == "boolean":
        return BooleanSchema(**common)
    if schema_type == "null":
        return NullSchema(**{**common, "nullable": None})

    return CompositeSchema(
        **common,
        one_of=_schema_list(raw.get("oneOf")),
        any_of=_schema_list(raw.get("anyOf")),
        all_of=_schema_list(raw.get("allOf")),
        ref=raw.get("$ref") if isinstance(raw.get("$ref"), str) else None,
    )


def _numeric_bounds(raw: dict[str, Any], cast: type) -> dict[str, Any]:
    bounds: dict[str, Any] = {}
    for key in _NUMERIC_KEYS:
        value = raw.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            bounds[key] = cast(value)
    return bounds


def _schema_list(value: Any) -> list[JsonSchema] | None:
    if not isinstance(value, list):
        return None
    return [schema_from_dict(v) for v in value if isinstance(v, dict)]


def property_names(schema: JsonSchema) -> list[str]:
    """Top-level property names of an object schema, else empty."""
    if isinstance(schema, ObjectSchema):
        return list(schema.properties)
    return []


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _int_or_none(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None
