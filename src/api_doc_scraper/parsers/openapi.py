"""OpenAPI 3.x / Swagger 2.0 structural parser.

Converts a machine-readable spec into an ``ApiDocument`` without any
inference. Problems inside the spec (dangling references, missing
fields) become warnings on the result; only unreadable content or an
unknown spec version is an error.
"""

import copy
import json
import logging
import time
from typing import Any

import yaml
from pydantic import BaseModel, Field

from api_doc_scraper.errors import OpenApiErrorCode, OpenApiParseError
from api_doc_scraper.models import (
    ApiAuthMethod,
    ApiDocument,
    ApiEndpoint,
    ApiParameter,
    ApiRequestBody,
    ApiResponse,
    AuthType,
    HttpMethod,
    ScrapeMetadata,
)
from api_doc_scraper.utils.text import slugify

logger = logging.getLogger(__name__)

PLACEHOLDER_BASE_URL = "https://api.example.com"

_METHODS = ("get", "post", "put", "patch", "delete")
_SCHEMA_KEYS = (
    "type", "format", "description", "enum", "default", "nullable", "required",
    "minimum", "maximum", "minLength", "maxLength", "pattern", "maxItems", "$ref",
)
_OAUTH_FLOWS = (
    ("authorizationCode", "authorization_code"),
    ("implicit", "implicit"),
    ("password", "password"),
    ("clientCredentials", "client_credentials"),
)


class OpenApiParseResult(BaseModel):
    doc: ApiDocument
    openapi_version: str
    is_valid: bool = True
    warnings: list[str] = Field(default_factory=list)
    duration_ms: int = 0


def load_spec_content(content: str) -> Any:
    """Parse text as JSON when it looks like JSON, otherwise as YAML."""
    text = content.strip()
    if text.startswith("{"):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Content is not valid JSON, trying YAML", exc_info=True)
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise OpenApiParseError(
            OpenApiErrorCode.PARSE_ERROR,
            f"Content is neither valid JSON nor YAML: {e}",
        ) from e


def is_structured_spec(content: str | dict) -> bool:
    """True for content carrying an openapi/swagger marker or a paths+info pair."""
    if isinstance(content, dict):
        data: Any = content
    else:
        if not content or not content.strip():
            return False
        try:
            data = load_spec_content(content)
        except OpenApiParseError:
            return False
    if not isinstance(data, dict):
        return False
    return bool(data.get("openapi") or data.get("swagger") or (data.get("paths") and data.get("info")))


def parse_spec(content: str | dict, source_url: str | None = None) -> OpenApiParseResult:
    """Convert an OpenAPI/Swagger spec into an ApiDocument."""
    start = time.monotonic()
    warnings: list[str] = []

    if isinstance(content, dict):
        spec = content
    else:
        spec = load_spec_content(content)
    if not isinstance(spec, dict):
        raise OpenApiParseError(
            OpenApiErrorCode.INVALID_FORMAT,
            "OpenAPI content must be a JSON or YAML object",
        )

    version = _detect_version(spec, warnings)
    is_valid = _validate(spec, warnings)

    resolved = resolve_refs(spec, warnings)
    try:
        doc = _convert_document(resolved, source_url, warnings)
    except (TypeError, ValueError, AttributeError) as e:
        raise OpenApiParseError(
            OpenApiErrorCode.CONVERSION_ERROR,
            f"Failed to convert spec: {e}",
        ) from e

    return OpenApiParseResult(
        doc=doc,
        openapi_version=version,
        is_valid=is_valid,
        warnings=warnings,
        duration_ms=int((time.monotonic() - start) * 1000),
    )


def _detect_version(spec: dict, warnings: list[str]) -> str:
    raw = spec.get("openapi") or spec.get("swagger")
    if raw is None:
        if spec.get("paths") and spec.get("info"):
            warnings.append("No openapi/swagger version field, assuming OpenAPI 3.0")
            return "3.0.0"
        raise OpenApiParseError(
            OpenApiErrorCode.UNSUPPORTED_VERSION,
            'Could not detect OpenAPI/Swagger version. Missing "openapi" or "swagger" field.',
        )
    version = str(raw)
    if not (version.startswith("2.") or version.startswith("3.")):
        raise OpenApiParseError(
            OpenApiErrorCode.UNSUPPORTED_VERSION,
            f"Unsupported OpenAPI version: {version}",
        )
    return version


def _validate(spec: dict, warnings: list[str]) -> bool:
    """Light structural checks; failures are reported, never raised."""
    problems: list[str] = []
    info = spec.get("info")
    if not isinstance(info, dict):
        problems.append("missing info object")
    elif not info.get("title"):
        problems.append("missing info.title")
    if not isinstance(spec.get("paths"), dict):
        problems.append("missing paths object")
    for problem in problems:
        warnings.append(f"Validation error: {problem}")
    return not problems


def resolve_refs(spec: dict, warnings: list[str]) -> dict:
    """Inline local ``#/...`` references.

    A reference that points back into its own expansion is left as a
    ``$ref`` so recursive schemas terminate; external and dangling
    references are left in place with a warning.
    """
    reported: set[str] = set()

    def warn_once(message: str) -> None:
        if message not in reported:
            reported.add(message)
            warnings.append(message)

    def lookup(ref: str) -> Any:
        node: Any = spec
        for part in ref[2:].split("/"):
            part = part.replace("~1", "/").replace("~0", "~")
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def walk(node: Any, stack: tuple[str, ...]) -> Any:
        if isinstance(node, list):
            return [walk(item, stack) for item in node]
        if not isinstance(node, dict):
            return node
        ref = node.get("$ref")
        if isinstance(ref, str):
            if not ref.startswith("#/"):
                warn_once(f"Unresolved external reference: {ref}")
                return dict(node)
            if ref in stack:
                return {"$ref": ref}
            target = lookup(ref)
            if target is None:
                warn_once(f"Unresolved reference: {ref}")
                return dict(node)
            resolved = walk(copy.deepcopy(target), stack + (ref,))
            siblings = {k: walk(v, stack) for k, v in node.items() if k != "$ref"}
            if isinstance(resolved, dict):
                return {**resolved, **siblings}
            return resolved
        return {key: walk(value, stack) for key, value in node.items()}

    return walk(spec, ())


def _convert_document(spec: dict, source_url: str | None, warnings: list[str]) -> ApiDocument:
    info = spec.get("info") if isinstance(spec.get("info"), dict) else {}
    base_url = _extract_base_url(spec)
    if not base_url:
        warnings.append("Could not determine base URL, using placeholder")

    return ApiDocument(
        name=str(info.get("title") or "Untitled API"),
        description=info.get("description"),
        base_url=base_url or PLACEHOLDER_BASE_URL,
        version=str(info["version"]) if info.get("version") is not None else None,
        auth_methods=_convert_auth_methods(spec),
        endpoints=_convert_endpoints(spec, warnings),
        metadata=ScrapeMetadata(
            source_urls=[source_url] if source_url else [],
            ai_confidence=1.0,
            warnings=warnings,
        ),
    )


def _extract_base_url(spec: dict) -> str | None:
    servers = spec.get("servers")
    if isinstance(servers, list) and servers and isinstance(servers[0], dict):
        url = servers[0].get("url")
        if url:
            for name, variable in (servers[0].get("variables") or {}).items():
                if isinstance(variable, dict) and "default" in variable:
                    url = url.replace(f"{{{name}}}", str(variable["default"]))
            return url.rstrip("/") or url
    host = spec.get("host")
    if host:
        schemes = spec.get("schemes") or ["https"]
        scheme = "https" if "https" in schemes else schemes[0]
        return f"{scheme}://{host}{spec.get('basePath') or ''}".rstrip("/")
    return None


def _convert_endpoints(spec: dict, warnings: list[str]) -> list[ApiEndpoint]:
    endpoints: list[ApiEndpoint] = []
    paths = spec.get("paths")
    if not isinstance(paths, dict):
        return endpoints
    consumes = spec.get("consumes") or []

    for path, path_item in paths.items():
        if not isinstance(path_item, dict):
            continue
        path_params = path_item.get("parameters") or []
        for method in _METHODS:
            operation = path_item.get(method)
            if not isinstance(operation, dict):
                continue
            try:
                endpoints.append(
                    _convert_operation(path, HttpMethod(method.upper()), operation, path_params, consumes)
                )
            except (TypeError, ValueError, KeyError) as e:
                logger.debug("Failed to convert %s %s", method.upper(), path, exc_info=True)
                warnings.append(f"Failed to convert {method.upper()} {path}: {e}")
    return endpoints


def _merge_parameters(path_level: list, operation_level: list) -> list[dict]:
    """Path-level parameters overridden by operation parameters of the same name and location."""
    merged: dict[tuple[str, str], dict] = {}
    for param in [*path_level, *operation_level]:
        if isinstance(param, dict) and param.get("name"):
            merged[(param["name"], param.get("in", "query"))] = param
    return list(merged.values())


def _convert_operation(
    path: str,
    method: HttpMethod,
    operation: dict,
    path_level_params: list,
    spec_consumes: list,
) -> ApiEndpoint:
    params = _merge_parameters(path_level_params, operation.get("parameters") or [])
    operation_id = operation.get("operationId")
    summary = operation.get("summary")

    request_body = None
    if isinstance(operation.get("requestBody"), dict):
        request_body = _convert_request_body(operation["requestBody"])
    else:
        consumes = operation.get("consumes") or spec_consumes
        request_body = _convert_swagger_body(params, consumes)

    return ApiEndpoint(
        name=summary or operation_id or f"{method.value} {path}",
        slug=slugify(operation_id or f"{method.value.lower()}-{path}"),
        description=operation.get("description") or summary,
        method=method,
        path=path,
        path_parameters=_convert_parameters(params, "path"),
        query_parameters=_convert_parameters(params, "query"),
        header_parameters=_convert_parameters(params, "header"),
        request_body=request_body,
        responses=_convert_responses(operation.get("responses") or {}),
        tags=[t for t in operation.get("tags") or [] if isinstance(t, str)],
        deprecated=bool(operation.get("deprecated", False)),
    )


def _convert_parameters(params: list[dict], location: str) -> list[ApiParameter]:
    result = []
    for param in params:
        if param.get("in") != location:
            continue
        schema = param.get("schema") if isinstance(param.get("schema"), dict) else {}
        param_type = schema.get("type") or param.get("type") or "string"
        if isinstance(param_type, list):
            param_type = next((t for t in param_type if t != "null"), "string")
        enum = param.get("enum") or schema.get("enum")
        result.append(ApiParameter(
            name=param["name"],
            type=str(param_type),
            required=bool(param.get("required", location == "path")),
            description=param.get("description"),
            default=param.get("default", schema.get("default")),
            enum=[str(v) for v in enum] if isinstance(enum, list) else None,
        ))
    return result


def _convert_request_body(body: dict) -> ApiRequestBody:
    content = body.get("content") if isinstance(body.get("content"), dict) else {}
    content_type = next((ct for ct in content if "json" in ct), None) or next(iter(content), None)
    schema: dict[str, Any] = {}
    if content_type:
        media = content.get(content_type) or {}
        schema = schema_record(media.get("schema"))
    elif isinstance(body.get("schema"), dict):
        schema = schema_record(body["schema"])
    return ApiRequestBody(
        content_type=content_type or "application/json",
        schema=schema,
        required=bool(body.get("required", False)),
    )


def _convert_swagger_body(params: list[dict], consumes: list) -> ApiRequestBody | None:
    """Swagger 2.0 keeps bodies in ``in: body`` or ``in: formData`` parameters."""
    body_param = next((p for p in params if p.get("in") == "body"), None)
    if body_param is not None:
        content_type = next((c for c in consumes if "json" in c), "application/json")
        return ApiRequestBody(
            content_type=content_type,
            schema=schema_record(body_param.get("schema")),
            required=bool(body_param.get("required", False)),
        )

    form_params = [p for p in params if p.get("in") == "formData"]
    if not form_params:
        return None
    has_file = any(p.get("type") == "file" for p in form_params)
    content_type = (
        "multipart/form-data"
        if has_file or "multipart/form-data" in consumes
        else "application/x-www-form-urlencoded"
    )
    properties: dict[str, Any] = {}
    for p in form_params:
        prop: dict[str, Any] = {"type": "string" if p.get("type") == "file" else p.get("type", "string")}
        if p.get("type") == "file":
            prop["format"] = "binary"
        if p.get("description"):
            prop["description"] = p["description"]
        properties[p["name"]] = prop
    required = [p["name"] for p in form_params if p.get("required")]
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return ApiRequestBody(content_type=content_type, schema=schema, required=bool(required))


def _convert_responses(responses: dict) -> dict[str, ApiResponse]:
    result: dict[str, ApiResponse] = {}
    for status, response in responses.items():
        if not isinstance(response, dict):
            continue
        schema = None
        content = response.get("content")
        if isinstance(content, dict):
            media = content.get("application/json") or next(
                (v for k, v in content.items() if "json" in k), None
            )
            if isinstance(media, dict) and isinstance(media.get("schema"), dict):
                schema = schema_record(media["schema"])
        elif isinstance(response.get("schema"), dict):
            schema = schema_record(response["schema"])
        result[str(status)] = ApiResponse(
            description=response.get("description") or f"Response {status}",
            schema=schema,
        )
    if not result:
        result["200"] = ApiResponse(description="Successful response")
    return result


def schema_record(schema: Any) -> dict[str, Any]:
    """Copy the JSON Schema keywords we use, dropping vendor extensions."""
    if not isinstance(schema, dict):
        return {}
    record: dict[str, Any] = {k: schema[k] for k in _SCHEMA_KEYS if k in schema}
    if isinstance(schema.get("properties"), dict):
        record["properties"] = {
            name: schema_record(prop) for name, prop in schema["properties"].items()
        }
    if isinstance(schema.get("items"), dict):
        record["items"] = schema_record(schema["items"])
    additional = schema.get("additionalProperties")
    if isinstance(additional, bool):
        record["additionalProperties"] = additional
    elif isinstance(additional, dict):
        record["additionalProperties"] = schema_record(additional)
    for key in ("oneOf", "anyOf", "allOf"):
        if isinstance(schema.get(key), list):
            record[key] = [schema_record(s) for s in schema[key]]
    return record


def _convert_auth_methods(spec: dict) -> list[ApiAuthMethod]:
    components = spec.get("components") if isinstance(spec.get("components"), dict) else {}
    schemes = components.get("securitySchemes") or spec.get("securityDefinitions") or {}
    methods = []
    for name, scheme in schemes.items():
        if isinstance(scheme, dict):
            method = _convert_security_scheme(name, scheme)
            if method:
                methods.append(method)
    return methods


def _convert_security_scheme(name: str, scheme: dict) -> ApiAuthMethod | None:
    scheme_type = scheme.get("type")
    description = scheme.get("description")
    if scheme_type == "apiKey":
        return ApiAuthMethod(
            type=AuthType.API_KEY,
            config={"name": name, "description": description},
            location=scheme.get("in"),
            param_name=scheme.get("name"),
        )
    if scheme_type == "http":
        http_scheme = str(scheme.get("scheme", "")).lower()
        if http_scheme == "bearer":
            return ApiAuthMethod(
                type=AuthType.BEARER,
                config={"name": name, "description": description, "bearerFormat": scheme.get("bearerFormat")},
                location="header",
                param_name="Authorization",
            )
        if http_scheme == "basic":
            return _basic(name, description)
        return None
    if scheme_type == "basic":
        return _basic(name, description)
    if scheme_type == "oauth2":
        return _convert_oauth2(name, scheme)
    return None


def _basic(name: str, description: str | None) -> ApiAuthMethod:
    return ApiAuthMethod(
        type=AuthType.BASIC,
        config={"name": name, "description": description},
        location="header",
        param_name="Authorization",
    )


def _convert_oauth2(name: str, scheme: dict) -> ApiAuthMethod:
    config: dict[str, Any] = {"name": name, "description": scheme.get("description")}
    flows = scheme.get("flows")
    if isinstance(flows, dict):
        for key, flow_name in _OAUTH_FLOWS:
            flow = flows.get(key)
            if isinstance(flow, dict):
                config.update(
                    flow=flow_name,
                    authorizationUrl=flow.get("authorizationUrl"),
                    tokenUrl=flow.get("tokenUrl"),
                    refreshUrl=flow.get("refreshUrl"),
                    scopes=list((flow.get("scopes") or {}).keys()),
                )
                break
    if scheme.get("flow"):
        config.update(
            flow=scheme["flow"],
            authorizationUrl=scheme.get("authorizationUrl"),
            tokenUrl=scheme.get("tokenUrl"),
            scopes=list((scheme.get("scopes") or {}).keys()),
        )
    return ApiAuthMethod(
        type=AuthType.OAUTH2,
        config={k: v for k, v in config.items() if v is not None},
        location="header",
        param_name="Authorization",
    )
