"""Prompts and response contracts for AI extraction.

Each extraction call pairs a system prompt with a JSON schema the model
is asked to follow. Every response is an object at the top level so the
lenient JSON parsing in ``api_doc_scraper.llm`` can always recover it.
"""

import json

INFO_SYSTEM_PROMPT = """You read API documentation and identify the API itself.

Return a JSON object with:
- "name": the product or API name, e.g. "Stripe API"
- "description": one or two sentences on what the API does
- "baseUrl": the base URL requests are sent to, without a trailing slash.
  Use the documented production host. Never invent a host.
- "version": the API version if stated, otherwise omit it
- "confidence": a number from 0.0 to 1.0. Use 1.0 when everything is
  stated explicitly, 0.5 when inferred from context, 0.3 when guessed.

Return only JSON."""

ENDPOINTS_SYSTEM_PROMPT = """You extract callable HTTP endpoints from API documentation.

Rules:
- Only include endpoints the documentation actually shows. Do not guess.
- Skip endpoints marked as deprecated, legacy or removed.
- Prefer the most useful endpoints; return between 10 and 30 when the
  documentation has that many.
- "path" starts with "/" and excludes the host. Write path parameters
  as {name}.
- "method" is one of GET, POST, PUT, PATCH, DELETE.
- "slug" is lowercase words joined by hyphens, e.g. "list-users".
- Put body fields of POST/PUT/PATCH requests in "requestBody.schema" as
  a JSON Schema object with "properties" and "required".
- Record query parameters used for filtering and pagination.
- Include a "responses" map keyed by status code when a response shape
  is documented, each with "description" and an optional JSON Schema.

Return a JSON object of the form {"endpoints": [...]}. Return only JSON."""

AUTH_SYSTEM_PROMPT = """You identify how clients authenticate against an API.

For each method the documentation describes, return:
- "type": one of "oauth2", "api_key", "basic", "bearer", "custom_header"
- "location": "header", "query" or "body"
- "paramName": the header or parameter carrying the credential
- "config": extra details such as "authorizationUrl", "tokenUrl",
  "scopes" and "flow" for OAuth 2.0

Return a JSON object of the form {"authMethods": [...]}. Use an empty
list when no authentication is described. Return only JSON."""

RATE_LIMITS_SYSTEM_PROMPT = """You find documented rate limits for an API.

Return a JSON object with:
- "default": {"requests": N, "window": seconds} for the general limit,
  or null when none is documented
- "perEndpoint": a list of {"endpoint": path, "requests": N,
  "window": seconds} for endpoint-specific limits

Convert windows to seconds: a minute is 60, an hour is 3600, a day is
86400. Return only JSON."""

ENDPOINT_EXAMPLE = {
    "name": "Get User",
    "slug": "get-user",
    "method": "GET",
    "path": "/users/{user_id}",
    "description": "Retrieves a user by their ID.",
    "pathParameters": [
        {"name": "user_id", "type": "string", "required": True, "description": "User identifier"},
    ],
    "queryParameters": [
        {"name": "fields", "type": "string", "required": False, "description": "Fields to return"},
    ],
    "responses": {
        "200": {
            "description": "The user",
            "schema": {"type": "object", "properties": {"id": {"type": "string"}}},
        },
    },
}

_PARAMETER = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "type": {
            "type": "string",
            "enum": ["string", "number", "integer", "boolean", "array", "object"],
        },
        "required": {"type": "boolean"},
        "description": {"type": "string"},
    },
    "required": ["name", "type", "required"],
}

INFO_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "description": {"type": "string"},
        "baseUrl": {"type": "string"},
        "version": {"type": "string"},
        "confidence": {"type": "number"},
    },
    "required": ["name", "baseUrl"],
}

ENDPOINTS_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "endpoints": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "slug": {"type": "string"},
                    "method": {"type": "string", "enum": ["GET", "POST", "PUT", "PATCH", "DELETE"]},
                    "path": {"type": "string"},
                    "description": {"type": "string"},
                    "pathParameters": {"type": "array", "items": _PARAMETER},
                    "queryParameters": {"type": "array", "items": _PARAMETER},
                    "headerParameters": {"type": "array", "items": _PARAMETER},
                    "requestBody": {
                        "type": "object",
                        "properties": {
                            "contentType": {"type": "string"},
                            "schema": {"type": "object"},
                            "required": {"type": "boolean"},
                        },
                    },
                    "responses": {"type": "object"},
                    "tags": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["name", "slug", "method", "path"],
            },
        },
    },
    "required": ["endpoints"],
}

AUTH_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "authMethods": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {
                        "type": "string",
                        "enum": ["oauth2", "api_key", "basic", "bearer", "custom_header"],
                    },
                    "location": {"type": "string", "enum": ["header", "query", "body"]},
                    "paramName": {"type": "string"},
                    "config": {"type": "object"},
                },
                "required": ["type"],
            },
        },
    },
    "required": ["authMethods"],
}

_LIMIT = {
    "type": "object",
    "properties": {
        "requests": {"type": "number"},
        "window": {"type": "number"},
    },
}

RATE_LIMITS_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "default": _LIMIT,
        "perEndpoint": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "endpoint": {"type": "string"},
                    "requests": {"type": "number"},
                    "window": {"type": "number"},
                },
            },
        },
    },
}


def _wrap(content: str) -> str:
    return f"<documentation>\n{content}\n</documentation>"


def build_info_prompt(content: str) -> str:
    return f"Identify the API described here.\n\n{_wrap(content)}"


def build_endpoints_prompt(content: str, chunk_index: int | None = None, chunk_count: int | None = None) -> str:
    header = "Extract the endpoints documented here."
    if chunk_index is not None and chunk_count:
        header = (
            f"This is part {chunk_index + 1} of {chunk_count} of a larger document. "
            "Extract only the endpoints documented in this part."
        )
    example = json.dumps({"endpoints": [ENDPOINT_EXAMPLE]}, indent=2)
    return f"{header}\n\nExample output:\n{example}\n\n{_wrap(content)}"


def build_auth_prompt(content: str) -> str:
    return f"List the authentication methods described here.\n\n{_wrap(content)}"


def build_rate_limits_prompt(content: str) -> str:
    return f"Find the rate limits described here.\n\n{_wrap(content)}"
