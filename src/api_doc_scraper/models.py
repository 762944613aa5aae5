"""Canonical API document shape shared by both parsing paths.

The structural parser and the AI extractor both normalize into
``ApiDocument`` so that action generation never needs to know which
path produced it.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class AuthType(str, Enum):
    OAUTH2 = "oauth2"
    API_KEY = "api_key"
    BASIC = "basic"
    BEARER = "bearer"
    CUSTOM_HEADER = "custom_header"


class ApiParameter(BaseModel):
    """A path, query, or header parameter."""

    name: str
    type: str = "string"
    required: bool = False
    description: str | None = None
    default: Any = None
    enum: list[str] | None = None


class ApiRequestBody(BaseModel):
    content_type: str = "application/json"
    schema_: dict[str, Any] = Field(default_factory=dict, alias="schema")
    required: bool = False

    model_config = {"populate_by_name": True}


class ApiResponse(BaseModel):
    description: str = ""
    schema_: dict[str, Any] | None = Field(default=None, alias="schema")

    model_config = {"populate_by_name": True}


class ApiEndpoint(BaseModel):
    """One API operation."""

    name: str
    slug: str
    description: str | None = None
    method: HttpMethod
    path: str
    path_parameters: list[ApiParameter] = Field(default_factory=list)
    query_parameters: list[ApiParameter] = Field(default_factory=list)
    header_parameters: list[ApiParameter] = Field(default_factory=list)
    request_body: ApiRequestBody | None = None
    responses: dict[str, ApiResponse] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    deprecated: bool = False

    def success_response(self) -> ApiResponse | None:
        """The 200, 201, 204 or default response, in that order."""
        for status in ("200", "201", "204", "default"):
            if status in self.responses:
                return self.responses[status]
        return None


class ApiAuthMethod(BaseModel):
    type: AuthType
    config: dict[str, Any] = Field(default_factory=dict)
    location: str | None = None  # header / query / body
    param_name: str | None = None


class RateLimit(BaseModel):
    requests: int = Field(gt=0)
    window: int = Field(gt=0)  # seconds


class RateLimitsConfig(BaseModel):
    default: RateLimit | None = None
    per_endpoint: dict[str, RateLimit] = Field(default_factory=dict)


class DetectedTemplateInfo(BaseModel):
    template_id: str
    template_name: str
    confidence: float
    signals: list[str] = Field(default_factory=list)


class ScrapeMetadata(BaseModel):
    scraped_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source_urls: list[str] = Field(default_factory=list)
    ai_confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    warnings: list[str] = Field(default_factory=list)
    detected_template: DetectedTemplateInfo | None = None
    reanalyzed_at: datetime | None = None
    previous_endpoint_count: int | None = None


class ApiDocument(BaseModel):
    """Extraction result for one documented API."""

    name: str
    description: str | None = None
    base_url: str
    version: str | None = None
    auth_methods: list[ApiAuthMethod] = Field(default_factory=list)
    endpoints: list[ApiEndpoint] = Field(default_factory=list)
    rate_limits: RateLimitsConfig | None = None
    metadata: ScrapeMetadata = Field(default_factory=ScrapeMetadata)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)
