"""Integration template models.

A template is a curated, hand-maintained action set for a family of
schema-driven APIs. Each action converts to an ``ApiEndpoint`` so that a
template-backed document flows through action generation like any
extracted one.
"""

from typing import Any

from pydantic import BaseModel, Field

from api_doc_scraper.models import (
    ApiEndpoint,
    ApiParameter,
    ApiRequestBody,
    ApiResponse,
    AuthType,
    HttpMethod,
)


class TemplateParameter(BaseModel):
    name: str
    type: str = "string"
    required: bool = False
    description: str | None = None
    default: Any = None

    def to_parameter(self) -> ApiParameter:
        return ApiParameter(
            name=self.name,
            type=self.type,
            required=self.required,
            description=self.description,
            default=self.default,
        )


class TemplateRequestBody(BaseModel):
    content_type: str = "application/json"
    required: bool = True
    schema_: dict[str, Any] = Field(default_factory=dict, alias="schema")

    model_config = {"populate_by_name": True}


class ActionTemplate(BaseModel):
    """One curated operation of a template."""

    id: str
    name: str
    description: str
    method: HttpMethod
    path_template: str
    path_parameters: list[TemplateParameter] = Field(default_factory=list)
    query_parameters: list[TemplateParameter] = Field(default_factory=list)
    request_body: TemplateRequestBody | None = None
    response_schema: dict[str, Any] | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)

    def to_endpoint(self, template_id: str) -> ApiEndpoint:
        """Template id and fixed headers ride along as tags."""
        request_body = None
        if self.request_body is not None:
            request_body = ApiRequestBody(
                content_type=self.request_body.content_type,
                schema=self.request_body.schema_,
                required=self.request_body.required,
            )
        tags = list(self.tags) + [f"template:{template_id}"]
        tags += [f"header:{key}:{value}" for key, value in self.headers.items()]
        return ApiEndpoint(
            name=self.name,
            slug=self.id,
            description=self.description,
            method=self.method,
            path=self.path_template,
            path_parameters=[p.to_parameter() for p in self.path_parameters],
            query_parameters=[p.to_parameter() for p in self.query_parameters],
            request_body=request_body,
            responses={
                "200": ApiResponse(description="Successful response", schema=self.response_schema),
            },
            tags=tags,
        )


class IntegrationTemplate(BaseModel):
    id: str
    name: str
    description: str
    suggested_auth_type: AuthType
    suggested_auth_config: dict[str, Any] = Field(default_factory=dict)
    base_url_placeholder: str
    base_url_hint: str
    example_base_urls: list[str] = Field(default_factory=list)
    documentation_url: str | None = None
    actions: list[ActionTemplate]
