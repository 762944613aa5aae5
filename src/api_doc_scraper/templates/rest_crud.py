"""Generic REST CRUD template for conventional resource APIs."""

from api_doc_scraper.models import AuthType, HttpMethod
from api_doc_scraper.templates.base import (
    ActionTemplate,
    IntegrationTemplate,
    TemplateParameter,
    TemplateRequestBody,
)

_ACCEPT = {"Accept": "application/json"}
_SEND_JSON = {"Content-Type": "application/json", "Accept": "application/json"}


def _resource(description: str = "Resource name or path") -> TemplateParameter:
    return TemplateParameter(name="resource", required=True, description=description)


def _id() -> TemplateParameter:
    return TemplateParameter(name="id", required=True, description="Resource ID")


def _body(description: str) -> TemplateRequestBody:
    return TemplateRequestBody(
        schema={"type": "object", "description": description, "additionalProperties": True},
    )


REST_CRUD_TEMPLATE = IntegrationTemplate(
    id="rest-crud",
    name="Generic REST API",
    description="For REST APIs with resource-based endpoints such as GET /resource and POST /resource.",
    suggested_auth_type=AuthType.BEARER,
    suggested_auth_config={"placement": "header", "paramName": "Authorization", "headerPrefix": "Bearer "},
    base_url_placeholder="https://api.example.com/v1",
    base_url_hint="Base URL of the API, including any version prefix.",
    example_base_urls=["https://api.example.com/v1", "https://app.example.com/api"],
    actions=[
        ActionTemplate(
            id="list-resources",
            name="List Resources",
            description="Retrieve a page of resources.",
            method=HttpMethod.GET,
            path_template="/{resource}",
            path_parameters=[_resource('Resource name or path, e.g. "users"')],
            query_parameters=[
                TemplateParameter(name="limit", type="number", description="Maximum items to return", default=20),
                TemplateParameter(name="offset", type="number", description="Items to skip", default=0),
                TemplateParameter(name="page", type="number", description="Page number, instead of offset"),
                TemplateParameter(name="sort", description='Sort field and direction, e.g. "created_at:desc"'),
            ],
            response_schema={
                "type": "object",
                "properties": {
                    "data": {"type": "array", "items": {"type": "object"}},
                    "total": {"type": "number"},
                    "page": {"type": "number"},
                    "limit": {"type": "number"},
                },
            },
            headers=_ACCEPT,
            tags=["read", "list"],
        ),
        ActionTemplate(
            id="get-resource",
            name="Get Resource",
            description="Retrieve a single resource by its ID.",
            method=HttpMethod.GET,
            path_template="/{resource}/{id}",
            path_parameters=[_resource(), _id()],
            response_schema={"type": "object", "description": "The requested resource"},
            headers=_ACCEPT,
            tags=["read"],
        ),
        ActionTemplate(
            id="create-resource",
            name="Create Resource",
            description="Create a new resource.",
            method=HttpMethod.POST,
            path_template="/{resource}",
            path_parameters=[_resource()],
            request_body=_body("Resource data to create"),
            response_schema={"type": "object", "description": "The created resource"},
            headers=_SEND_JSON,
            tags=["write", "create"],
        ),
        ActionTemplate(
            id="update-resource",
            name="Update Resource (Full)",
            description="Replace a resource with new data.",
            method=HttpMethod.PUT,
            path_template="/{resource}/{id}",
            path_parameters=[_resource(), _id()],
            request_body=_body("Complete resource data"),
            response_schema={"type": "object", "description": "The updated resource"},
            headers=_SEND_JSON,
            tags=["write", "update"],
        ),
        ActionTemplate(
            id="patch-resource",
            name="Update Resource (Partial)",
            description="Update only the given fields of a resource.",
            method=HttpMethod.PATCH,
            path_template="/{resource}/{id}",
            path_parameters=[_resource(), _id()],
            request_body=_body("Fields to update"),
            response_schema={"type": "object", "description": "The updated resource"},
            headers=_SEND_JSON,
            tags=["write", "update"],
        ),
        ActionTemplate(
            id="delete-resource",
            name="Delete Resource",
            description="Delete a resource by its ID.",
            method=HttpMethod.DELETE,
            path_template="/{resource}/{id}",
            path_parameters=[_resource(), _id()],
            response_schema={
                "type": "object",
                "properties": {"success": {"type": "boolean"}, "message": {"type": "string"}},
            },
            headers=_ACCEPT,
            tags=["write", "delete"],
        ),
    ],
)
