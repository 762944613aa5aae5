"""PostgREST template: Supabase and self-hosted PostgREST instances."""

from api_doc_scraper.models import AuthType, HttpMethod
from api_doc_scraper.templates.base import (
    ActionTemplate,
    IntegrationTemplate,
    TemplateParameter,
    TemplateRequestBody,
)

_ROWS = {"type": "array", "items": {"type": "object"}}
_OPEN_ROW = {"type": "object", "additionalProperties": True}
_ONE_OR_MANY_ROWS = {
    "oneOf": [
        {**_OPEN_ROW, "description": "Single row"},
        {"type": "array", "description": "Multiple rows", "items": _OPEN_ROW},
    ],
}
_JSON = {"Content-Type": "application/json"}
_RETURN_ROWS = {"Content-Type": "application/json", "Prefer": "return=representation"}


def _table(description: str = "Table or view name") -> TemplateParameter:
    return TemplateParameter(name="resource", required=True, description=description)


def _select(description: str = "Columns to return", default: str | None = None) -> TemplateParameter:
    return TemplateParameter(name="select", description=description, default=default)


def _row_id(description: str, required: bool = False) -> TemplateParameter:
    return TemplateParameter(name="id", required=required, description=description)


POSTGREST_TEMPLATE = IntegrationTemplate(
    id="postgrest",
    name="PostgREST / Supabase",
    description=(
        "For APIs that expose PostgreSQL tables as REST endpoints, such as "
        "Supabase and self-hosted PostgREST."
    ),
    suggested_auth_type=AuthType.API_KEY,
    suggested_auth_config={"placement": "header", "paramName": "apikey"},
    base_url_placeholder="https://YOUR-PROJECT.supabase.co",
    base_url_hint="Supabase project URL (Project Settings > API) or PostgREST base URL.",
    example_base_urls=["https://abcdefghijklmnop.supabase.co", "https://api.example.com/postgrest"],
    documentation_url="https://postgrest.org/en/stable/api.html",
    actions=[
        ActionTemplate(
            id="query-resource",
            name="Query Resource",
            description="Query rows from a table or view with filtering, ordering and pagination.",
            method=HttpMethod.GET,
            path_template="/rest/v1/{resource}",
            path_parameters=[_table("Table or view name to query")],
            query_parameters=[
                _select('Columns to return, e.g. "id,name" or "*"', default="*"),
                TemplateParameter(name="order", description='Order by column, e.g. "created_at.desc"'),
                TemplateParameter(name="limit", type="number", description="Maximum number of rows"),
                TemplateParameter(name="offset", type="number", description="Number of rows to skip"),
            ],
            response_schema={**_ROWS, "description": "Matching rows"},
            headers=_JSON,
            tags=["read", "query"],
        ),
        ActionTemplate(
            id="get-by-id",
            name="Get By ID",
            description="Retrieve a single row by its ID.",
            method=HttpMethod.GET,
            path_template="/rest/v1/{resource}",
            path_parameters=[_table()],
            query_parameters=[
                _row_id('Row ID, sent as an "id=eq.{value}" filter', required=True),
                _select(default="*"),
            ],
            response_schema={**_ROWS, "maxItems": 1, "description": "The row, or empty if not found"},
            headers={**_JSON, "Accept": "application/vnd.pgrst.object+json"},
            tags=["read"],
        ),
        ActionTemplate(
            id="insert-resource",
            name="Insert Resource",
            description="Insert one or more rows into a table.",
            method=HttpMethod.POST,
            path_template="/rest/v1/{resource}",
            path_parameters=[_table("Table to insert into")],
            query_parameters=[_select("Columns to return from inserted rows")],
            request_body=TemplateRequestBody(schema=_ONE_OR_MANY_ROWS),
            response_schema={**_ROWS, "description": "Inserted rows"},
            headers=_RETURN_ROWS,
            tags=["write", "create"],
        ),
        ActionTemplate(
            id="update-resource",
            name="Update Resource",
            description="Update rows matching a filter given as query parameters.",
            method=HttpMethod.PATCH,
            path_template="/rest/v1/{resource}",
            path_parameters=[_table("Table to update")],
            query_parameters=[
                _row_id('Row ID to update, sent as an "id=eq.{value}" filter'),
                _select("Columns to return from updated rows"),
            ],
            request_body=TemplateRequestBody(schema={**_OPEN_ROW, "description": "Fields to update"}),
            response_schema={**_ROWS, "description": "Updated rows"},
            headers=_RETURN_ROWS,
            tags=["write", "update"],
        ),
        ActionTemplate(
            id="upsert-resource",
            name="Upsert Resource",
            description="Insert rows, or update them when the primary key or a unique column matches.",
            method=HttpMethod.POST,
            path_template="/rest/v1/{resource}",
            path_parameters=[_table()],
            query_parameters=[
                TemplateParameter(name="on_conflict", description='Conflict column(s), e.g. "email"'),
                _select(),
            ],
            request_body=TemplateRequestBody(schema=_ONE_OR_MANY_ROWS),
            response_schema=_ROWS,
            headers={**_JSON, "Prefer": "resolution=merge-duplicates,return=representation"},
            tags=["write", "upsert"],
        ),
        ActionTemplate(
            id="delete-resource",
            name="Delete Resource",
            description="Delete rows matching a filter.",
            method=HttpMethod.DELETE,
            path_template="/rest/v1/{resource}",
            path_parameters=[_table()],
            query_parameters=[
                _row_id('Row ID to delete, sent as an "id=eq.{value}" filter'),
                _select("Columns to return from deleted rows"),
            ],
            response_schema={**_ROWS, "description": "Deleted rows"},
            headers={"Prefer": "return=representation"},
            tags=["write", "delete"],
        ),
        ActionTemplate(
            id="call-rpc",
            name="Call RPC Function",
            description="Call a PostgreSQL function exposed over RPC.",
            method=HttpMethod.POST,
            path_template="/rest/v1/rpc/{function}",
            path_parameters=[
                TemplateParameter(name="function", required=True, description="PostgreSQL function name"),
            ],
            request_body=TemplateRequestBody(
                required=False,
                schema={**_OPEN_ROW, "description": "Function arguments"},
            ),
            response_schema={"description": "Function return value"},
            headers=_JSON,
            tags=["rpc", "function"],
        ),
    ],
)
