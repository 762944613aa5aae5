"""Pagination inference for list endpoints.

Two independent signals are used: query parameter names matched against
known cursor/offset/page vocabularies, and field names found in the
success response schema (directly or under a ``meta``/``pagination``
wrapper). Either one is enough to emit a config. Every config carries
caps sized for token-budgeted callers.
"""

from enum import Enum

from pydantic import BaseModel, Field

from api_doc_scraper.config import GenerationConfig
from api_doc_scraper.models import ApiEndpoint, ApiParameter, HttpMethod
from api_doc_scraper.schema import ArraySchema, JsonSchema, ObjectSchema, schema_from_dict

CURSOR_PARAMS = ("cursor", "after", "before", "page_token", "starting_after", "ending_before")
LIMIT_PARAMS = ("limit", "page_size", "per_page", "count")
OFFSET_PARAMS = ("offset", "skip")
PAGE_PARAMS = ("page", "page_number", "pagenumber")

CURSOR_FIELDS = ("next_cursor", "nextcursor", "next_page_token", "nextpagetoken", "cursor", "next")
HAS_MORE_FIELDS = ("has_more", "hasmore", "has_next", "hasnextpage", "more")
TOTAL_FIELDS = ("total", "total_count", "totalcount", "total_results", "totalresults")
TOTAL_PAGES_FIELDS = ("total_pages", "totalpages", "page_count", "pagecount")
DATA_FIELDS = ("data", "results", "items", "records", "entries")
WRAPPER_FIELDS = ("meta", "pagination", "paging", "page_info", "pageinfo")


class PaginationStrategy(str, Enum):
    CURSOR = "cursor"
    OFFSET = "offset"
    PAGE_NUMBER = "page_number"
    LINK_HEADER = "link_header"
    AUTO = "auto"


class PaginationLimits(BaseModel):
    """Caps applied when an action walks pages on a caller's behalf."""

    max_pages: int = Field(default=5, ge=1)
    max_items: int = Field(default=500, ge=1)
    max_characters: int = Field(default=100_000, ge=1)
    max_duration_seconds: int = Field(default=30, ge=1)

    @classmethod
    def from_config(cls, config: GenerationConfig) -> "PaginationLimits":
        return cls(
            max_pages=config.pagination_max_pages,
            max_items=config.pagination_max_items,
            max_characters=config.pagination_max_characters,
            max_duration_seconds=config.pagination_max_duration_seconds,
        )


class PaginationConfig(BaseModel):
    strategy: PaginationStrategy
    cursor_param: str | None = None
    cursor_path: str | None = None
    offset_param: str | None = None
    limit_param: str | None = None
    page_param: str | None = None
    total_path: str | None = None
    total_pages_path: str | None = None
    data_path: str | None = None
    has_more_path: str | None = None
    max_pages: int = 5
    max_items: int = 500
    max_characters: int = 100_000
    max_duration_seconds: int = 30


class ResponseSignals(BaseModel):
    """JSONPaths of pagination fields found in a response schema."""

    cursor_path: str | None = None
    has_more_path: str | None = None
    total_path: str | None = None
    total_pages_path: str | None = None
    data_path: str | None = None
    # True only when the array sits under a data-wrapper name like "data" or "results"
    data_envelope: bool = False

    @property
    def found(self) -> bool:
        return self.data_envelope or any(
            (self.cursor_path, self.has_more_path, self.total_path, self.total_pages_path)
        )


def scan_response_schema(schema: JsonSchema | None) -> ResponseSignals:
    """Look for cursor, has-more, total and data-array fields."""
    signals = ResponseSignals()
    if not isinstance(schema, ObjectSchema):
        return signals

    _scan_level(schema, "$", signals)
    for name, prop in schema.properties.items():
        if name.lower() in WRAPPER_FIELDS and isinstance(prop, ObjectSchema):
            _scan_level(prop, f"$.{name}", signals)

    if signals.data_path is None:
        arrays = [n for n, p in schema.properties.items() if isinstance(p, ArraySchema)]
        if len(arrays) == 1:
            signals.data_path = f"$.{arrays[0]}"
    return signals


def _scan_level(schema: ObjectSchema, prefix: str, signals: ResponseSignals) -> None:
    for name, prop in schema.properties.items():
        key = name.lower()
        path = f"{prefix}.{name}"
        if signals.cursor_path is None and key in CURSOR_FIELDS and not isinstance(prop, (ObjectSchema, ArraySchema)):
            signals.cursor_path = path
        elif signals.has_more_path is None and key in HAS_MORE_FIELDS:
            signals.has_more_path = path
        elif signals.total_pages_path is None and key in TOTAL_PAGES_FIELDS:
            signals.total_pages_path = path
        elif signals.total_path is None and key in TOTAL_FIELDS:
            signals.total_path = path
        elif signals.data_path is None and key in DATA_FIELDS and isinstance(prop, ArraySchema):
            signals.data_path = path
            signals.data_envelope = True


def detect_pagination_config(
    endpoint: ApiEndpoint,
    limits: PaginationLimits | None = None,
) -> PaginationConfig | None:
    """Infer how a GET endpoint paginates, or None if it does not appear to."""
    if endpoint.method != HttpMethod.GET:
        return None
    limits = limits or PaginationLimits()

    params = endpoint.query_parameters
    names = [p.name.lower() for p in params]

    response = endpoint.success_response()
    response_schema = schema_from_dict(response.schema_) if response and response.schema_ else None
    signals = scan_response_schema(response_schema)

    fields: dict[str, str | None] = {}
    # Filters such as created_after are not cursors; only known names or "*cursor*" count
    cursor_param = _find(params, CURSOR_PARAMS) or next(
        (p.name for p in params if "cursor" in p.name.lower()), None
    )
    if cursor_param is not None:
        strategy = PaginationStrategy.CURSOR
        fields["cursor_param"] = cursor_param
        fields["limit_param"] = _find(params, LIMIT_PARAMS)
    elif any("offset" in n or "skip" in n for n in names):
        strategy = PaginationStrategy.OFFSET
        fields["offset_param"] = next(
            (p.name for p in params if any(o in p.name.lower() for o in OFFSET_PARAMS)), "offset"
        )
        fields["limit_param"] = _find(params, LIMIT_PARAMS)
    elif any(n in PAGE_PARAMS for n in names):
        strategy = PaginationStrategy.PAGE_NUMBER
        fields["page_param"] = _find(params, PAGE_PARAMS)
        fields["limit_param"] = _find(params, LIMIT_PARAMS + ("size",))
    elif signals.found:
        if signals.cursor_path:
            strategy = PaginationStrategy.CURSOR
        elif signals.total_pages_path:
            strategy = PaginationStrategy.PAGE_NUMBER
        else:
            strategy = PaginationStrategy.AUTO
        fields["limit_param"] = _find(params, LIMIT_PARAMS)
    else:
        return None

    cursor_path = signals.cursor_path
    if strategy == PaginationStrategy.CURSOR and cursor_path is None:
        cursor_path = "$.next_cursor"

    return PaginationConfig(
        strategy=strategy,
        cursor_path=cursor_path,
        total_path=signals.total_path,
        total_pages_path=signals.total_pages_path,
        data_path=signals.data_path,
        has_more_path=signals.has_more_path,
        max_pages=limits.max_pages,
        max_items=limits.max_items,
        max_characters=limits.max_characters,
        max_duration_seconds=limits.max_duration_seconds,
        **fields,
    )


def _find(params: list[ApiParameter], vocabulary: tuple[str, ...]) -> str | None:
    for param in params:
        if param.name.lower() in vocabulary:
            return param.name
    return None
