"""AI-assisted extraction of an ApiDocument from documentation prose.

Four focused model calls run one after another: API info, endpoints,
authentication and rate limits. Large corpora are split into
overlapping chunks and endpoint extraction runs once per chunk. Each
call goes through a ``RetryPolicy`` so malformed output is retried at a
lower temperature before the stage gives up.
"""

import json
import logging
import time
from collections.abc import Callable
from typing import Any, NamedTuple
from urllib.parse import urlparse

from pydantic import BaseModel, Field

from api_doc_scraper.config import ExtractionConfig
from api_doc_scraper.errors import ExtractionError, ExtractionErrorCode
from api_doc_scraper.llm import LlmClient, LlmTimeoutError, RetryExhaustedError, RetryPolicy
from api_doc_scraper.models import (
    ApiAuthMethod,
    ApiDocument,
    ApiEndpoint,
    ApiParameter,
    ApiRequestBody,
    ApiResponse,
    AuthType,
    HttpMethod,
    RateLimit,
    RateLimitsConfig,
    ScrapeMetadata,
)
from api_doc_scraper.parsers import prompts
from api_doc_scraper.parsers.openapi import PLACEHOLDER_BASE_URL, schema_record
from api_doc_scraper.utils.cancellation import CancellationToken
from api_doc_scraper.utils.text import slugify, truncate

logger = logging.getLogger(__name__)

_METHODS = {m.value for m in HttpMethod}

_AUTH_ALIASES = {
    "oauth": AuthType.OAUTH2,
    "oauth2": AuthType.OAUTH2,
    "api_key": AuthType.API_KEY,
    "apikey": AuthType.API_KEY,
    "api-key": AuthType.API_KEY,
    "basic": AuthType.BASIC,
    "bearer": AuthType.BEARER,
    "jwt": AuthType.BEARER,
    "custom_header": AuthType.CUSTOM_HEADER,
    "header": AuthType.CUSTOM_HEADER,
}


class ExtractionResult(BaseModel):
    doc: ApiDocument
    confidence: float = Field(ge=0.0, le=1.0)
    warnings: list[str] = Field(default_factory=list)
    chunk_count: int = 1
    duration_ms: int = 0


class _Stage(NamedTuple):
    data: Any
    confidence: float
    warnings: list[str]


def split_into_chunks(content: str, size: int, overlap: int) -> list[str]:
    """Split text into windows of ``size`` characters sharing ``overlap``."""
    if len(content) <= size:
        return [content]
    chunks = []
    start = 0
    while start < len(content):
        end = min(start + size, len(content))
        chunks.append(content[start:end])
        if end >= len(content):
            break
        start = max(end - overlap, start + 1)
    return chunks


def deduplicate_endpoints(endpoints: list[ApiEndpoint]) -> tuple[list[ApiEndpoint], int]:
    """Keep one endpoint per METHOD:path, preferring the most complete.

    Returns the kept endpoints in first-seen order and how many were dropped.
    """
    by_key: dict[str, ApiEndpoint] = {}
    for endpoint in endpoints:
        key = f"{endpoint.method.value}:{endpoint.path.rstrip('/') or '/'}"
        existing = by_key.get(key)
        if existing is None or _more_complete(endpoint, existing):
            by_key[key] = endpoint
    return list(by_key.values()), len(endpoints) - len(by_key)


def _more_complete(candidate: ApiEndpoint, existing: ApiEndpoint) -> bool:
    if candidate.description and not existing.description:
        return True
    if candidate.request_body is not None and existing.request_body is None:
        return True
    return len(candidate.responses) > len(existing.responses)


class AiExtractor:
    """Extracts the canonical API document from unstructured documentation."""

    def __init__(self, llm: LlmClient, config: ExtractionConfig | None = None):
        self.llm = llm
        self.config = config or ExtractionConfig()

    async def extract(
        self,
        content: str,
        source_urls: list[str] | None = None,
        on_progress: Callable[[str], None] | None = None,
        token: CancellationToken | None = None,
    ) -> ExtractionResult:
        if not content or not content.strip():
            raise ExtractionError(
                ExtractionErrorCode.EMPTY_CONTENT, "No documentation content to extract from"
            )
        start = time.monotonic()

        if len(content) > self.config.chunk_threshold:
            chunks = split_into_chunks(content, self.config.chunk_size, self.config.chunk_overlap)
        else:
            chunks = [content]
        logger.info("Extracting API document from %d chars in %d chunk(s)", len(content), len(chunks))

        def report(message: str) -> None:
            if on_progress is not None:
                on_progress(message)

        _check(token)
        report("Extracting API information")
        info = await self._extract_info(chunks[0])

        endpoints = await self._extract_endpoints(chunks, report, token)

        _check(token)
        report("Detecting authentication methods")
        budget = self.config.stage_max_chars
        auth = await self._extract_auth(truncate("\n\n".join(chunks[:3]), budget))

        _check(token)
        report("Detecting rate limits")
        limits_content = chunks[0] if len(chunks) == 1 else f"{chunks[0]}\n\n{chunks[-1]}"
        limits = await self._extract_rate_limits(truncate(limits_content, budget))

        warnings = info.warnings + endpoints.warnings + auth.warnings + limits.warnings
        confidence = sum(s.confidence for s in (info, endpoints, auth, limits)) / 4
        reported = info.data.get("confidence")
        if isinstance(reported, (int, float)) and not isinstance(reported, bool) and 0 <= reported <= 1:
            confidence = float(reported)
        confidence = round(confidence, 3)

        doc = ApiDocument(
            name=info.data.get("name") or "Unknown API",
            description=info.data.get("description"),
            base_url=info.data.get("baseUrl") or PLACEHOLDER_BASE_URL,
            version=info.data.get("version"),
            auth_methods=auth.data,
            endpoints=endpoints.data,
            rate_limits=limits.data,
            metadata=ScrapeMetadata(
                source_urls=list(source_urls or []),
                ai_confidence=confidence,
                warnings=warnings,
            ),
        )
        return ExtractionResult(
            doc=doc,
            confidence=confidence,
            warnings=warnings,
            chunk_count=len(chunks),
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    async def _generate(
        self,
        system: str,
        user: str,
        schema: dict[str, Any],
        validator: Callable[[Any], bool],
    ) -> Any:
        policy = RetryPolicy(
            max_attempts=self.config.max_attempts,
            temperatures=self.config.temperatures,
            validator=validator,
        )
        outcome = await policy.run(
            lambda temperature: self.llm.generate_json(
                system, user, temperature=temperature, response_schema=schema
            )
        )
        return outcome.value

    async def _extract_info(self, content: str) -> _Stage:
        warnings: list[str] = []
        try:
            raw = await self._generate(
                prompts.INFO_SYSTEM_PROMPT,
                prompts.build_info_prompt(content),
                prompts.INFO_RESPONSE_SCHEMA,
                lambda d: isinstance(d, dict),
            )
        except RetryExhaustedError as e:
            logger.warning("API info extraction failed: %s", e)
            raw = {}
            warnings.append(f"API info extraction failed: {e}")

        info: dict[str, Any] = {}
        for key in ("name", "description", "version"):
            value = _text(raw.get(key))
            if value:
                info[key] = value
        base_url = raw.get("baseUrl")
        if isinstance(base_url, str) and base_url.strip().startswith(("http://", "https://")):
            info["baseUrl"] = base_url.strip().rstrip("/")
        if "confidence" in raw:
            info["confidence"] = raw["confidence"]

        confidence = 1.0
        if "name" not in info:
            confidence -= 0.3
            warnings.append("API name could not be determined")
        if "baseUrl" not in info:
            confidence -= 0.3
            warnings.append("Base URL could not be determined, using placeholder")
        if "description" not in info:
            confidence -= 0.1
        if not raw:
            confidence = 0.0
        else:
            confidence = max(confidence, 0.3)
        return _Stage(info, confidence, warnings)

    async def _extract_endpoints(
        self,
        chunks: list[str],
        report: Callable[[str], None],
        token: CancellationToken | None,
    ) -> _Stage:
        warnings: list[str] = []
        collected: list[ApiEndpoint] = []
        failures = 0
        last_error: RetryExhaustedError | None = None

        for index, chunk in enumerate(chunks):
            _check(token)
            if len(chunks) > 1:
                report(f"Extracting endpoints (part {index + 1} of {len(chunks)})")
                user = prompts.build_endpoints_prompt(chunk, index, len(chunks))
            else:
                report("Extracting endpoints")
                user = prompts.build_endpoints_prompt(chunk)
            try:
                raw = await self._generate(
                    prompts.ENDPOINTS_SYSTEM_PROMPT,
                    user,
                    prompts.ENDPOINTS_RESPONSE_SCHEMA,
                    lambda d: isinstance(d, dict) and isinstance(d.get("endpoints"), list),
                )
            except RetryExhaustedError as e:
                logger.warning("Endpoint extraction failed for part %d: %s", index + 1, e)
                failures += 1
                last_error = e
                if len(chunks) > 1:
                    warnings.append(f"Endpoint extraction failed for part {index + 1} of {len(chunks)}")
                continue
            for item in raw["endpoints"]:
                endpoint = endpoint_from_raw(item, warnings)
                if endpoint is not None:
                    collected.append(endpoint)

        if failures == len(chunks):
            if last_error is not None and isinstance(last_error.last_error, LlmTimeoutError):
                raise ExtractionError(
                    ExtractionErrorCode.TIMEOUT, f"Endpoint extraction timed out: {last_error}"
                )
            raise ExtractionError(
                ExtractionErrorCode.INVALID_RESPONSE,
                f"Endpoint extraction returned no usable response: {last_error}",
            )

        endpoints, removed = deduplicate_endpoints(collected)
        if removed:
            warnings.append(f"Deduplicated {removed} duplicate endpoints across chunks")
        if not endpoints:
            warnings.append("No endpoints were extracted")
            return _Stage(endpoints, 0.0, warnings)

        described = sum(1 for e in endpoints if e.description)
        parameterized = sum(
            1 for e in endpoints
            if e.path_parameters or e.query_parameters or e.header_parameters or e.request_body
        )
        count = len(endpoints)
        confidence = 0.5 + 0.25 * described / count + 0.25 * parameterized / count
        return _Stage(endpoints, confidence, warnings)

    async def _extract_auth(self, content: str) -> _Stage:
        warnings: list[str] = []
        try:
            raw = await self._generate(
                prompts.AUTH_SYSTEM_PROMPT,
                prompts.build_auth_prompt(content),
                prompts.AUTH_RESPONSE_SCHEMA,
                lambda d: isinstance(d, dict) and isinstance(d.get("authMethods"), list),
            )
        except RetryExhaustedError as e:
            logger.warning("Auth detection failed: %s", e)
            return _Stage([], 0.0, [f"Authentication detection failed: {e}"])

        methods: list[ApiAuthMethod] = []
        seen: set[tuple[AuthType, str | None]] = set()
        for item in raw["authMethods"]:
            method = auth_method_from_raw(item)
            if method is None:
                warnings.append(f"Skipped unrecognized authentication method: {item!r:.80}")
                continue
            key = (method.type, method.param_name)
            if key not in seen:
                seen.add(key)
                methods.append(method)

        if not methods:
            warnings.append("No authentication methods were detected")
            return _Stage(methods, 0.3, warnings)
        return _Stage(methods, 0.8, warnings)

    async def _extract_rate_limits(self, content: str) -> _Stage:
        try:
            raw = await self._generate(
                prompts.RATE_LIMITS_SYSTEM_PROMPT,
                prompts.build_rate_limits_prompt(content),
                prompts.RATE_LIMITS_RESPONSE_SCHEMA,
                lambda d: isinstance(d, dict),
            )
        except RetryExhaustedError as e:
            logger.warning("Rate limit detection failed: %s", e)
            return _Stage(None, 0.5, [f"Rate limit detection failed: {e}"])

        limits = rate_limits_from_raw(raw)
        if limits is None:
            return _Stage(None, 0.5, [])
        return _Stage(limits, 0.7, [])


def endpoint_from_raw(raw: Any, warnings: list[str]) -> ApiEndpoint | None:
    """Normalize one model-produced endpoint, or None if it is unusable."""
    if not isinstance(raw, dict):
        return None
    name = _text(raw.get("name"))
    method = str(raw.get("method") or "").strip().upper()
    path = _text(raw.get("path"))
    if not name or not path or method not in _METHODS:
        label = name or path or "unnamed"
        warnings.append(f"Skipped endpoint missing name, method or path: {label}")
        return None

    if path.startswith(("http://", "https://")):
        path = urlparse(path).path or "/"
    elif not path.startswith("/"):
        path = "/" + path

    slug = slugify(_text(raw.get("slug")) or name) or slugify(f"{method}-{path}")

    responses: dict[str, ApiResponse] = {}
    raw_responses = raw.get("responses")
    if isinstance(raw_responses, dict):
        for status, response in raw_responses.items():
            if not isinstance(response, dict):
                continue
            schema = _decode_schema(response.get("schema"))
            responses[str(status)] = ApiResponse(
                description=_text(response.get("description")) or f"Response {status}",
                schema=schema or None,
            )
    if not responses:
        responses["200"] = ApiResponse(description="Successful response")

    return ApiEndpoint(
        name=name,
        slug=slug,
        description=_text(raw.get("description")),
        method=HttpMethod(method),
        path=path,
        path_parameters=_parameters(raw.get("pathParameters"), default_required=True),
        query_parameters=_parameters(raw.get("queryParameters")),
        header_parameters=_parameters(raw.get("headerParameters")),
        request_body=_request_body(raw.get("requestBody")),
        responses=responses,
        tags=[t for t in raw.get("tags") or [] if isinstance(t, str)],
        deprecated=raw.get("deprecated") is True,
    )


def auth_method_from_raw(raw: Any) -> ApiAuthMethod | None:
    if not isinstance(raw, dict):
        return None
    auth_type = _AUTH_ALIASES.get(str(raw.get("type") or "").strip().lower())
    if auth_type is None:
        return None
    location = _text(raw.get("location"))
    config = raw.get("config") if isinstance(raw.get("config"), dict) else {}
    return ApiAuthMethod(
        type=auth_type,
        config=config,
        location=location.lower() if location else None,
        param_name=_text(raw.get("paramName")),
    )


def rate_limits_from_raw(raw: dict[str, Any]) -> RateLimitsConfig | None:
    default = _rate_limit(raw.get("default"))
    per_endpoint: dict[str, RateLimit] = {}
    entries = raw.get("perEndpoint")
    if isinstance(entries, dict):
        entries = [{"endpoint": k, **v} for k, v in entries.items() if isinstance(v, dict)]
    if isinstance(entries, list):
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            endpoint = _text(entry.get("endpoint"))
            limit = _rate_limit(entry)
            if endpoint and limit is not None:
                per_endpoint[endpoint] = limit
    if default is None and not per_endpoint:
        return None
    return RateLimitsConfig(default=default, per_endpoint=per_endpoint)


def _rate_limit(raw: Any) -> RateLimit | None:
    if not isinstance(raw, dict):
        return None
    requests, window = raw.get("requests"), raw.get("window")
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in (requests, window)):
        return None
    if requests < 1 or window < 1:
        return None
    return RateLimit(requests=int(requests), window=int(window))


def _parameters(raw: Any, default_required: bool = False) -> list[ApiParameter]:
    if not isinstance(raw, list):
        return []
    params = []
    for item in raw:
        if not isinstance(item, dict) or not _text(item.get("name")):
            continue
        enum = item.get("enum")
        params.append(ApiParameter(
            name=_text(item["name"]),
            type=_text(item.get("type")) or "string",
            required=bool(item.get("required", default_required)),
            description=_text(item.get("description")),
            default=item.get("default"),
            enum=[str(v) for v in enum] if isinstance(enum, list) else None,
        ))
    return params


def _request_body(raw: Any) -> ApiRequestBody | None:
    if not isinstance(raw, dict):
        return None
    schema = _decode_schema(raw.get("schema"))
    if not schema:
        return None
    return ApiRequestBody(
        content_type=_text(raw.get("contentType")) or "application/json",
        schema=schema,
        required=bool(raw.get("required", False)),
    )


def _decode_schema(raw: Any) -> dict[str, Any]:
    """Models sometimes return nested schema members as JSON strings."""
    if isinstance(raw, str):
        raw = _loads(raw)
    if not isinstance(raw, dict):
        return {}
    raw = dict(raw)
    for key in ("properties", "required", "items"):
        if isinstance(raw.get(key), str):
            decoded = _loads(raw[key])
            if decoded is None:
                raw.pop(key)
            else:
                raw[key] = decoded
    if "properties" in raw and "type" not in raw:
        raw["type"] = "object"
    return schema_record(raw)


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.debug("Discarding undecodable schema fragment: %.80s", text)
        return None


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _check(token: CancellationToken | None) -> None:
    if token is not None:
        token.raise_if_cancelled()
