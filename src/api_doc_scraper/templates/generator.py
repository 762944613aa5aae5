"""Build an ApiDocument from a curated template."""

from api_doc_scraper.errors import TemplateError
from api_doc_scraper.models import (
    ApiAuthMethod,
    ApiDocument,
    AuthType,
    DetectedTemplateInfo,
    ScrapeMetadata,
)
from api_doc_scraper.templates.base import IntegrationTemplate
from api_doc_scraper.templates.registry import TemplateRegistry


def generate_from_template(
    template_id: str,
    base_url: str,
    name: str | None = None,
    auth_type: AuthType | None = None,
    signals: list[str] | None = None,
    confidence: float = 1.0,
) -> ApiDocument:
    """Produce a document whose endpoints are the template's actions.

    Without ``signals`` the template is treated as manually selected.
    """
    template = TemplateRegistry.get(template_id)
    if template is None:
        raise TemplateError(template_id, f"Template not found: {template_id}")
    if not base_url or not base_url.startswith("http"):
        raise TemplateError(template_id, "Invalid base URL. Must start with http:// or https://")

    return ApiDocument(
        name=name or template.name,
        description=template.description,
        base_url=base_url.rstrip("/"),
        auth_methods=[suggested_auth(template, auth_type)],
        endpoints=[action.to_endpoint(template.id) for action in template.actions],
        metadata=ScrapeMetadata(
            source_urls=[template.documentation_url or base_url],
            ai_confidence=1.0,
            detected_template=DetectedTemplateInfo(
                template_id=template.id,
                template_name=template.name,
                confidence=confidence,
                signals=signals or ["manually-selected"],
            ),
        ),
    )


def suggested_auth(template: IntegrationTemplate, auth_type: AuthType | None = None) -> ApiAuthMethod:
    config = dict(template.suggested_auth_config)
    return ApiAuthMethod(
        type=auth_type or template.suggested_auth_type,
        config=config,
        location=config.get("placement", "header"),
        param_name=config.get("paramName"),
    )
