"""Curated templates for schema-driven API families."""

from api_doc_scraper.templates.base import ActionTemplate, IntegrationTemplate, TemplateParameter
from api_doc_scraper.templates.detector import (
    TemplateDetectionResult,
    detect_template,
    quick_template_check,
)
from api_doc_scraper.templates.generator import generate_from_template
from api_doc_scraper.templates.registry import TemplateRegistry

__all__ = [
    "ActionTemplate",
    "IntegrationTemplate",
    "TemplateDetectionResult",
    "TemplateParameter",
    "TemplateRegistry",
    "detect_template",
    "generate_from_template",
    "quick_template_check",
]
