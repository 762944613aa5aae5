"""Registry of curated integration templates."""

from api_doc_scraper.templates.base import IntegrationTemplate
from api_doc_scraper.templates.postgrest import POSTGREST_TEMPLATE
from api_doc_scraper.templates.rest_crud import REST_CRUD_TEMPLATE


class TemplateRegistry:
    """Registry of known API families."""

    _templates: dict[str, IntegrationTemplate] = {
        "postgrest": POSTGREST_TEMPLATE,
        "rest-crud": REST_CRUD_TEMPLATE,
    }

    @classmethod
    def register(cls, template: IntegrationTemplate) -> None:
        """Register a new template."""
        cls._templates[template.id] = template

    @classmethod
    def get(cls, template_id: str) -> IntegrationTemplate | None:
        """Get a template by id."""
        return cls._templates.get(template_id)

    @classmethod
    def list_templates(cls) -> list[IntegrationTemplate]:
        """List all registered templates."""
        return list(cls._templates.values())
