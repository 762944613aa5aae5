from pathlib import Path

import pytest

from api_doc_scraper.actions import generate_actions
from api_doc_scraper.errors import TemplateError
from api_doc_scraper.models import ApiDocument, ApiEndpoint, AuthType, HttpMethod
from api_doc_scraper.templates import (
    TemplateRegistry,
    detect_template,
    generate_from_template,
    quick_template_check,
)

FIXTURES = Path(__file__).parent / "fixtures"


class TestDetectTemplate:
    def test_supabase_docs(self):
        content = (FIXTURES / "supabase_docs.md").read_text()
        result = detect_template(None, content, ["https://abcdefgh.supabase.co/docs"])
        assert result.detected is True
        assert result.template.id == "postgrest"
        assert result.confidence == 1.0
        assert result.suggested_base_url == "https://abcdefgh.supabase.co"
        assert "URL matches postgrest pattern: https://abcdefgh.supabase.co/docs" in result.signals
        assert "Content matches pattern: Row Level Security" in result.signals

    def test_generic_rest_from_endpoints(self):
        doc = ApiDocument(
            name="Acme",
            base_url="https://api.acme.com",
            endpoints=[
                ApiEndpoint(name="List users", slug="list-users", method=HttpMethod.GET, path="/users"),
                ApiEndpoint(name="Create user", slug="create-user", method=HttpMethod.POST, path="/users"),
                ApiEndpoint(name="Get user", slug="get-user", method=HttpMethod.GET, path="/users/{id}"),
            ],
        )
        content = "Acme offers a RESTful API with CRUD operations on every resource."
        result = detect_template(doc, content, ["https://api.acme.com/docs"])
        assert result.detected is True
        assert result.template.id == "rest-crud"
        assert "Endpoint path matches: GET /users/{id}" in result.signals
        assert result.suggested_base_url == "https://api.acme.com"

    def test_versioned_base_url_in_content(self):
        content = "RESTful API. CRUD operations. Base URL: https://acme.io/api/v2 for all calls."
        result = detect_template(None, content, ["https://acme.io/api/v2/docs"])
        assert result.template.id == "rest-crud"
        assert result.suggested_base_url == "https://acme.io/api/v2"

    def test_weak_signals_are_not_a_detection(self):
        result = detect_template(None, "Manage each resource from the dashboard.", [])
        assert result.detected is False
        assert result.template is None
        assert result.confidence == 0.0

    def test_quick_check(self):
        assert quick_template_check("https://supabase.com/docs/guides/api") == "postgrest"
        assert quick_template_check("https://airtable.com/developers/web/api") == "rest-crud"
        assert quick_template_check("https://docs.stripe.com") is None


class TestGenerateFromTemplate:
    def test_postgrest_document(self):
        template = TemplateRegistry.get("postgrest")
        doc = generate_from_template("postgrest", "https://abc.supabase.co/")
        assert doc.name == template.name
        assert doc.base_url == "https://abc.supabase.co"
        assert len(doc.endpoints) == len(template.actions)
        assert all("template:postgrest" in e.tags for e in doc.endpoints)
        assert doc.metadata.ai_confidence == 1.0
        assert doc.metadata.detected_template.signals == ["manually-selected"]

        auth = doc.auth_methods[0]
        assert auth.type == AuthType.API_KEY
        assert auth.location == "header"
        assert auth.param_name == "apikey"

    def test_overrides(self):
        doc = generate_from_template(
            "rest-crud",
            "https://api.acme.com",
            name="Acme",
            auth_type=AuthType.BASIC,
            signals=["Keyword found: crud"],
            confidence=0.45,
        )
        assert doc.name == "Acme"
        assert doc.auth_methods[0].type == AuthType.BASIC
        assert doc.metadata.detected_template.confidence == 0.45
        assert doc.metadata.detected_template.signals == ["Keyword found: crud"]

    def test_template_document_generates_actions(self):
        doc = generate_from_template("rest-crud", "https://api.acme.com")
        result = generate_actions(doc)
        assert len(result.actions) == len(doc.endpoints)
        assert all(a.endpoint_template.startswith("https://api.acme.com/") for a in result.actions)

    def test_unknown_template(self):
        with pytest.raises(TemplateError) as exc:
            generate_from_template("graphql", "https://api.acme.com")
        assert exc.value.template_id == "graphql"
        assert "Template not found" in exc.value.message

    def test_invalid_base_url(self):
        with pytest.raises(TemplateError):
            generate_from_template("postgrest", "abc.supabase.co")


def test_registry_lists_builtin_templates():
    ids = [t.id for t in TemplateRegistry.list_templates()]
    assert ids == ["postgrest", "rest-crud"]
    assert TemplateRegistry.get("missing") is None
