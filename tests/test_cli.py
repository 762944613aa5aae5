import json
from pathlib import Path
from unittest.mock import patch

from typer.testing import CliRunner

from api_doc_scraper import __version__
from api_doc_scraper.cli import app
from api_doc_scraper.fetcher.base import PageContent
from api_doc_scraper.models import ApiDocument

FIXTURES = Path(__file__).parent / "fixtures"
SPEC_URL = "https://petstore.example.com/openapi.yaml"

runner = CliRunner()


class SpecFetcher:
    """Serves the petstore spec for any URL."""

    def __init__(self, *args, **kwargs):
        self.urls = []

    async def scrape(self, url, **kwargs):
        self.urls.append(url)
        content = (FIXTURES / "petstore.yaml").read_text()
        return PageContent(url=url, final_url=url, content=content)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return None


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_list_templates():
    result = runner.invoke(app, ["list-templates"])
    assert result.exit_code == 0
    assert "postgrest" in result.output
    assert "rest-crud" in result.output


def test_parse_writes_document(tmp_path):
    out = tmp_path / "petstore.json"
    result = runner.invoke(app, ["parse", str(FIXTURES / "petstore.yaml"), "-o", str(out)])
    assert result.exit_code == 0, result.output
    assert "Petstore" in result.output
    doc = ApiDocument.model_validate_json(out.read_text())
    assert len(doc.endpoints) == 4


def test_actions_from_saved_document(tmp_path):
    doc_path = tmp_path / "petstore.json"
    runner.invoke(app, ["parse", str(FIXTURES / "petstore.yaml"), "-o", str(doc_path)])

    out = tmp_path / "actions.json"
    result = runner.invoke(app, ["actions", str(doc_path), "-w", "pets", "-o", str(out)])
    assert result.exit_code == 0, result.output
    assert "Generated 3 actions from 4 endpoints" in result.output
    actions = json.loads(out.read_text())
    assert sorted(a["slug"] for a in actions) == ["createpet", "getpet", "listpets"]


def test_actions_rejects_unreadable_document(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    result = runner.invoke(app, ["actions", str(bad)])
    assert result.exit_code == 1
    assert "Could not read API document" in result.output


def test_detect(tmp_path):
    doc_path = tmp_path / "petstore.json"
    runner.invoke(app, ["parse", str(FIXTURES / "petstore.yaml"), "-o", str(doc_path)])
    result = runner.invoke(app, ["detect", str(doc_path), str(FIXTURES / "supabase_docs.md")])
    assert result.exit_code == 0, result.output
    assert "Detected PostgREST" in result.output


def test_scrape_spec_url(tmp_path):
    with runner.isolated_filesystem(temp_dir=tmp_path):
        with patch("api_doc_scraper.jobs.orchestrator.HttpFetcher", SpecFetcher):
            result = runner.invoke(app, ["scrape", SPEC_URL, "-o", "out/result.json", "-a", "out/actions.json"])
        assert result.exit_code == 0, result.output
        doc = ApiDocument.model_validate_json(Path("out/result.json").read_text())
        assert doc.metadata.source_urls == [SPEC_URL]
        assert len(json.loads(Path("out/actions.json").read_text())) == 3
        assert Path(".api-doc-cache/jobs").is_dir()


def test_scrape_rejects_unknown_mode():
    result = runner.invoke(app, ["scrape", SPEC_URL, "--mode", "fast"])
    assert result.exit_code == 1
    assert "Invalid mode" in result.output


def test_init_config_round_trips(tmp_path):
    path = tmp_path / "scraper.toml"
    result = runner.invoke(app, ["init-config", str(path), "--full"])
    assert result.exit_code == 0, result.output
    assert "[crawl]" in path.read_text()

    result = runner.invoke(app, ["--config", str(path), "list-templates"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["init-config", str(path)])
    assert result.exit_code == 1
    assert "already exists" in result.output
