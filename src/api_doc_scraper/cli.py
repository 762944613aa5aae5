"""Command-line interface for api-doc-scraper."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from api_doc_scraper import __version__
from api_doc_scraper.actions import GenerationOptions, generate_actions, summarize_actions
from api_doc_scraper.config import AppConfig, CrawlMode
from api_doc_scraper.errors import ExtractionError, JobError, OpenApiParseError, ScrapeError
from api_doc_scraper.jobs import FileCorpusCache, InMemoryJobStore, JobOrchestrator, JobStatus
from api_doc_scraper.llm import LlmClient
from api_doc_scraper.models import ApiDocument
from api_doc_scraper.parsers import AiExtractor, is_structured_spec, parse_spec
from api_doc_scraper.templates import TemplateRegistry, detect_template

app = typer.Typer(
    name="api-doc-scraper",
    help="Turn API documentation sites into structured API descriptions and actions.",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

console = Console()

LOCAL_TENANT = "local"

_state: dict[str, AppConfig] = {}


def version_callback(value: bool):
    if value:
        console.print(f"api-doc-scraper version {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=verbose, show_path=False)],
        force=True,
    )
    # litellm and httpx are chatty at INFO
    for name in ("httpx", "httpcore", "LiteLLM"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _config() -> AppConfig:
    return _state.get("config") or AppConfig()


def _load_document(path: Path) -> ApiDocument:
    try:
        return ApiDocument.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        console.print(f"[red]Could not read API document from {path}: {e}[/red]")
        raise typer.Exit(1)


def _print_document(doc: ApiDocument) -> None:
    console.print(f"[bold]{doc.name}[/bold] {doc.version or ''}".rstrip())
    console.print(f"  Base URL:   {doc.base_url}")
    console.print(f"  Endpoints:  [green]{len(doc.endpoints)}[/green]")
    if doc.auth_methods:
        types = ", ".join(a.type.value for a in doc.auth_methods)
        console.print(f"  Auth:       {types}")
    console.print(f"  Confidence: {doc.metadata.ai_confidence:.0%}")
    if doc.metadata.detected_template:
        t = doc.metadata.detected_template
        console.print(f"  Template:   {t.template_name} ({t.confidence:.0%})")
    for warning in doc.metadata.warnings:
        console.print(f"  [yellow]! {warning}[/yellow]")


def _endpoint_table(doc: ApiDocument, limit: int = 50) -> Table:
    table = Table(title="Endpoints")
    table.add_column("Method", style="cyan")
    table.add_column("Path")
    table.add_column("Name")
    for endpoint in doc.endpoints[:limit]:
        table.add_row(endpoint.method.value, endpoint.path, endpoint.name)
    return table


def _write_json(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload, encoding="utf-8")
    console.print(f"[green]Wrote {path}[/green]")


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="TOML configuration file",
        exists=True,
        dir_okay=False,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
):
    """API documentation acquisition and extraction."""
    config = AppConfig.from_toml(config_path) if config_path else AppConfig()
    if verbose:
        config.verbose = True
    _state["config"] = config
    _configure_logging(config.verbose)


@app.command()
def scrape(
    url: str = typer.Argument(..., help="Documentation URL (root page or spec file)"),
    wishlist: Optional[list[str]] = typer.Option(
        None,
        "--wishlist",
        "-w",
        help="Capability to prioritize, e.g. 'list users' (repeatable)",
    ),
    specific_urls: Optional[list[str]] = typer.Option(
        None,
        "--url",
        "-u",
        help="Fetch exactly these pages instead of crawling (repeatable)",
    ),
    max_pages: Optional[int] = typer.Option(
        None,
        "--max-pages",
        help="Maximum pages to fetch",
    ),
    mode: Optional[str] = typer.Option(
        None,
        "--mode",
        "-m",
        help="Crawl mode: 'single', 'intelligent', or 'bfs'",
    ),
    output: Path = typer.Option(
        Path("./result.json"),
        "--output",
        "-o",
        help="Where to write the extracted API document",
    ),
    actions_output: Optional[Path] = typer.Option(
        None,
        "--actions-output",
        "-a",
        help="Also write the generated actions here",
    ),
):
    """
    Crawl a documentation site and extract a structured API document.

    Examples:

        api-doc-scraper scrape https://docs.example.com

        api-doc-scraper scrape https://petstore3.swagger.io/api/v3/openapi.json -m single

        api-doc-scraper scrape https://docs.example.com -w "list users" -w "create invoice"
    """
    config = _config()
    if mode:
        try:
            config.crawl.mode = CrawlMode(mode)
        except ValueError:
            console.print(f"[red]Invalid mode: {mode}. Use 'single', 'intelligent', or 'bfs'.[/red]")
            raise typer.Exit(1)
    if max_pages:
        config.crawl.max_pages = max_pages

    status = console.status("Starting...")

    def on_progress(job_id: str, stage: str, message: str) -> None:
        status.update(f"[bold blue]{stage.title()}[/bold blue] {message}")
        if config.verbose:
            console.print(f"[dim]{stage.lower()}: {message}[/dim]")

    orchestrator = JobOrchestrator(
        store=InMemoryJobStore(),
        corpus_cache=FileCorpusCache(config.job.cache_dir),
        llm=LlmClient.from_config(config.llm),
        config=config,
        on_progress=on_progress,
    )

    async def run():
        created = await orchestrator.create_job(
            LOCAL_TENANT,
            documentation_url=url,
            specific_urls=specific_urls,
            wishlist=wishlist,
        )
        return await orchestrator.process_job(created.job_id)

    try:
        with status:
            job = asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Scrape cancelled.[/yellow]")
        raise typer.Exit(130)
    except (ScrapeError, OpenApiParseError, ExtractionError, JobError) as e:
        console.print(f"[red]Error: {e}[/red]")
        if config.verbose:
            console.print_exception()
        raise typer.Exit(1)

    if job.status != JobStatus.COMPLETED or job.result is None:
        message = job.error.message if job.error else "unknown failure"
        console.print(f"[red]Job failed: {message}[/red]")
        raise typer.Exit(1)

    _print_document(job.result)
    console.print(f"  Actions:    [green]{len(job.actions)}[/green]")
    _write_json(output, job.result.to_json())
    if actions_output:
        _write_json(actions_output, json.dumps([a.to_dict() for a in job.actions], indent=2))


@app.command()
def parse(
    file: Path = typer.Argument(..., help="OpenAPI/Swagger spec or documentation text", exists=True, dir_okay=False),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Where to write the extracted API document",
    ),
    source_url: Optional[str] = typer.Option(
        None,
        "--source-url",
        help="URL the file was downloaded from, used for relative server URLs",
    ),
):
    """Parse a local spec file, or extract from documentation text with the LLM."""
    config = _config()
    content = file.read_text(encoding="utf-8")

    try:
        if is_structured_spec(content):
            result = parse_spec(content, source_url)
            doc = result.doc
            console.print(f"[blue]Parsed OpenAPI {result.openapi_version} in {result.duration_ms}ms[/blue]")
        else:
            extractor = AiExtractor(LlmClient.from_config(config.llm), config.extraction)
            with console.status("Extracting with AI...") as status:
                extraction = asyncio.run(extractor.extract(
                    content,
                    [source_url] if source_url else [],
                    on_progress=lambda message: status.update(message),
                ))
            doc = extraction.doc
    except (OpenApiParseError, ExtractionError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    _print_document(doc)
    console.print(_endpoint_table(doc))
    if output:
        _write_json(output, doc.to_json())


@app.command()
def actions(
    result: Path = typer.Argument(..., help="API document JSON written by scrape or parse", exists=True, dir_okay=False),
    wishlist: Optional[list[str]] = typer.Option(
        None,
        "--wishlist",
        "-w",
        help="Capability to rank first (repeatable)",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Where to write the action definitions",
    ),
):
    """Generate action definitions from a saved API document."""
    config = _config()
    doc = _load_document(result)
    options = GenerationOptions.from_config(
        config.generation,
        wishlist=wishlist or [],
        source_urls=doc.metadata.source_urls,
    )
    generation = generate_actions(doc, options)

    table = Table(title="Actions")
    table.add_column("Slug", style="cyan")
    table.add_column("Method")
    table.add_column("Endpoint")
    table.add_column("Paginated", justify="center")
    for action in generation.actions:
        table.add_row(
            action.slug,
            action.method.value,
            action.endpoint_template,
            action.pagination.strategy.value if action.pagination else "",
        )
    console.print(table)
    console.print(summarize_actions(generation))
    for warning in generation.warnings:
        console.print(f"[yellow]! {warning}[/yellow]")

    if output:
        _write_json(output, json.dumps([a.to_dict() for a in generation.actions], indent=2))


@app.command()
def detect(
    result: Path = typer.Argument(..., help="API document JSON", exists=True, dir_okay=False),
    corpus: Path = typer.Argument(..., help="Raw documentation text the document came from", exists=True, dir_okay=False),
):
    """Check whether a document belongs to a known API family."""
    doc = _load_document(result)
    content = corpus.read_text(encoding="utf-8")
    detection = detect_template(doc, content, doc.metadata.source_urls)

    if not detection.detected or detection.template is None:
        console.print(f"No template detected (best confidence {detection.confidence:.0%})")
        return

    console.print(
        f"[green]Detected {detection.template.name}[/green] "
        f"({detection.template.id}, confidence {detection.confidence:.0%})"
    )
    for signal in detection.signals:
        console.print(f"  - {signal}")
    if detection.suggested_base_url:
        console.print(f"  Suggested base URL: {detection.suggested_base_url}")


@app.command("list-templates")
def list_templates():
    """List curated API family templates."""
    table = Table(title="Available Templates")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Auth")
    table.add_column("Actions", justify="right")

    for template in TemplateRegistry.list_templates():
        table.add_row(
            template.id,
            template.name,
            template.suggested_auth_type.value,
            str(len(template.actions)),
        )

    console.print(table)


@app.command("init-config")
def init_config(
    output: Path = typer.Argument(Path("api-doc-scraper.toml"), help="Where to write the file"),
    full: bool = typer.Option(False, "--full", help="Include every setting, not just overrides"),
):
    """Write the active configuration as a TOML file."""
    if output.exists():
        console.print(f"[red]{output} already exists[/red]")
        raise typer.Exit(1)
    output.write_text(_config().to_toml(include_defaults=full), encoding="utf-8")
    console.print(f"[green]Wrote {output}[/green]")


if __name__ == "__main__":
    app()
