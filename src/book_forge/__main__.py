"""CLI entry point for Book Forge."""

import asyncio
import logging

import typer

from .api.main import app
from .config import get_config
from .factory import get_services
from .models import AIError, BookMetadata, PipelineError, RevisionDirective
from .originality import ScanPhases

cli = typer.Typer()


@cli.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    """Multi-provider book production pipeline."""
    level = "DEBUG" if verbose else get_config().log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _print_run_summary(result: dict) -> None:
    if result["success"]:
        typer.echo(f"✅ Run completed for {result['book_id']}")
    else:
        typer.echo(f"❌ Run finished with failures for {result['book_id']}")
    typer.echo(f"📖 Completed chapters: {len(result['completed'])}")
    if result["failed"]:
        typer.echo(f"⚠️  Failed chapters: {', '.join(result['failed'])}")
    typer.echo(f"💰 Cost: ${result['cost']:.4f}")
    typer.echo(f"⏱️  Runtime: {result['runtime_sec']:.1f} seconds")


@cli.command()
def new(
    title: str = typer.Argument(..., help="Book title"),
    description: str = typer.Option("", "--description", "-d", help="Premise of the book"),
    tone: str = typer.Option("Creative", "--tone", "-t", help="Narrative tone"),
    length: str = typer.Option("standard", "--length", "-l", help="short, standard or long"),
    language: str = typer.Option("English", "--language", help="Output language"),
):
    """Outline a new book and make it the active book."""
    services = get_services()
    metadata = BookMetadata(
        title=title, description=description, tone=tone, target_length=length, language=language
    )
    try:
        book = asyncio.run(services.runner.create_book(metadata))
    except AIError as e:
        typer.echo(f"❌ Outline failed: {e.message}")
        raise typer.Exit(code=1)
    except PipelineError as e:
        typer.echo(f"❌ Outline failed: {e}")
        raise typer.Exit(code=1)

    typer.echo(f"✅ Created '{book.metadata.title}'")
    typer.echo(f"📚 Book ID: {book.id}")
    for i, chapter in enumerate(book.chapters, 1):
        typer.echo(f"   {i}. {chapter.title}")


async def _resolve_book_id(book_id: str | None) -> str:
    if book_id:
        return book_id
    active = await get_services().store.load_active_id()
    if active is None:
        typer.echo("❌ No book ID given and no active book")
        raise typer.Exit(code=1)
    return active


@cli.command()
def produce(
    book_id: str | None = typer.Argument(None, help="Book ID (defaults to the active book)"),
    chapter: str | None = typer.Option(None, "--chapter", "-c", help="Single chapter ID"),
):
    """Write every chapter that is not completed."""
    services = get_services()

    async def _run():
        resolved = await _resolve_book_id(book_id)
        if chapter:
            return await services.runner.produce_chapter(resolved, chapter)
        return await services.runner.produce_book(resolved)

    try:
        result = asyncio.run(_run())
    except PipelineError as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(code=1)
    _print_run_summary(result)


@cli.command()
def revise(
    book_id: str | None = typer.Argument(None, help="Book ID (defaults to the active book)"),
    instruction: str = typer.Option("", "--instruction", "-i", help="Free-form revision instruction"),
    strategy: list[str] = typer.Option([], "--strategy", "-s", help="Revision strategy (repeatable)"),
    expansion: float = typer.Option(1.0, "--expansion", "-e", help="Target length multiplier"),
    chapter: str | None = typer.Option(None, "--chapter", "-c", help="Single chapter ID"),
):
    """Revise written chapters with a directive."""
    services = get_services()
    directive = RevisionDirective(
        strategies=strategy, instruction=instruction, expansion_factor=expansion
    )

    async def _run():
        resolved = await _resolve_book_id(book_id)
        if chapter:
            return await services.runner.revise_chapter(resolved, chapter, directive)
        return await services.runner.revise_book(resolved, directive)

    try:
        result = asyncio.run(_run())
    except PipelineError as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(code=1)
    _print_run_summary(result)


@cli.command()
def scan(
    book_id: str | None = typer.Argument(None, help="Book ID (defaults to the active book)"),
    external: bool = typer.Option(True, "--external/--no-external", help="Search Google Books"),
    ai_detection: bool = typer.Option(False, "--ai-detection", help="Run AI-signature heuristics"),
):
    """Run an originality scan and track issues."""
    services = get_services()
    phases = ScanPhases(internal=True, external=external, ai_detection=ai_detection)

    async def _run():
        resolved = await _resolve_book_id(book_id)
        async with services.runner.lock(resolved):
            book = await services.store.load_book(resolved)
            if book is None:
                typer.echo(f"❌ Book {resolved} not found")
                raise typer.Exit(code=1)
            updated, tracking = await services.originality.scan_book_with_tracking(book, phases)
            await services.store.save_book(updated)
        return tracking

    tracking = asyncio.run(_run())
    result = tracking.scan_result
    status_icon = {"safe": "✅", "review-required": "⚠️ ", "unsafe": "❌"}.get(result.status, "•")
    typer.echo(f"{status_icon} Originality score: {result.overall_score}/100 ({result.status})")
    typer.echo(
        f"   internal {result.internal_score} · external {result.external_score} · "
        f"ai {result.ai_detection_score}"
    )
    typer.echo(
        f"📋 Issues: {len(tracking.new_issues)} new, {len(tracking.persistent_issues)} persistent, "
        f"{len(tracking.resolved_issues)} resolved"
    )
    for issue in tracking.new_issues:
        typer.echo(f"   • [{issue.severity}] {issue.chapter_title}: {issue.details}")


@cli.command()
def costs(book_id: str | None = typer.Argument(None, help="Limit the report to one book")):
    """Show the cost report."""
    services = get_services()
    report = services.ledger.book_breakdown(book_id) if book_id else services.ledger.detailed_analytics()
    typer.echo(f"💰 Total cost: ${report['total_cost']:.4f} over {report['count']} calls")
    for agent, stats in report["by_agent"].items():
        typer.echo(f"   {agent}: ${stats['cost']:.4f} ({stats['count']} calls)")
    if report["bottlenecks"]:
        typer.echo("🐢 Retry hotspots:")
        for item in report["bottlenecks"]:
            typer.echo(f"   {item['chapter_id']}: {item['retries']} retries, ${item['cost']:.4f}")


@cli.command()
def models(provider: str | None = typer.Option(None, "--provider", "-p", help="Filter by provider")):
    """List catalog models and credential status."""
    services = get_services()
    catalog = services.catalog
    entries = catalog.models_for_provider(provider) if provider else list(catalog.models.values())

    for model in entries:
        key_icon = "🔑" if services.credentials.has(model.provider) else "  "
        typer.echo(
            f"{key_icon} {model.id:<24} {model.provider:<10} {model.tier:<9} "
            f"${model.input_cost_per_million_tokens:.2f}/${model.output_cost_per_million_tokens:.2f} per 1M"
        )


@cli.command()
def keys(
    provider: str | None = typer.Argument(None, help="Provider to set a key for"),
    key: str | None = typer.Argument(None, help="API key; omit to clear"),
):
    """Show credentialed providers or set a provider key."""
    services = get_services()
    if provider:
        services.credentials.set(provider, key)
        typer.echo(f"🔑 {'Stored' if key else 'Cleared'} key for {provider}")
    else:
        services.orchestrator.refresh_credentials()

    providers = services.credentials.providers()
    typer.echo(f"🔑 Credentialed providers: {', '.join(providers) if providers else 'none'}")


@cli.command()
def api(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload"),
):
    """Start the FastAPI server."""
    import uvicorn

    typer.echo("🚀 Starting Book Forge API server")
    typer.echo(f"🌐 http://{host}:{port}")
    typer.echo(f"📚 Docs: http://{host}:{port}/docs")

    uvicorn.run(app, host=host, port=port, reload=reload)


if __name__ == "__main__":
    cli()
