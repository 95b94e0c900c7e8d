"""Command line interface for newsrag."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from newsrag.config import AppConfig
from newsrag.errors import NewsRagError
from newsrag.ingestion.articles import ingest as ingest_articles
from newsrag.ingestion.articles import load_articles, sample_articles
from newsrag.rag.factory import build_index, build_orchestrator
from newsrag.session.store import SessionStore
from newsrag.store.kv import connect_store

console = Console()
app = typer.Typer(help="newsrag - chat with a news corpus")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _config(index_path: Optional[Path], redis_url: Optional[str] = None) -> AppConfig:
    config = AppConfig.from_env()
    if index_path is not None:
        config.index_path = index_path
    if redis_url is not None:
        config.redis_url = redis_url
    return config


@app.command()
def ingest(
    articles: Optional[Path] = typer.Argument(
        None, help="JSON file with a list of articles. Uses the built-in sample corpus when omitted."
    ),
    index_path: Path = typer.Option(None, "--index", help="Vector index snapshot path"),
    append: bool = typer.Option(False, "--append", help="Keep existing chunks instead of replacing them"),
    batch_size: int = typer.Option(10, help="Chunks embedded per batch"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Chunk, embed and index news articles."""
    _setup_logging(verbose)
    config = _config(index_path)

    if articles is not None:
        if not articles.exists():
            raise typer.BadParameter(f"Article file not found: {articles}")
        items = load_articles(articles)
    else:
        console.print("[yellow]No article file given, using the sample corpus.[/yellow]")
        items = sample_articles()

    if not items:
        console.print("[yellow]No articles to ingest.[/yellow]")
        return

    index = build_index(config, Path.cwd())
    console.print(f"Indexing into [bold]{index.path}[/bold]...")
    stats = ingest_articles(
        index,
        items,
        batch_size=batch_size,
        replace=not append,
        max_chars=config.chunk_chars,
        overlap=config.overlap,
    )
    console.print(
        f"Articles: {stats.articles}, chunks: {stats.chunks}, "
        f"sources: {', '.join(stats.sources)}"
    )


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    index_path: Path = typer.Option(None, "--index", help="Vector index snapshot path"),
    top_k: int = typer.Option(5, help="Number of results to display"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Run a similarity search against the index."""
    _setup_logging(verbose)
    index = build_index(_config(index_path), Path.cwd())

    results = index.search(query, top_k)
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Title")
    table.add_column("Source")
    table.add_column("Snippet")

    for result in results:
        snippet = result.text.replace("\n", " ")
        table.add_row(
            f"{result.score:.4f}",
            str(result.metadata.get("title", "")),
            str(result.metadata.get("source", "")),
            snippet[:180],
        )

    console.print(table)


@app.command()
def chat(
    index_path: Path = typer.Option(None, "--index", help="Vector index snapshot path"),
    redis_url: str = typer.Option(None, "--redis-url", help="Redis URL, or memory:// for the in-process store"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Interactive chat in the terminal with streamed answers."""
    _setup_logging(verbose)
    orchestrator = build_orchestrator(_config(index_path, redis_url), Path.cwd())
    session = orchestrator.create_session()
    console.print(
        f"Session [bold]{session.id}[/bold] "
        f"({orchestrator.indexed_document_count()} chunks indexed). Empty line to quit."
    )

    while True:
        question = console.input("[bold cyan]you>[/bold cyan] ").strip()
        if not question:
            break
        console.print("[bold green]bot>[/bold green] ", end="")
        try:
            result = orchestrator.process_query_stream(
                session.id,
                question,
                lambda delta: console.print(delta, end="", markup=False, highlight=False, soft_wrap=True),
            )
        except NewsRagError as exc:
            console.print(f"\n[red]{exc.message}[/red]")
            continue
        console.print()
        for idx, source in enumerate(result.sources, start=1):
            console.print(
                f"  [dim][{idx}] {source.metadata.get('title', '')} ({source.score:.4f})[/dim]"
            )


@app.command("clear-index")
def clear_index(
    index_path: Path = typer.Option(None, "--index", help="Vector index snapshot path"),
) -> None:
    """Remove every chunk from the index."""
    index = build_index(_config(index_path), Path.cwd())
    removed = index.size()
    index.clear()
    console.print(f"Removed {removed} chunks.")


@app.command()
def sessions(
    redis_url: str = typer.Option(None, "--redis-url", help="Redis URL"),
) -> None:
    """List live session ids."""
    config = _config(None, redis_url)
    store = connect_store(config.redis_url, timeout=config.store_connect_timeout)
    try:
        ids = SessionStore(store, ttl_seconds=config.session_ttl).list_sessions()
    finally:
        store.close()

    if not ids:
        console.print("[yellow]No active sessions.[/yellow]")
        return
    for session_id in ids:
        console.print(session_id)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(3001, help="Server port"),
) -> None:
    """Start the HTTP API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover - uvicorn is a hard dependency
        raise typer.BadParameter("uvicorn is not installed") from exc

    from newsrag.web.app import app as web_app

    console.print(f"Starting newsrag API on http://{host}:{port}")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
