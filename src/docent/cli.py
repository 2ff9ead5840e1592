"""Docent CLI: run the kiosk server and inspect the Q&A corpus."""

from __future__ import annotations

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from docent.config import get_settings
from docent.models import CorpusError, QAEntry, load_corpus
from docent.resolver import AnswerResolver, ReplyKind

console = Console()

_KIND_STYLE = {
    ReplyKind.GREETING: "cyan",
    ReplyKind.SMALL_TALK: "cyan",
    ReplyKind.MATCH: "green",
    ReplyKind.FALLBACK: "yellow",
}


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """Docent: exhibition kiosk greeter and voice Q&A."""
    level = logging.DEBUG if verbose else get_settings().log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_entries(corpus: Path | None) -> list[QAEntry]:
    path = corpus or get_settings().corpus_path
    try:
        entries = load_corpus(path)
    except CorpusError as exc:
        raise click.ClickException(str(exc)) from exc
    if not entries:
        console.print(f"[yellow]Corpus {path} is empty or missing.[/]")
    return entries


# ======================================================================
# SERVE: kiosk server
# ======================================================================
@main.command()
@click.option("--host", default=None, help="Override host")
@click.option("--port", "-p", default=None, type=int, help="Override port")
@click.option(
    "--detector",
    type=click.Choice(["client", "yolo"]),
    default=None,
    help="Run detection in the kiosk browser or on a local camera",
)
def serve(host: str | None, port: int | None, detector: str | None) -> None:
    """Start the kiosk server."""
    import uvicorn

    from docent.interface.ws_server import create_kiosk_app

    settings = get_settings()
    if detector:
        settings = settings.model_copy(update={"detector_backend": detector})
    app = create_kiosk_app(settings)
    console.print(
        f"[bold cyan]Kiosk[/] on http://{host or settings.host}:{port or settings.port} "
        f"(detector: {settings.detector_backend})"
    )
    uvicorn.run(
        app,
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


# ======================================================================
# ASK: try a question against the corpus
# ======================================================================
@main.command()
@click.argument("query")
@click.option("--corpus", type=click.Path(path_type=Path), default=None, help="Corpus JSON file")
@click.option("--threshold", type=float, default=None, help="Maximum keyword distance")
def ask(query: str, corpus: Path | None, threshold: float | None) -> None:
    """Resolve QUERY the way the kiosk would answer it aloud."""
    settings = get_settings()
    resolver = AnswerResolver(
        _load_entries(corpus),
        threshold=settings.fuzzy_threshold if threshold is None else threshold,
    )
    result = resolver.resolve(query)

    subtitle = result.kind.value
    if result.kind == ReplyKind.MATCH:
        subtitle += f", keyword '{result.keyword}', distance {result.score:.2f}"
    console.print(Panel(
        result.answer,
        title=f"[bold]{query}[/]",
        subtitle=subtitle,
        border_style=_KIND_STYLE[result.kind],
    ))


# ======================================================================
# CORPUS: list entries
# ======================================================================
@main.command()
@click.option("--corpus", type=click.Path(path_type=Path), default=None, help="Corpus JSON file")
def corpus(corpus: Path | None) -> None:
    """List the Q&A entries the kiosk can answer."""
    entries = _load_entries(corpus)
    if not entries:
        return

    table = Table(title=f"{len(entries)} Q&A entries")
    table.add_column("#", style="dim", width=3)
    table.add_column("Keywords", style="cyan")
    table.add_column("Answer")
    for i, entry in enumerate(entries, 1):
        table.add_row(str(i), ", ".join(entry.keywords), entry.answer[:80])
    console.print(table)


if __name__ == "__main__":
    main()
