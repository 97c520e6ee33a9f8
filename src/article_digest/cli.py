"""Command-line entry points for the article digest pipeline."""

import asyncio
import base64
import json
import mimetypes
import os
from pathlib import Path
from typing import Optional

import typer
from rich import print as rprint

from .config import configure_logging
from .errors import ArticleDigestError, ProvidersUnavailableError, RateLimitError
from .models import ArticleDocument
from .service import create_illustration, extract_article, generate_text, require_body
from .tasks import get_task

IMAGE_SUFFIXES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
}

app = typer.Typer(
    help="Extract an article from a URL and derive translations, summaries, posts or images."
)


def _fail(exc: Exception) -> None:
    if isinstance(exc, RateLimitError):
        rprint(f"[yellow]Rate limited; try again in {exc.retry_after} seconds.[/yellow]")
    elif isinstance(exc, ProvidersUnavailableError) and exc.retry_after is not None:
        rprint(f"[yellow]Model is loading; try again in {exc.retry_after} seconds.[/yellow]")
    else:
        rprint(f"[red]{exc}[/red]")
    raise typer.Exit(code=1)


def _write_output(out_path: Path, text: str, json_payload: dict) -> None:
    suffix = out_path.suffix.lower()
    if suffix == ".json":
        out_path.write_text(
            json.dumps(json_payload, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
    else:
        out_path.write_text(text, encoding="utf-8")


def _decode_data_uri(data_uri: str) -> bytes:
    _, _, encoded = data_uri.partition(",")
    return base64.b64decode(encoded)


def _image_suffix(data_uri: str) -> str:
    """File extension for a ``data:<mime>;base64,...`` URI; PNG when unknown."""
    mime_type = data_uri.partition(":")[2].partition(";")[0].strip().lower()
    return IMAGE_SUFFIXES.get(mime_type) or mimetypes.guess_extension(mime_type) or ".png"


def _load_document(url: str) -> ArticleDocument:
    try:
        document = asyncio.run(extract_article(url))
        require_body(document.body)
    except ArticleDigestError as exc:
        _fail(exc)
    return document


@app.command("extract")
def extract_command(
    url: str = typer.Argument(..., help="Article URL."),
    as_json: bool = typer.Option(False, "--json", help="Print the raw JSON payload."),
):
    """Fetch a page and print its title, date and body."""
    try:
        document = asyncio.run(extract_article(url))
    except ArticleDigestError as exc:
        _fail(exc)
    if as_json:
        print(json.dumps(document.to_payload(), ensure_ascii=False, indent=2))
        return
    rprint(f"[bold]{document.title or '(no title)'}[/bold]")
    if document.published_at:
        rprint(f"[cyan]{document.published_at}[/cyan]")
    rprint(document.body or "[yellow](no content extracted)[/yellow]")


@app.command("generate")
def generate_command(
    kind: str = typer.Argument(
        ..., help="Task: translate, summarize, thesis or social-post (alias telegram)."
    ),
    url: str = typer.Argument(..., help="Article URL."),
    out: Optional[Path] = typer.Option(
        None,
        "--out",
        "-o",
        help="Optional path to write output (.txt/.md or .json). Defaults to stdout.",
    ),
):
    """Extract the article at URL and run one text task over it."""
    try:
        task = get_task(kind)
    except KeyError:
        raise typer.BadParameter(f"Unknown task: {kind}") from None

    document = _load_document(url)
    context = {
        "title": document.title,
        "published_at": document.published_at,
        "source_url": url,
    }
    try:
        text = asyncio.run(generate_text(task, document.body, context))
    except ArticleDigestError as exc:
        _fail(exc)

    if out:
        _write_output(out, text, {task.field_name: text, "source": url})
        rprint(f"[cyan]Wrote output to {out}[/cyan]")
    else:
        rprint(text)


@app.command("illustrate")
def illustrate_command(
    url: str = typer.Argument(..., help="Article URL."),
    out: Optional[Path] = typer.Option(
        None,
        "--out",
        "-o",
        help="Where to write the image. Defaults to illustration.<ext> for the image type.",
    ),
):
    """Extract the article, author an image prompt and render it to a file."""
    document = _load_document(url)
    try:
        result = asyncio.run(create_illustration(document.body))
    except ArticleDigestError as exc:
        _fail(exc)
    if out is None:
        out = Path("illustration" + _image_suffix(result.image))
    out.write_bytes(_decode_data_uri(result.image))
    rprint(f"[green]Prompt:[/green] {result.prompt}")
    rprint(f"[cyan]Wrote image to {out}[/cyan]")


@app.command("serve")
def serve_command(
    host: str = typer.Option(os.getenv("DIGEST_HOST", "0.0.0.0"), help="Bind address."),
    port: int = typer.Option(int(os.getenv("DIGEST_PORT", "8000")), help="Bind port."),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes."),
):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run("article_digest.server:app", host=host, port=port, reload=reload)


def main():
    configure_logging()
    app()


if __name__ == "__main__":
    main()
