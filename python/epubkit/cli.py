"""Command line interface.

Usage:
    epubkit build chapter1.html chapter2.html -o book.epub --title "My Book"
"""

import asyncio
from pathlib import Path
from typing import Annotated, Optional
from urllib.parse import urljoin

import typer
from lxml import etree
from lxml.html import document_fromstring
from rich.console import Console

from epubkit.config import get_settings
from epubkit.errors import EpubError
from epubkit.generator import EpubGenerator
from epubkit.logging import configure_logging
from epubkit.services.image_fetch import HttpImageProcessor
from epubkit.services.xhtml import strip_xml_declaration

app = typer.Typer(
    name="epubkit",
    help="Assemble EPUB 3 archives from HTML chapters.",
    add_completion=False,
)

console = Console(stderr=True)


@app.callback()
def main() -> None:
    """Assemble EPUB 3 archives from HTML chapters."""


def chapter_title(html: str, fallback: str) -> str:
    """Title of an HTML document: <title>, else the first <h1>, else fallback."""
    html = strip_xml_declaration(html)
    if not html.strip():
        return fallback
    try:
        doc = document_fromstring(html)
    except etree.ParserError:
        return fallback

    for path in ("//title", "//h1"):
        for element in doc.xpath(path):
            text = " ".join(element.text_content().split())
            if text:
                return text
    return fallback


def chapter_url(path: Path, base_url: str | None) -> str:
    """URL that relative references in a chapter file resolve against."""
    if base_url:
        return urljoin(base_url, path.name)
    return path.resolve().as_uri()


def read_utf8(path: Path) -> str:
    """Read a text input file, exiting with status 1 if it is not UTF-8."""
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        console.print(f"[red]Not valid UTF-8: {path} ({e.reason} at byte {e.start})[/]")
        raise typer.Exit(1) from e


async def _assemble(
    chapters: list[Path],
    *,
    title: str,
    author: str | None,
    base_url: str | None,
    fetch_images: bool,
    debug: bool | None,
    stylesheet: str | None,
) -> tuple[bytes, int, int]:
    processor = HttpImageProcessor() if fetch_images else None
    try:
        generator = EpubGenerator(
            title,
            author,
            debug_mode=debug,
            process_image=processor,
            stylesheet=stylesheet,
        )
        for path in chapters:
            html = read_utf8(path)
            await generator.add_chapter(
                chapter_title(html, path.stem),
                chapter_url(path, base_url),
                html,
            )
        return generator.build(), len(generator.chapters), len(generator.assets)
    finally:
        if processor is not None:
            await processor.aclose()


@app.command()
def build(
    chapters: Annotated[
        list[Path],
        typer.Argument(
            help="HTML chapter files, in reading order.",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Path of the .epub file to write."),
    ],
    title: Annotated[str, typer.Option("--title", "-t", help="Book title.")],
    author: Annotated[
        Optional[str],
        typer.Option("--author", "-a", help="Book author (defaults to the publisher)."),
    ] = None,
    base_url: Annotated[
        Optional[str],
        typer.Option(
            "--base-url",
            help="URL the chapter files were saved from; relative image references resolve against it.",
        ),
    ] = None,
    fetch_images: Annotated[
        bool,
        typer.Option("--fetch-images", help="Download http(s) images into the archive."),
    ] = False,
    debug: Annotated[
        Optional[bool],
        typer.Option("--debug/--no-debug", help="Omit the mimetype entry."),
    ] = None,
    stylesheet: Annotated[
        Optional[Path],
        typer.Option(
            "--stylesheet",
            help="CSS file written at the archive stylesheet path.",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    log_json: Annotated[
        Optional[bool],
        typer.Option("--log-json/--no-log-json", help="Render logs as JSON."),
    ] = None,
) -> None:
    """Build an EPUB archive from HTML chapter files."""
    settings = get_settings()
    configure_logging(json_format=settings.log_json if log_json is None else log_json)

    css = read_utf8(stylesheet) if stylesheet is not None else None

    try:
        data, chapter_count, asset_count = asyncio.run(
            _assemble(
                chapters,
                title=title,
                author=author,
                base_url=base_url,
                fetch_images=fetch_images,
                debug=debug,
                stylesheet=css,
            )
        )
    except EpubError as e:
        console.print(f"[red]{e.code.value}: {e.message}[/]")
        raise typer.Exit(1) from e

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(data)
    console.print(
        f"[green]Wrote {output}[/] ({chapter_count} chapters, {asset_count} images, "
        f"{len(data)} bytes)"
    )


if __name__ == "__main__":
    app()
