"""Archive path building utilities.

This module provides the single point of logic for paths inside the archive.
Every part generator and the packager build paths through these helpers, so
manifest hrefs, navigation links, and written entries cannot drift apart.

Path Invariant:
    - Chapters: chapters/{chapter_id}.xhtml
    - Assets: chapters/{asset_id}.{ext} (chapters/{asset_id} when ext is empty)
    - Chapter bodies reference assets by bare file name, relative to chapters/

Rules:
    - No leading slash
    - Forward slashes only
"""

MIMETYPE_PATH = "mimetype"
MIMETYPE = "application/epub+zip"
CONTAINER_PATH = "META-INF/container.xml"
OPF_PATH = "content.opf"
TOC_PATH = "toc.xhtml"
CSS_PATH = "Styles/publication.css"
CHAPTERS_DIR = "chapters"


def asset_file_name(asset_id: str, ext: str) -> str:
    """Get the chapter-relative file name for an asset.

    Args:
        asset_id: Asset id.
        ext: Normalized extension without leading dot (may be empty).

    Returns:
        "{asset_id}.{ext}", or the bare id when ext is empty.
    """
    if not ext:
        return asset_id
    return f"{asset_id}.{ext}"


def build_asset_path(asset_id: str, ext: str) -> str:
    """Get the archive path for an asset."""
    return f"{CHAPTERS_DIR}/{asset_file_name(asset_id, ext)}"


def build_chapter_path(chapter_id: str) -> str:
    """Get the archive path for a chapter document."""
    return f"{CHAPTERS_DIR}/{chapter_id}.xhtml"


def stylesheet_href_from_chapter() -> str:
    """Get the stylesheet href as seen from a chapter document."""
    return f"../{CSS_PATH}"
