"""Archive packaging.

Writes every generated part and every asset of a frozen snapshot into an
ArchiveWriter and finalizes it. No validation happens here beyond what the
part generators do; the snapshot is trusted.

Layout:
    mimetype                    (omitted in debug mode)
    META-INF/container.xml
    content.opf
    toc.xhtml
    chapters/{chapter_id}.xhtml
    chapters/{asset_id}.{ext}
    Styles/publication.css      (only when stylesheet content is supplied)
"""

from epubkit.archive import ArchiveWriter
from epubkit.logging import get_logger
from epubkit.models import DocumentSnapshot
from epubkit.paths import CONTAINER_PATH, CSS_PATH, MIMETYPE, MIMETYPE_PATH, OPF_PATH, TOC_PATH
from epubkit.services.parts import (
    build_chapter_document,
    build_container_xml,
    build_navigation_document,
    build_package_document,
)

logger = get_logger(__name__)


def package(
    snapshot: DocumentSnapshot,
    *,
    debug_mode: bool = False,
    stylesheet: str | None = None,
) -> bytes:
    """Produce the archive for a snapshot.

    Args:
        snapshot: Frozen document view.
        debug_mode: Omit the mimetype entry.
        stylesheet: Optional CSS written at the fixed stylesheet path.

    Returns:
        Finalized archive bytes.

    Raises:
        ChapterSerializationError: If a chapter document cannot be produced.
        ArchiveError: If the container cannot be finalized.
    """
    writer = ArchiveWriter(date_time=snapshot.modified.timetuple()[:6])

    if not debug_mode:
        writer.add_text(MIMETYPE_PATH, MIMETYPE)

    writer.add_text(CONTAINER_PATH, build_container_xml())
    writer.add_text(OPF_PATH, build_package_document(snapshot))
    writer.add_text(TOC_PATH, build_navigation_document(snapshot))

    for chapter in snapshot.chapters:
        writer.add_text(chapter.archive_path, build_chapter_document(chapter, snapshot.language))

    for asset in snapshot.assets:
        writer.add_bytes(asset.archive_path, asset.content)

    if stylesheet is not None:
        writer.add_text(CSS_PATH, stylesheet)

    data = writer.finalize()
    logger.info(
        "archive_built",
        chapter_count=len(snapshot.chapters),
        asset_count=len(snapshot.assets),
        debug_mode=debug_mode,
        size_bytes=len(data),
    )
    return data
