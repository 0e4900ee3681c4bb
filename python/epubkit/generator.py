"""Public entry point for assembling an EPUB archive.

Usage:
    from epubkit.generator import EpubGenerator

    generator = EpubGenerator("My Book", author="Jane Doe", process_image=fetcher)
    await generator.add_chapter("Chapter 1", "https://example.com/1", html)
    await generator.add_chapter("Chapter 2", "https://example.com/2", html)
    data = generator.build()

Chapters are read in the order they were added. Once build() has run, the
generator stops accepting chapters; build() itself may be repeated.
"""

from pydantic import ValidationError

from epubkit.config import Settings, get_settings
from epubkit.errors import EpubError, EpubErrorCode
from epubkit.logging import set_book_context
from epubkit.models import Asset, Chapter, DocumentModel
from epubkit.schemas import BookMetadata
from epubkit.services.assets import ImageProcessor
from epubkit.services.chapters import ingest_chapter
from epubkit.services.packager import package


class EpubGenerator:
    """Accumulate chapters and package them into an EPUB 3 archive."""

    def __init__(
        self,
        title: str,
        author: str | None = None,
        *,
        debug_mode: bool | None = None,
        process_image: ImageProcessor | None = None,
        stylesheet: str | None = None,
        settings: Settings | None = None,
    ):
        """
        Args:
            title: Book title.
            author: Book author; the publisher is used when omitted.
            debug_mode: Omit the mimetype entry. Defaults to EPUBKIT_DEBUG_MODE.
            process_image: Callback returning a base64 payload per image.
                Without it, images keep their original URLs.
            stylesheet: CSS to write at the fixed stylesheet path.
            settings: Settings override (mainly for tests).

        Raises:
            EpubError: E_INVALID_REQUEST if the metadata is invalid.
        """
        settings = settings or get_settings()
        try:
            metadata = BookMetadata(title=title, author=author)
        except ValidationError as e:
            raise EpubError(EpubErrorCode.E_INVALID_REQUEST, f"Invalid book metadata: {e}") from e

        self.debug_mode = settings.debug_mode if debug_mode is None else debug_mode
        self.process_image = process_image
        self.stylesheet = stylesheet
        self.model = DocumentModel(
            metadata,
            publisher=settings.publisher,
            language=settings.language,
        )

    @property
    def book_id(self) -> str:
        return self.model.book_id

    @property
    def chapters(self) -> tuple[Chapter, ...]:
        return self.model.chapters

    @property
    def assets(self) -> tuple[Asset, ...]:
        return self.model.assets

    async def add_chapter(self, title: str, url: str, html: str) -> "EpubGenerator":
        """Ingest one chapter and append it to the reading order.

        Per-image failures never abort the chapter.

        Raises:
            ChapterSerializationError: If the chapter cannot become XHTML.
            EpubError: E_ALREADY_BUILT after build().
        """
        set_book_context(self.model.book_id)
        await ingest_chapter(self.model, title, url, html, self.process_image)
        return self

    def build(self) -> bytes:
        """Freeze the model and produce the archive bytes.

        Raises:
            ChapterSerializationError: If a chapter document cannot be produced.
            ArchiveError: If the container cannot be finalized.
        """
        set_book_context(self.model.book_id)
        self.model.freeze()
        return package(
            self.model.snapshot(),
            debug_mode=self.debug_mode,
            stylesheet=self.stylesheet,
        )
