"""In-memory document model.

The model is the single source of truth for every generated part. It is
append-only: chapters and assets are added, never reordered or removed.
Insertion order of chapters is reading order and table-of-contents order.
"""

import posixpath
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from epubkit.errors import EpubError, EpubErrorCode
from epubkit.paths import build_chapter_path
from epubkit.schemas import BookMetadata


def new_id() -> str:
    """Generate a collision-resistant identifier."""
    return str(uuid4())


@dataclass(frozen=True)
class ImageInfo:
    """What an image processor is told about the image it should produce.

    Attributes:
        file_name: Chapter-relative file name the payload will be stored under
        ext: Normalized extension (may be empty)
        file_id: The asset id reserved for this image
        url: Absolute URL of the selected image source
    """

    file_name: str
    ext: str
    file_id: str
    url: str


@dataclass(frozen=True)
class Asset:
    """One embedded binary resource extracted from chapter content."""

    id: str
    archive_path: str
    media_type: str
    content: bytes = field(repr=False)

    @property
    def file_name(self) -> str:
        """Chapter-relative name used in rewritten img src attributes."""
        return posixpath.basename(self.archive_path)


@dataclass(frozen=True)
class Chapter:
    """One unit of reading content.

    body_html is the rewritten inner markup of the source document body.
    source_url is only used to resolve relative references during ingestion.
    """

    id: str
    title: str
    source_url: str
    body_html: str

    @property
    def archive_path(self) -> str:
        return build_chapter_path(self.id)


@dataclass(frozen=True)
class DocumentSnapshot:
    """Immutable view of the model handed to part generators."""

    book_id: str
    title: str
    author: str | None
    publisher: str
    language: str
    modified: datetime
    chapters: tuple[Chapter, ...]
    assets: tuple[Asset, ...]

    @property
    def creator(self) -> str:
        return self.author or self.publisher


class DocumentModel:
    """Mutable accumulator of chapters and assets for one archive."""

    def __init__(
        self,
        metadata: BookMetadata,
        *,
        publisher: str = "EpubKit",
        language: str = "en-US",
        book_id: str | None = None,
        modified: datetime | None = None,
    ):
        self.metadata = metadata
        self.publisher = publisher
        self.language = language
        self.book_id = book_id or new_id()
        if modified is None:
            modified = datetime.now(UTC)
        self.modified = modified.replace(microsecond=0)
        self._chapters: list[Chapter] = []
        self._assets: list[Asset] = []
        self._frozen = False

    @property
    def chapters(self) -> tuple[Chapter, ...]:
        return tuple(self._chapters)

    @property
    def assets(self) -> tuple[Asset, ...]:
        return tuple(self._assets)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def commit_chapter(self, chapter: Chapter, assets: list[Asset]) -> None:
        """Append a chapter together with the assets extracted from it.

        Assets are registered in extraction order, then the chapter is
        appended. Nothing is appended if the model is frozen.

        Raises:
            EpubError: E_ALREADY_BUILT if the model has been frozen.
        """
        if self._frozen:
            raise EpubError(
                EpubErrorCode.E_ALREADY_BUILT,
                "Cannot add chapters after the archive has been built",
            )
        for asset in assets:
            self._register_asset(asset)
        self._chapters.append(chapter)

    def _register_asset(self, asset: Asset) -> None:
        self._assets.append(asset)

    def freeze(self) -> None:
        """Stop accepting chapters. Idempotent."""
        self._frozen = True

    def snapshot(self) -> DocumentSnapshot:
        """Take an immutable view for part generation."""
        return DocumentSnapshot(
            book_id=self.book_id,
            title=self.metadata.title,
            author=self.metadata.author,
            publisher=self.publisher,
            language=self.language,
            modified=self.modified,
            chapters=tuple(self._chapters),
            assets=tuple(self._assets),
        )
