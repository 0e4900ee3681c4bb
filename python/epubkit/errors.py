"""Error definitions.

Every error carries a code, and every code belongs to exactly one scope:

- image: a single image could not be extracted. Swallowed at the extraction
  boundary; the image keeps its original reference.
- chapter: a chapter cannot be turned into an XHTML document. Raised from
  add_chapter before the chapter is appended.
- global: the archive as a whole cannot be produced.
"""

from enum import Enum


class ErrorScope(str, Enum):
    """How far a failure reaches."""

    IMAGE = "image"
    CHAPTER = "chapter"
    GLOBAL = "global"


class EpubErrorCode(str, Enum):
    """Standardized error codes.

    Format: E_CATEGORY_NAME
    """

    # Per-image errors (recoverable)
    E_IMAGE_URL_INVALID = "E_IMAGE_URL_INVALID"
    E_IMAGE_SOURCE_MISSING = "E_IMAGE_SOURCE_MISSING"
    E_IMAGE_PROCESS_FAILED = "E_IMAGE_PROCESS_FAILED"
    E_IMAGE_PAYLOAD_INVALID = "E_IMAGE_PAYLOAD_INVALID"
    E_IMAGE_FETCH_FAILED = "E_IMAGE_FETCH_FAILED"
    E_IMAGE_TOO_LARGE = "E_IMAGE_TOO_LARGE"
    E_IMAGE_INVALID = "E_IMAGE_INVALID"

    # Per-chapter errors
    E_CHAPTER_SERIALIZATION_FAILED = "E_CHAPTER_SERIALIZATION_FAILED"

    # Global errors
    E_ARCHIVE_FAILED = "E_ARCHIVE_FAILED"
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_ALREADY_BUILT = "E_ALREADY_BUILT"


# Error code to scope mapping
ERROR_CODE_TO_SCOPE: dict[EpubErrorCode, ErrorScope] = {
    EpubErrorCode.E_IMAGE_URL_INVALID: ErrorScope.IMAGE,
    EpubErrorCode.E_IMAGE_SOURCE_MISSING: ErrorScope.IMAGE,
    EpubErrorCode.E_IMAGE_PROCESS_FAILED: ErrorScope.IMAGE,
    EpubErrorCode.E_IMAGE_PAYLOAD_INVALID: ErrorScope.IMAGE,
    EpubErrorCode.E_IMAGE_FETCH_FAILED: ErrorScope.IMAGE,
    EpubErrorCode.E_IMAGE_TOO_LARGE: ErrorScope.IMAGE,
    EpubErrorCode.E_IMAGE_INVALID: ErrorScope.IMAGE,
    EpubErrorCode.E_CHAPTER_SERIALIZATION_FAILED: ErrorScope.CHAPTER,
    EpubErrorCode.E_ARCHIVE_FAILED: ErrorScope.GLOBAL,
    EpubErrorCode.E_INVALID_REQUEST: ErrorScope.GLOBAL,
    EpubErrorCode.E_ALREADY_BUILT: ErrorScope.GLOBAL,
}


class EpubError(Exception):
    """Base exception for epubkit errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        scope: Failure scope (derived from code)
    """

    def __init__(self, code: EpubErrorCode, message: str):
        self.code = code
        self.message = message
        self.scope = ERROR_CODE_TO_SCOPE.get(code, ErrorScope.GLOBAL)
        super().__init__(message)


class ImageExtractionError(EpubError):
    """A single image could not be turned into an asset."""

    def __init__(
        self,
        code: EpubErrorCode = EpubErrorCode.E_IMAGE_PROCESS_FAILED,
        message: str = "Image extraction failed",
    ):
        super().__init__(code, message)


class ChapterSerializationError(EpubError):
    """A chapter could not be serialized as well-formed XHTML."""

    def __init__(
        self,
        message: str = "Chapter serialization failed",
        *,
        chapter_title: str | None = None,
    ):
        self.chapter_title = chapter_title
        super().__init__(EpubErrorCode.E_CHAPTER_SERIALIZATION_FAILED, message)


class ArchiveError(EpubError):
    """The archive container could not be finalized."""

    def __init__(self, message: str = "Archive finalization failed"):
        super().__init__(EpubErrorCode.E_ARCHIVE_FAILED, message)
