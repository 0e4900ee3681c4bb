"""Image extraction from chapter content.

Turns one <img> element into zero or one archive asset:
1. Strips presentation attributes (style, width, height)
2. Resolves srcset to its widest candidate and drops srcset/sizes
3. Leaves data: URIs alone
4. Derives the extension and reserves an asset id
5. Asks the image processor for a base64 payload and, on success,
   repoints src at the chapter-relative asset file name

Every failure in this module is scoped to the one image: the element keeps
its (possibly remote) source and no asset is produced.
"""

import base64
import binascii
import inspect
import re
from collections.abc import Awaitable, Callable
from urllib.parse import unquote, urljoin, urlparse

from lxml.html import HtmlElement

from epubkit.errors import EpubErrorCode, ImageExtractionError
from epubkit.logging import get_logger
from epubkit.models import Asset, ImageInfo, new_id
from epubkit.paths import asset_file_name, build_asset_path
from epubkit.services.srcset import SrcsetCandidate, parse_srcset

logger = get_logger(__name__)

# Callback contract: return a base64 payload (or an awaitable of one).
# None or "" means no asset; raising means no asset.
ImageProcessor = Callable[[ImageInfo], Awaitable[str | None] | str | None]

# Attributes inlined by source pages that fight the archive stylesheet
PRESENTATION_ATTRS = ("style", "width", "height")

# Responsive attributes readers are not expected to implement
RESPONSIVE_ATTRS = ("srcset", "sizes")

DATA_URI_PREFIX = "data:"

WILDCARD_MEDIA_TYPE = "image/*"

EXTENSION_MEDIA_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "jpe": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "bmp": "image/bmp",
    "avif": "image/avif",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    "ico": "image/x-icon",
}

_EXTENSION_RE = re.compile(r"^[a-z0-9]{1,8}$")


def media_type_for_extension(ext: str) -> str:
    """Map a normalized extension to a media type, or image/* if unknown."""
    return EXTENSION_MEDIA_TYPES.get(ext, WILDCARD_MEDIA_TYPE)


def derive_extension(url: str) -> str:
    """Extension of the last path segment of a URL.

    Lower-cased, alphanumeric, at most 8 characters; "" otherwise.
    Query strings and fragments never contribute.
    """
    path = urlparse(url).path
    segment = unquote(path.rsplit("/", 1)[-1])
    if "." not in segment:
        return ""
    ext = segment.rsplit(".", 1)[1].lower()
    if not _EXTENSION_RE.match(ext):
        return ""
    return ext


def select_best_candidate(candidates: list[SrcsetCandidate]) -> SrcsetCandidate | None:
    """Pick the candidate with the strictly largest width.

    Falls back to the first candidate when none declares a width.
    """
    best: SrcsetCandidate | None = None
    for candidate in candidates:
        if candidate.width is None:
            continue
        if best is None or candidate.width > (best.width or 0):
            best = candidate

    if best is None and candidates:
        return candidates[0]
    return best


def strip_presentation(element: HtmlElement) -> None:
    """Remove inline presentation attributes from an image element."""
    for attr in PRESENTATION_ATTRS:
        element.attrib.pop(attr, None)


def resolve_url(src: str, base_url: str) -> str:
    """Resolve an image reference against the chapter URL.

    Raises:
        ImageExtractionError: E_IMAGE_URL_INVALID if the result is unusable.
    """
    if src.startswith(DATA_URI_PREFIX):
        return src

    try:
        resolved = urljoin(base_url, src)
        parsed = urlparse(resolved)
        # .port raises ValueError for out-of-range or non-numeric ports
        _ = parsed.port
    except ValueError as e:
        raise ImageExtractionError(
            EpubErrorCode.E_IMAGE_URL_INVALID, f"Invalid image URL {src!r}: {e}"
        ) from e

    if not parsed.scheme:
        raise ImageExtractionError(
            EpubErrorCode.E_IMAGE_URL_INVALID,
            f"Image URL {src!r} cannot be resolved without an absolute chapter URL",
        )

    return resolved


def resolve_source(element: HtmlElement, base_url: str) -> str:
    """Determine the effective source of an image element.

    When srcset is present, the selected candidate replaces src and the
    responsive attributes are removed.

    Raises:
        ImageExtractionError: If the element has no usable source.
    """
    srcset = element.get("srcset")
    if srcset is not None:
        for attr in RESPONSIVE_ATTRS:
            element.attrib.pop(attr, None)
        best = select_best_candidate(parse_srcset(srcset))
        if best is not None:
            resolved = resolve_url(best.url.strip(), base_url)
            element.set("src", resolved)
            return resolved

    src = (element.get("src") or "").strip()
    if not src:
        raise ImageExtractionError(EpubErrorCode.E_IMAGE_SOURCE_MISSING, "Image has no source")

    return resolve_url(src, base_url)


def decode_payload(payload: object) -> bytes | None:
    """Decode a processor payload.

    Returns:
        Decoded bytes, or None if the processor produced nothing.

    Raises:
        ImageExtractionError: E_IMAGE_PAYLOAD_INVALID for non-base64 payloads.
    """
    if payload is None or payload == "":
        return None
    if not isinstance(payload, str):
        raise ImageExtractionError(
            EpubErrorCode.E_IMAGE_PAYLOAD_INVALID,
            f"Image processor returned {type(payload).__name__}, expected base64 str",
        )

    try:
        data = base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageExtractionError(
            EpubErrorCode.E_IMAGE_PAYLOAD_INVALID, "Image payload is not valid base64"
        ) from e

    return data or None


async def _run_processor(process_image: ImageProcessor, info: ImageInfo) -> object:
    result = process_image(info)
    if inspect.isawaitable(result):
        result = await result
    return result


async def extract_image(
    element: HtmlElement,
    base_url: str,
    process_image: ImageProcessor | None,
) -> Asset | None:
    """Extract one image element into an asset.

    Args:
        element: The <img> element. Modified in place.
        base_url: Chapter URL used to resolve relative references.
        process_image: Optional callback producing the base64 payload.

    Returns:
        The new asset, or None if nothing was extracted.
    """
    strip_presentation(element)

    try:
        source = resolve_source(element, base_url)
    except ImageExtractionError as e:
        logger.warning(
            "image_extraction_skipped",
            error_code=e.code.value,
            reason=e.message,
        )
        return None

    if source.startswith(DATA_URI_PREFIX):
        return None

    if process_image is None:
        return None

    ext = derive_extension(source)
    asset_id = new_id()
    file_name = asset_file_name(asset_id, ext)
    info = ImageInfo(file_name=file_name, ext=ext, file_id=asset_id, url=source)

    try:
        content = decode_payload(await _run_processor(process_image, info))
    except ImageExtractionError as e:
        logger.warning(
            "image_processor_failed",
            url=source,
            error_code=e.code.value,
            reason=e.message,
        )
        return None
    except Exception as e:
        # Processor is caller code; any failure leaves the image untouched
        logger.warning(
            "image_processor_failed",
            url=source,
            error_code=EpubErrorCode.E_IMAGE_PROCESS_FAILED.value,
            reason=f"{type(e).__name__}: {e}",
        )
        return None

    if content is None:
        logger.info("image_processor_empty", url=source)
        return None

    element.set("src", file_name)

    return Asset(
        id=asset_id,
        archive_path=build_asset_path(asset_id, ext),
        media_type=media_type_for_extension(ext),
        content=content,
    )
