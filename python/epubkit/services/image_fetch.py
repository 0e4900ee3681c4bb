"""HTTP image processor for chapter extraction.

A ready-made process_image callback that fetches images over HTTP:
- URL validation (scheme, userinfo, host)
- Limited redirects (max 1), each hop validated
- Content validation (MIME type, magic bytes, Pillow decode)
- Size cap enforced while streaming, dimension cap checked by Pillow
- In-memory LRU cache with byte budget, keyed by normalized URL

The cache only saves network round trips. Every call still yields a payload,
and the extractor still creates one asset per image reference.

Usage:
    processor = HttpImageProcessor()
    generator = EpubGenerator("Title", process_image=processor)
    ...
    await processor.aclose()
"""

import base64
import io
import warnings
from collections import OrderedDict
from urllib.parse import urljoin, urlparse, urlunparse

import httpx
from PIL import Image

from epubkit.config import Settings, get_settings
from epubkit.errors import EpubErrorCode, ImageExtractionError
from epubkit.logging import get_logger
from epubkit.models import ImageInfo

logger = get_logger(__name__)

# Cache budget
CACHE_MAX_BYTES = 128 * 1024 * 1024  # 128 MB

ALLOWED_SCHEMES = frozenset({"http", "https"})

# Content-Type immediate rejection list (clearly non-image)
REJECTED_CONTENT_TYPES = frozenset(
    {
        "text/html",
        "text/plain",
        "text/xml",
        "application/json",
        "application/javascript",
        "image/svg+xml",
    }
)

# Markup that Pillow cannot decode and must not be embedded as a raster image
REJECTED_MAGIC_PREFIXES = (
    b"<svg",
    b"<?xml",
    b"<html",
    b"<script",
    b"<!doctype",
)

REDIRECT_STATUS_CODES = frozenset({301, 302, 303, 307, 308})

ACCEPT_HEADER = "image/*,*/*;q=0.8"

STREAM_CHUNK_SIZE = 8192


class ImageCache:
    """Recently fetched image bytes, keyed by normalized URL.

    Least recently used entries are dropped once the byte budget is exceeded.
    Payloads larger than the whole budget are never kept.
    """

    def __init__(self, max_bytes: int = CACHE_MAX_BYTES):
        self.max_bytes = max_bytes
        self._entries: OrderedDict[str, bytes] = OrderedDict()
        self._total_bytes = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def total_bytes(self) -> int:
        return self._total_bytes

    def get(self, url: str) -> bytes | None:
        data = self._entries.get(url)
        if data is not None:
            self._entries.move_to_end(url)
        return data

    def put(self, url: str, data: bytes) -> None:
        if len(data) > self.max_bytes:
            return
        previous = self._entries.pop(url, None)
        if previous is not None:
            self._total_bytes -= len(previous)
        self._entries[url] = data
        self._total_bytes += len(data)
        while self._total_bytes > self.max_bytes:
            _, evicted = self._entries.popitem(last=False)
            self._total_bytes -= len(evicted)


# =============================================================================
# URL Validation
# =============================================================================


def normalize_image_url(url: str) -> str:
    """Normalize URL for cache keys.

    - Lowercase scheme and host
    - Remove default ports (80 for http, 443 for https)
    - Strip fragment
    - Preserve query
    """
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()

    port = parsed.port
    if port == 80 and scheme == "http":
        port = None
    if port == 443 and scheme == "https":
        port = None

    netloc = f"{host}:{port}" if port is not None else host
    return urlunparse((scheme, netloc, parsed.path, parsed.params, parsed.query, ""))


def validate_url(url: str) -> str:
    """Validate an image URL before fetching.

    Returns:
        The normalized URL.

    Raises:
        ImageExtractionError: E_IMAGE_URL_INVALID if the URL cannot be fetched.
    """
    try:
        parsed = urlparse(url)
        _ = parsed.port
    except ValueError as e:
        raise ImageExtractionError(EpubErrorCode.E_IMAGE_URL_INVALID, f"Invalid URL: {e}") from e

    scheme = parsed.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise ImageExtractionError(
            EpubErrorCode.E_IMAGE_URL_INVALID,
            f"URL scheme must be http or https, got: {scheme or '(none)'}",
        )

    if parsed.username is not None or parsed.password is not None or "@" in (parsed.netloc or ""):
        raise ImageExtractionError(
            EpubErrorCode.E_IMAGE_URL_INVALID, "URL must not contain credentials"
        )

    if not parsed.hostname:
        raise ImageExtractionError(EpubErrorCode.E_IMAGE_URL_INVALID, "URL must have a host")

    return normalize_image_url(url)


# =============================================================================
# Content Validation
# =============================================================================


def validate_content_type(content_type: str | None) -> None:
    """Reject clearly non-image Content-Types. Missing is accepted."""
    if not content_type:
        return

    ct_lower = content_type.lower().split(";")[0].strip()
    if ct_lower in REJECTED_CONTENT_TYPES:
        raise ImageExtractionError(
            EpubErrorCode.E_IMAGE_INVALID, f"Invalid content type: {ct_lower}"
        )


def sniff_magic_bytes(data: bytes) -> None:
    """Check first bytes for obviously non-image content."""
    if len(data) < 10:
        return

    stripped_lower = data[:512].lstrip(b" \t\n\r").lower()
    for prefix in REJECTED_MAGIC_PREFIXES:
        if stripped_lower.startswith(prefix):
            raise ImageExtractionError(
                EpubErrorCode.E_IMAGE_INVALID, "Content is not a raster image"
            )


def validate_and_decode_image(data: bytes, max_dimension: int) -> str:
    """Validate image with Pillow.

    Returns:
        Lower-cased Pillow format name (e.g. "png").

    Raises:
        ImageExtractionError: If the image is invalid or too large.
    """
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", Image.DecompressionBombWarning)
            img = Image.open(io.BytesIO(data))
            img.verify()

            # verify() leaves the image unusable; reopen for dimensions
            img = Image.open(io.BytesIO(data))
            width, height = img.size
            img_format = (img.format or "").lower()
    except (Image.DecompressionBombWarning, Image.DecompressionBombError) as e:
        raise ImageExtractionError(
            EpubErrorCode.E_IMAGE_TOO_LARGE, "Image exceeds dimension limits"
        ) from e
    except Exception as e:
        raise ImageExtractionError(
            EpubErrorCode.E_IMAGE_INVALID, f"Content is not a valid image: {e}"
        ) from e

    if width > max_dimension or height > max_dimension:
        raise ImageExtractionError(
            EpubErrorCode.E_IMAGE_TOO_LARGE,
            f"Image dimensions exceed limit: {width}x{height}",
        )

    return img_format


# =============================================================================
# HTTP Fetching
# =============================================================================


async def _read_limited(response: httpx.Response, max_bytes: int) -> bytes:
    """Stream a response body, aborting once it passes max_bytes."""
    too_large = ImageExtractionError(
        EpubErrorCode.E_IMAGE_TOO_LARGE,
        f"Image exceeds maximum size of {max_bytes} bytes",
    )

    content_length = response.headers.get("content-length", "")
    if content_length.isdigit() and int(content_length) > max_bytes:
        raise too_large

    chunks = []
    total_bytes = 0
    async for chunk in response.aiter_bytes(chunk_size=STREAM_CHUNK_SIZE):
        total_bytes += len(chunk)
        if total_bytes > max_bytes:
            raise too_large
        chunks.append(chunk)

    return b"".join(chunks)


async def fetch_with_redirect(
    url: str,
    client: httpx.AsyncClient,
    *,
    max_bytes: int,
    user_agent: str,
    redirects_left: int = 1,
) -> tuple[bytes, str | None]:
    """Fetch URL with up to 1 redirect, validating each hop.

    The body is streamed so that oversized responses are abandoned early.

    Returns:
        Tuple of (bytes, content_type)

    Raises:
        ImageExtractionError: On fetch failure, redirect violation, or size limit.
    """
    headers = {"User-Agent": user_agent, "Accept": ACCEPT_HEADER}
    try:
        async with client.stream(
            "GET", url, headers=headers, follow_redirects=False
        ) as response:
            if response.status_code in REDIRECT_STATUS_CODES:
                if redirects_left <= 0:
                    raise ImageExtractionError(
                        EpubErrorCode.E_IMAGE_FETCH_FAILED, "Too many redirects (max 1 allowed)"
                    )
                location = response.headers.get("location")
                if not location:
                    raise ImageExtractionError(
                        EpubErrorCode.E_IMAGE_FETCH_FAILED, "Redirect without Location header"
                    )
                redirect_url = urljoin(url, location)
                validate_url(redirect_url)
            else:
                if response.status_code >= 400:
                    raise ImageExtractionError(
                        EpubErrorCode.E_IMAGE_FETCH_FAILED,
                        f"Upstream returned status {response.status_code}",
                    )
                content_type = response.headers.get("content-type")
                return await _read_limited(response, max_bytes), content_type

    except httpx.TimeoutException as e:
        raise ImageExtractionError(
            EpubErrorCode.E_IMAGE_FETCH_FAILED, "Image fetch timed out"
        ) from e
    except httpx.RequestError as e:
        raise ImageExtractionError(
            EpubErrorCode.E_IMAGE_FETCH_FAILED, f"Failed to fetch image: {e}"
        ) from e

    return await fetch_with_redirect(
        redirect_url,
        client,
        max_bytes=max_bytes,
        user_agent=user_agent,
        redirects_left=redirects_left - 1,
    )


class HttpImageProcessor:
    """process_image callback that downloads images over HTTP.

    Pass an httpx.AsyncClient to share a connection pool; otherwise the
    processor creates its own and closes it in aclose().
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
        cache: ImageCache | None = None,
    ):
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else ImageCache()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=self.settings.image_fetch_timeout_s,
            follow_redirects=False,  # redirects are validated manually
            trust_env=False,
        )

    async def __call__(self, info: ImageInfo) -> str:
        data = await self.fetch(info.url)
        return base64.b64encode(data).decode("ascii")

    async def fetch(self, url: str) -> bytes:
        """Fetch and validate one image.

        Raises:
            ImageExtractionError: On invalid URL, fetch failure, or invalid content.
        """
        normalized_url = validate_url(url)

        cached = self.cache.get(normalized_url)
        if cached is not None:
            return cached

        data, content_type = await fetch_with_redirect(
            url,
            self._client,
            max_bytes=self.settings.max_image_bytes,
            user_agent=self.settings.image_user_agent,
        )
        validate_content_type(content_type)
        sniff_magic_bytes(data)
        img_format = validate_and_decode_image(data, self.settings.max_image_dimension)

        self.cache.put(normalized_url, data)
        logger.info("image_fetched", url=normalized_url, size_bytes=len(data), format=img_format)
        return data

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpImageProcessor":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
