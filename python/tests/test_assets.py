"""Tests for image extraction.

Tests cover:
- Extension derivation and media types
- Source resolution (relative URLs, srcset selection, data URIs)
- Payload decoding
- Per-image failures leaving the element untouched
"""

import pytest
from lxml.html import fragment_fromstring
from structlog.testing import capture_logs

from epubkit.errors import EpubErrorCode, ImageExtractionError
from epubkit.services.assets import (
    decode_payload,
    derive_extension,
    extract_image,
    media_type_for_extension,
    resolve_source,
    resolve_url,
    select_best_candidate,
)
from epubkit.services.srcset import SrcsetCandidate
from tests.helpers import AsyncRecordingProcessor, RecordingProcessor, b64
from tests.image_fixtures import TINY_PNG

CHAPTER_URL = "https://example.com/book/chapter-1.html"


def _img(markup: str):
    return fragment_fromstring(markup)


# =============================================================================
# Extension and media type
# =============================================================================


class TestDeriveExtension:
    """Tests for extension derivation from image URLs."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://example.com/a/photo.JPG", "jpg"),
            ("https://example.com/a/photo.png?width=300", "png"),
            ("https://example.com/a/photo.webp#top", "webp"),
            ("https://example.com/a/archive.tar.gz", "gz"),
            ("https://example.com/a/noext", ""),
            ("https://example.com/a.dir/noext", ""),
            ("https://example.com/a/", ""),
            ("https://example.com/a/file.averyverylongext", ""),
            ("https://example.com/a/file.p-n", ""),
            ("https://example.com/image?format=png", ""),
        ],
    )
    def test_derive_extension(self, url, expected):
        """Extension comes from the last path segment, normalized."""
        assert derive_extension(url) == expected


class TestMediaTypes:
    """Tests for extension to media type mapping."""

    def test_known_extensions(self):
        """Known raster and vector extensions map to their media types."""
        assert media_type_for_extension("jpg") == "image/jpeg"
        assert media_type_for_extension("jpeg") == "image/jpeg"
        assert media_type_for_extension("png") == "image/png"
        assert media_type_for_extension("svg") == "image/svg+xml"

    def test_unknown_or_empty_extension_is_wildcard(self):
        """Unknown or empty extensions fall back to image/*."""
        assert media_type_for_extension("xyz") == "image/*"
        assert media_type_for_extension("") == "image/*"


# =============================================================================
# Source resolution
# =============================================================================


class TestSelectBestCandidate:
    """Tests for srcset candidate selection."""

    def test_largest_width_wins(self):
        """The widest candidate is selected."""
        candidates = [
            SrcsetCandidate("a.jpg", width=320),
            SrcsetCandidate("c.jpg", width=1280),
            SrcsetCandidate("b.jpg", width=640),
        ]
        assert select_best_candidate(candidates).url == "c.jpg"

    def test_first_of_equal_widths_wins(self):
        """Ties keep the earlier candidate."""
        candidates = [SrcsetCandidate("a.jpg", width=640), SrcsetCandidate("b.jpg", width=640)]
        assert select_best_candidate(candidates).url == "a.jpg"

    def test_falls_back_to_first_without_widths(self):
        """Without width descriptors the first candidate is used."""
        candidates = [SrcsetCandidate("a.jpg", density=1.0), SrcsetCandidate("b.jpg", density=2.0)]
        assert select_best_candidate(candidates).url == "a.jpg"

    def test_empty(self):
        """No candidates selects nothing."""
        assert select_best_candidate([]) is None


class TestResolveUrl:
    """Tests for resolving image references against the chapter URL."""

    def test_relative_reference(self):
        """Relative paths resolve against the chapter directory."""
        assert resolve_url("img/a.png", CHAPTER_URL) == "https://example.com/book/img/a.png"

    def test_root_relative_reference(self):
        """Root-relative paths resolve against the host."""
        assert resolve_url("/static/a.png", CHAPTER_URL) == "https://example.com/static/a.png"

    def test_absolute_reference_unchanged(self):
        """Absolute URLs are returned as given."""
        assert resolve_url("https://cdn.example.org/a.png", CHAPTER_URL) == (
            "https://cdn.example.org/a.png"
        )

    def test_data_uri_unchanged(self):
        """Data URIs are never resolved."""
        uri = "data:image/png;base64,AAAA"
        assert resolve_url(uri, CHAPTER_URL) == uri

    def test_malformed_url_rejected(self):
        """Malformed URLs raise E_IMAGE_URL_INVALID."""
        with pytest.raises(ImageExtractionError) as exc_info:
            resolve_url("http://[::1", CHAPTER_URL)
        assert exc_info.value.code == EpubErrorCode.E_IMAGE_URL_INVALID

    def test_relative_without_base_rejected(self):
        """Relative references need a chapter URL to resolve against."""
        with pytest.raises(ImageExtractionError) as exc_info:
            resolve_url("img/a.png", "")
        assert exc_info.value.code == EpubErrorCode.E_IMAGE_URL_INVALID


class TestResolveSource:
    """Tests for choosing the image source from src and srcset."""

    def test_srcset_replaces_src(self):
        """A usable srcset candidate wins over src."""
        element = _img(
            '<img src="small.jpg" srcset="a.jpg 320w, b.jpg 640w, c.jpg 1280w" '
            'sizes="(max-width: 600px) 100vw">'
        )
        assert resolve_source(element, CHAPTER_URL) == "https://example.com/book/c.jpg"
        assert element.get("src") == "https://example.com/book/c.jpg"
        assert element.get("srcset") is None
        assert element.get("sizes") is None

    def test_unusable_srcset_falls_back_to_src(self):
        """A srcset with no valid candidates leaves src in charge."""
        element = _img('<img src="small.jpg" srcset="bad.jpg 10w 2x">')
        assert resolve_source(element, CHAPTER_URL) == "https://example.com/book/small.jpg"
        assert element.get("srcset") is None

    def test_missing_source(self):
        """An img without src or srcset raises E_IMAGE_SOURCE_MISSING."""
        with pytest.raises(ImageExtractionError) as exc_info:
            resolve_source(_img('<img alt="nothing">'), CHAPTER_URL)
        assert exc_info.value.code == EpubErrorCode.E_IMAGE_SOURCE_MISSING


class TestDecodePayload:
    """Tests for decoding processor payloads."""

    def test_valid_payload(self):
        """Valid base64 decodes to the original bytes."""
        assert decode_payload(b64(TINY_PNG)) == TINY_PNG

    def test_payload_with_line_breaks(self):
        """Whitespace inside the payload is ignored."""
        encoded = b64(TINY_PNG)
        wrapped = "\n".join(encoded[i : i + 20] for i in range(0, len(encoded), 20))
        assert decode_payload(wrapped) == TINY_PNG

    def test_empty_payloads(self):
        """None and empty payloads mean no asset."""
        assert decode_payload(None) is None
        assert decode_payload("") is None

    def test_invalid_base64(self):
        """Invalid base64 is an image-scoped failure."""
        with pytest.raises(ImageExtractionError) as exc_info:
            decode_payload("not base64!!")
        assert exc_info.value.code == EpubErrorCode.E_IMAGE_PAYLOAD_INVALID

    def test_non_string_payload(self):
        """Payloads that are not strings are rejected."""
        with pytest.raises(ImageExtractionError) as exc_info:
            decode_payload(TINY_PNG)
        assert exc_info.value.code == EpubErrorCode.E_IMAGE_PAYLOAD_INVALID


# =============================================================================
# Extraction
# =============================================================================


class TestExtractImage:
    """Tests for per-image extraction."""

    @pytest.mark.asyncio
    async def test_extracts_asset_and_rewrites_src(self):
        """A processed image becomes an asset and src points at its file name."""
        processor = RecordingProcessor(TINY_PNG)
        element = _img('<img src="img/a.png" style="float:left" width="10" height="5" alt="A">')

        asset = await extract_image(element, CHAPTER_URL, processor)

        assert asset is not None
        assert asset.content == TINY_PNG
        assert asset.media_type == "image/png"
        assert asset.archive_path == f"chapters/{asset.id}.png"
        assert element.get("src") == f"{asset.id}.png"
        assert element.get("alt") == "A"
        for attr in ("style", "width", "height"):
            assert element.get(attr) is None

        [info] = processor.calls
        assert info.url == "https://example.com/book/img/a.png"
        assert info.ext == "png"
        assert info.file_id == asset.id
        assert info.file_name == f"{asset.id}.png"

    @pytest.mark.asyncio
    async def test_async_processor(self):
        """Coroutine processors are awaited."""
        processor = AsyncRecordingProcessor(TINY_PNG)
        element = _img('<img src="https://example.com/a.gif">')

        asset = await extract_image(element, CHAPTER_URL, processor)

        assert asset is not None
        assert asset.media_type == "image/gif"
        assert len(processor.calls) == 1

    @pytest.mark.asyncio
    async def test_srcset_widest_candidate_is_fetched(self):
        """The processor is asked for the widest srcset candidate."""
        processor = RecordingProcessor(TINY_PNG)
        element = _img('<img src="s.jpg" srcset="a.jpg 320w, b.jpg 640w, c.jpg 1280w">')

        asset = await extract_image(element, CHAPTER_URL, processor)

        assert processor.calls[0].url == "https://example.com/book/c.jpg"
        assert element.get("src") == asset.file_name
        assert element.get("srcset") is None

    @pytest.mark.asyncio
    async def test_extensionless_url(self):
        """URLs without an extension give a bare asset id file name."""
        processor = RecordingProcessor(TINY_PNG)
        element = _img('<img src="https://example.com/render?id=7">')

        asset = await extract_image(element, CHAPTER_URL, processor)

        assert asset.archive_path == f"chapters/{asset.id}"
        assert asset.media_type == "image/*"
        assert element.get("src") == asset.id

    @pytest.mark.asyncio
    async def test_data_uri_only_stripped(self):
        """Data URI images keep src and lose other attributes."""
        processor = RecordingProcessor(TINY_PNG)
        uri = f"data:image/png;base64,{b64(TINY_PNG)}"
        element = _img(f'<img src="{uri}" style="border:0" width="1">')

        assert await extract_image(element, CHAPTER_URL, processor) is None
        assert element.get("src") == uri
        assert element.get("style") is None
        assert element.get("width") is None
        assert processor.calls == []

    @pytest.mark.asyncio
    async def test_without_processor_keeps_reference(self):
        """Without a processor the original reference is kept."""
        element = _img('<img src="img/a.png" height="4">')

        assert await extract_image(element, CHAPTER_URL, None) is None
        assert element.get("src") == "img/a.png"
        assert element.get("height") is None

    @pytest.mark.asyncio
    async def test_throwing_processor_keeps_url(self):
        """A processor exception is logged and the URL is kept."""
        processor = RecordingProcessor(TINY_PNG, fail_on="broken")
        element = _img('<img src="https://example.com/broken.png">')

        with capture_logs() as logs:
            assert await extract_image(element, CHAPTER_URL, processor) is None

        assert element.get("src") == "https://example.com/broken.png"
        [event] = [e for e in logs if e["event"] == "image_processor_failed"]
        assert event["log_level"] == "warning"
        assert event["error_code"] == "E_IMAGE_PROCESS_FAILED"
        assert event["url"] == "https://example.com/broken.png"

    @pytest.mark.asyncio
    async def test_empty_payload_produces_no_asset(self):
        """An empty payload leaves the image remote."""
        element = _img('<img src="https://example.com/a.png">')

        assert await extract_image(element, CHAPTER_URL, RecordingProcessor(None)) is None
        assert element.get("src") == "https://example.com/a.png"

    @pytest.mark.asyncio
    async def test_invalid_payload_produces_no_asset(self):
        """An undecodable payload leaves the image remote."""
        element = _img('<img src="https://example.com/a.png">')

        with capture_logs() as logs:
            result = await extract_image(element, CHAPTER_URL, lambda info: "%%%")

        assert result is None
        assert element.get("src") == "https://example.com/a.png"
        assert logs[-1]["error_code"] == "E_IMAGE_PAYLOAD_INVALID"

    @pytest.mark.asyncio
    async def test_malformed_url_is_skipped(self):
        """Images with malformed URLs are skipped without calling the processor."""
        processor = RecordingProcessor(TINY_PNG)
        element = _img('<img src="http://[::1">')

        with capture_logs() as logs:
            assert await extract_image(element, CHAPTER_URL, processor) is None

        assert processor.calls == []
        assert element.get("src") == "http://[::1"
        assert logs[-1]["event"] == "image_extraction_skipped"
        assert logs[-1]["error_code"] == "E_IMAGE_URL_INVALID"

    @pytest.mark.asyncio
    async def test_missing_src_is_skipped(self):
        """Images with no source are skipped."""
        processor = RecordingProcessor(TINY_PNG)

        assert await extract_image(_img("<img alt='x'>"), CHAPTER_URL, processor) is None
        assert processor.calls == []

    @pytest.mark.asyncio
    async def test_each_reference_gets_its_own_asset(self):
        """Repeated references to one URL each get their own asset."""
        processor = RecordingProcessor(TINY_PNG)
        first = await extract_image(_img('<img src="a.png">'), CHAPTER_URL, processor)
        second = await extract_image(_img('<img src="a.png">'), CHAPTER_URL, processor)

        assert first.id != second.id
        assert first.archive_path != second.archive_path
