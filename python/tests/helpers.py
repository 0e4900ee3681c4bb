"""Test helpers for building and inspecting archives.

Provides:
- Settings construction without .env interference
- Recording image processors (sync and async)
- Archive opening and XML part parsing
"""

import base64
import io
import zipfile

from lxml import etree

from epubkit.config import Settings
from epubkit.models import ImageInfo

NS = {
    "c": "urn:oasis:names:tc:opendocument:xmlns:container",
    "opf": "http://www.idpf.org/2007/opf",
    "dc": "http://purl.org/dc/elements/1.1/",
    "x": "http://www.w3.org/1999/xhtml",
    "epub": "http://www.idpf.org/2007/ops",
}


def make_settings(**overrides) -> Settings:
    """Build a Settings instance with test defaults + overrides (by alias)."""
    return Settings(_env_file=None, **overrides)


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class RecordingProcessor:
    """Synchronous image processor returning a fixed payload.

    Attributes:
        calls: Every ImageInfo the processor was asked about, in call order.
    """

    def __init__(self, payload: bytes | None = b"\x89PNG fake", *, fail_on: str | None = None):
        self.payload = payload
        self.fail_on = fail_on
        self.calls: list[ImageInfo] = []

    def __call__(self, info: ImageInfo) -> str | None:
        self.calls.append(info)
        if self.fail_on is not None and self.fail_on in info.url:
            raise RuntimeError(f"cannot process {info.url}")
        if self.payload is None:
            return None
        return b64(self.payload)


class AsyncRecordingProcessor(RecordingProcessor):
    """Coroutine variant of RecordingProcessor."""

    async def __call__(self, info: ImageInfo) -> str | None:
        return super().__call__(info)


def open_archive(data: bytes) -> zipfile.ZipFile:
    return zipfile.ZipFile(io.BytesIO(data))


def parse_part(archive: zipfile.ZipFile, path: str) -> etree._Element:
    """Parse an archive entry strictly as XML."""
    return etree.fromstring(archive.read(path))


def parse_xml(document: str) -> etree._Element:
    return etree.fromstring(document.encode("utf-8"))
