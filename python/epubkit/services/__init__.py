"""Assembly services.

This module contains the functions that turn caller HTML into archive parts.
Services are called by EpubGenerator and operate on the document model.
"""

from epubkit.services.chapters import ingest_chapter
from epubkit.services.image_fetch import HttpImageProcessor
from epubkit.services.packager import package

__all__ = [
    "HttpImageProcessor",
    "ingest_chapter",
    "package",
]
