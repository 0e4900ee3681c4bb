"""Generators for the XML parts of the archive.

Pure functions of a DocumentSnapshot. Every path comes from epubkit.paths
and every id from the helpers below, so the container descriptor, package
document, navigation document, and chapter documents agree on ids, paths,
and counts.

Manifest ids:
    toc              the navigation document
    chapter-{index}  one per chapter, in chapter order
    image-{asset_id} one per asset, in asset order
    css              the stylesheet
"""

from lxml import etree
from lxml.builder import ElementMaker

from epubkit.errors import ChapterSerializationError
from epubkit.models import Chapter, DocumentSnapshot
from epubkit.paths import CSS_PATH, OPF_PATH, TOC_PATH, stylesheet_href_from_chapter
from epubkit.services.xhtml import (
    EPUB_NS,
    XHTML_NS,
    XHTML_NSMAP,
    XML_NS,
    append_html_fragment,
)

CONTAINER_NS = "urn:oasis:names:tc:opendocument:xmlns:container"
OPF_NS = "http://www.idpf.org/2007/opf"
DC_NS = "http://purl.org/dc/elements/1.1/"

XHTML_MEDIA_TYPE = "application/xhtml+xml"
OPF_MEDIA_TYPE = "application/oebps-package+xml"
CSS_MEDIA_TYPE = "text/css"

BOOK_ID_ATTR = "BookId"
TOC_ITEM_ID = "toc"
CSS_ITEM_ID = "css"
TOC_TITLE = "Table of Contents"

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'
HTML_DOCTYPE = "<!DOCTYPE html>"

_container = ElementMaker(namespace=CONTAINER_NS, nsmap={None: CONTAINER_NS})
_opf = ElementMaker(namespace=OPF_NS, nsmap={None: OPF_NS, "dc": DC_NS})
_dc = ElementMaker(namespace=DC_NS, nsmap={"dc": DC_NS})
_xhtml = ElementMaker(namespace=XHTML_NS, nsmap=XHTML_NSMAP)


def chapter_item_id(index: int) -> str:
    return f"chapter-{index}"


def asset_item_id(asset_id: str) -> str:
    return f"image-{asset_id}"


def _serialize(root: etree._Element, *, doctype: str | None = None, pretty: bool = True) -> str:
    body = etree.tostring(root, encoding="unicode", doctype=doctype, pretty_print=pretty)
    return XML_DECLARATION + body


def build_container_xml() -> str:
    """META-INF/container.xml pointing at the package document."""
    root = _container.container(
        _container.rootfiles(
            _container.rootfile({"full-path": OPF_PATH, "media-type": OPF_MEDIA_TYPE}),
        ),
        version="1.0",
    )
    return _serialize(root)


def build_package_document(snapshot: DocumentSnapshot) -> str:
    """content.opf: metadata, manifest, and spine.

    The spine lists the navigation document followed by every chapter in
    insertion order.
    """
    metadata = _opf.metadata(
        _dc.identifier(snapshot.book_id, id=BOOK_ID_ATTR),
        _dc.title(snapshot.title),
        _dc.publisher(snapshot.publisher),
        _dc.creator(snapshot.creator),
        _dc.language(snapshot.language),
        _opf.meta(
            snapshot.modified.strftime("%Y-%m-%dT%H:%M:%SZ"),
            property="dcterms:modified",
        ),
    )

    manifest = _opf.manifest(
        _opf.item(
            {"id": TOC_ITEM_ID, "href": TOC_PATH, "media-type": XHTML_MEDIA_TYPE},
            properties="nav",
        )
    )
    for index, chapter in enumerate(snapshot.chapters):
        manifest.append(
            _opf.item(
                {
                    "id": chapter_item_id(index),
                    "href": chapter.archive_path,
                    "media-type": XHTML_MEDIA_TYPE,
                }
            )
        )
    for asset in snapshot.assets:
        manifest.append(
            _opf.item(
                {
                    "id": asset_item_id(asset.id),
                    "href": asset.archive_path,
                    "media-type": asset.media_type,
                }
            )
        )
    manifest.append(
        _opf.item({"id": CSS_ITEM_ID, "href": CSS_PATH, "media-type": CSS_MEDIA_TYPE})
    )

    spine = _opf.spine(_opf.itemref(idref=TOC_ITEM_ID))
    for index in range(len(snapshot.chapters)):
        spine.append(_opf.itemref(idref=chapter_item_id(index)))

    root = _opf.package(
        metadata,
        manifest,
        spine,
        {"version": "3.0", "unique-identifier": BOOK_ID_ATTR},
    )
    return _serialize(root)


def build_navigation_document(snapshot: DocumentSnapshot) -> str:
    """toc.xhtml: a self link followed by one entry per chapter."""
    entries = _xhtml.ol(
        _xhtml.li(_xhtml.a(TOC_TITLE, href=TOC_PATH)),
    )
    for chapter in snapshot.chapters:
        entries.append(
            _xhtml.li(
                _xhtml.a(
                    chapter.title,
                    {f"{{{EPUB_NS}}}type": "bodymatter"},
                    href=chapter.archive_path,
                ),
                id=f"chapter-{chapter.id}",
            )
        )

    root = _xhtml.html(
        _xhtml.head(
            _xhtml.title(TOC_TITLE),
            _xhtml.meta(charset="UTF-8"),
        ),
        _xhtml.body(
            _xhtml.h1(TOC_TITLE),
            _xhtml.nav(entries, {f"{{{EPUB_NS}}}type": "toc"}, id="toc"),
        ),
        {"lang": snapshot.language, f"{{{XML_NS}}}lang": snapshot.language},
    )
    return _serialize(root, doctype=HTML_DOCTYPE)


def build_chapter_document(chapter: Chapter, language: str = "en-US") -> str:
    """chapters/{id}.xhtml: the chapter body in a minimal XHTML shell.

    Raises:
        ChapterSerializationError: If the chapter cannot be expressed as
            well-formed XML.
    """
    try:
        section = _xhtml.section({f"{{{EPUB_NS}}}type": "chapter"})
        append_html_fragment(section, chapter.body_html)
        if section.text is None and not len(section):
            section.text = ""

        root = _xhtml.html(
            _xhtml.head(
                _xhtml.meta(charset="UTF-8"),
                _xhtml.title(chapter.title),
                _xhtml.link(
                    rel="stylesheet",
                    type=CSS_MEDIA_TYPE,
                    href=stylesheet_href_from_chapter(),
                ),
            ),
            _xhtml.body(
                _xhtml.h1(chapter.title),
                section,
            ),
            {"lang": language, f"{{{XML_NS}}}lang": language},
        )
        document = _serialize(root, doctype=HTML_DOCTYPE, pretty=False)
        # Reparse: the archive must only ever contain well-formed XML
        etree.fromstring(document.encode("utf-8"))
    except (ValueError, etree.LxmlError) as e:
        raise ChapterSerializationError(
            f"Chapter {chapter.title!r} cannot be serialized as XHTML: {e}",
            chapter_title=chapter.title,
        ) from e

    return document
