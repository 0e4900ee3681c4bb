"""Chapter ingestion.

Parses caller HTML anchored at the chapter URL, extracts every <img> in
document order, captures the rewritten body markup, checks that the chapter
can be serialized, and only then commits the chapter and its assets to the
model. A chapter that fails serialization leaves the model unchanged.
"""

from html import escape

from lxml import etree
from lxml.html import HtmlElement, document_fromstring, tostring

from epubkit.errors import EpubError, EpubErrorCode
from epubkit.logging import get_logger, set_chapter_context
from epubkit.models import Asset, Chapter, DocumentModel, new_id
from epubkit.services.assets import ImageProcessor, extract_image
from epubkit.services.parts import build_chapter_document
from epubkit.services.xhtml import strip_xml_declaration

logger = get_logger(__name__)


def parse_chapter_html(html: str, url: str) -> HtmlElement | None:
    """Parse chapter HTML leniently.

    Returns:
        The document root, or None if there is no content to parse.
    """
    html = strip_xml_declaration(html or "")
    if not html.strip():
        return None

    try:
        return document_fromstring(html, base_url=url or None)
    except etree.ParserError:
        # lxml reports documents with no elements (e.g. only a comment) this way
        logger.warning("chapter_html_empty", url=url)
        return None


def find_body(doc: HtmlElement) -> HtmlElement | None:
    """Locate the body element; fragments without body content have none."""
    bodies = doc.xpath("//body")
    return bodies[0] if bodies else None


def inner_html(element: HtmlElement | None) -> str:
    """Serialize the children of an element (not the element itself)."""
    if element is None:
        return ""
    parts = [escape(element.text or "", quote=False)]
    parts.extend(tostring(child, encoding="unicode", method="html") for child in element)
    return "".join(parts)


async def ingest_chapter(
    model: DocumentModel,
    title: str,
    url: str,
    html: str,
    process_image: ImageProcessor | None = None,
) -> Chapter:
    """Add one chapter to the model.

    Args:
        model: Document model to append to.
        title: Display title.
        url: Chapter URL, used to resolve relative image references.
        html: Raw chapter HTML (fragment or full document).
        process_image: Optional image processor callback.

    Returns:
        The committed chapter.

    Raises:
        EpubError: E_ALREADY_BUILT if the model no longer accepts chapters.
        ChapterSerializationError: If the chapter cannot become XHTML.
    """
    if model.frozen:
        raise EpubError(
            EpubErrorCode.E_ALREADY_BUILT,
            "Cannot add chapters after the archive has been built",
        )

    chapter_id = new_id()
    set_chapter_context(chapter_id)
    try:
        doc = parse_chapter_html(html, url)

        assets: list[Asset] = []
        body = None
        if doc is not None:
            for element in list(doc.iter("img")):
                asset = await extract_image(element, url, process_image)
                if asset is not None:
                    assets.append(asset)
            body = find_body(doc)

        chapter = Chapter(
            id=chapter_id,
            title=title,
            source_url=url,
            body_html=inner_html(body),
        )

        try:
            build_chapter_document(chapter, model.language)
        except EpubError as e:
            logger.error("chapter_rejected", title=title, error_code=e.code.value, reason=e.message)
            raise

        model.commit_chapter(chapter, assets)
        logger.info(
            "chapter_added",
            title=title,
            url=url,
            asset_count=len(assets),
            chapter_index=len(model.chapters) - 1,
        )
        return chapter
    finally:
        set_chapter_context(None)
