"""Lenient HTML to strict XHTML conversion.

Chapter bodies are parsed leniently with lxml.html and copied node by node
into an lxml.etree tree in the XHTML namespace, so the serialized result is
well-formed XML:
- Element names that are not valid XML names (or carry a prefix) are
  unwrapped; their content is kept
- Attributes named xmlns/xmlns:* are dropped; xml:* and epub:* are mapped
  to their namespaces; other prefixed or invalid names are dropped
- Comments that cannot be expressed in XML are dropped, as are
  processing instructions
- Non-void elements with no content are written as start/end tag pairs

Text or attribute values containing characters XML cannot represent raise
ValueError from lxml; callers turn that into a chapter-level failure.
"""

import re

from lxml import etree
from lxml.html import document_fromstring

XHTML_NS = "http://www.w3.org/1999/xhtml"
EPUB_NS = "http://www.idpf.org/2007/ops"
XML_NS = "http://www.w3.org/XML/1998/namespace"

XHTML_NSMAP = {None: XHTML_NS, "epub": EPUB_NS}

VOID_ELEMENTS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "source",
        "track",
        "wbr",
    }
)

_XML_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*$")
_XML_DECLARATION_RE = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)

_PREFIXED_ATTRS = {
    "xml": XML_NS,
    "epub": EPUB_NS,
}


def strip_xml_declaration(html: str) -> str:
    """Drop a leading XML declaration; lxml refuses str input carrying one."""
    return _XML_DECLARATION_RE.sub("", html, count=1)


def append_html_fragment(parent: etree._Element, html: str) -> None:
    """Parse an HTML fragment leniently and append it under parent as XHTML."""
    if not html or not html.strip():
        return

    doc = document_fromstring(f"<html><body>{html}</body></html>")
    bodies = doc.xpath("//body")
    if not bodies:
        return

    _copy_children(bodies[0], parent)


def _xml_attribute_name(name: str) -> str | None:
    lowered = name.lower()
    if lowered == "xmlns" or lowered.startswith("xmlns:"):
        return None

    if ":" in name:
        prefix, _, local = name.partition(":")
        namespace = _PREFIXED_ATTRS.get(prefix.lower())
        if namespace is None or not _XML_NAME_RE.match(local):
            return None
        return f"{{{namespace}}}{local}"

    if not _XML_NAME_RE.match(name):
        return None
    return name


def _append_text(target: etree._Element, text: str | None) -> None:
    if not text:
        return
    if len(target):
        last = target[-1]
        last.tail = (last.tail or "") + text
    else:
        target.text = (target.text or "") + text


def _copy_children(source: etree._Element, target: etree._Element) -> None:
    _append_text(target, source.text)
    for child in source:
        _copy_node(child, target)
        _append_text(target, child.tail)


def _copy_node(node: etree._Element, target: etree._Element) -> None:
    tag = node.tag

    if tag is etree.Comment:
        text = node.text or ""
        if "--" not in text and not text.endswith("-"):
            target.append(etree.Comment(text))
        return

    if not isinstance(tag, str):
        return

    if not _XML_NAME_RE.match(tag):
        _copy_children(node, target)
        return

    name = tag.lower()
    element = etree.SubElement(target, f"{{{XHTML_NS}}}{name}")
    for attr, value in node.attrib.items():
        qname = _xml_attribute_name(attr)
        if qname is not None:
            element.set(qname, value)

    _copy_children(node, element)

    if name not in VOID_ELEMENTS and element.text is None and not len(element):
        element.text = ""
