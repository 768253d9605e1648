"""
Mutable markup trees backed by lxml.

Rendered views are usually fragments (no ``<html>`` or doctype). A fragment is
wrapped in a throwaway root element before parsing so that top-level siblings
keep a common parent, and the root is unwrapped again on serialization.

Parsing is XML-first: markup that is well-formed XML keeps its exact structure
(``<span/>`` stays empty), anything else goes through libxml2's lenient HTML
parser.
"""

import copy
import html
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from lxml import etree

from ..exceptions import ParseFailure

logger = logging.getLogger(__name__)

ROOT_ID = "__viewx_root__"

# Elements that must stay self-closing when serialized as XML.
VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
})

_DOCUMENT_RE = re.compile(r"<html[\s>]|<!doctype", re.IGNORECASE)


def is_document(markup: str) -> bool:
    """True when markup is a full document rather than a fragment."""
    return bool(_DOCUMENT_RE.search(markup))


def _xml_parser() -> etree.XMLParser:
    # Parsers are not shareable between threads, so each parse gets its own.
    return etree.XMLParser(resolve_entities=False, remove_blank_text=False, no_network=True)


def _html_parser() -> etree.HTMLParser:
    return etree.HTMLParser(remove_blank_text=False, default_doctype=False, no_network=True)


def join_text(*parts: Optional[str]) -> Optional[str]:
    """Concatenate text pieces, keeping None when every piece is empty."""
    text = "".join(part for part in parts if part)
    return text or None


def is_element(node) -> bool:
    """True for real elements (not comments, processing instructions or strings)."""
    return isinstance(node, etree._Element) and isinstance(node.tag, str)


def _inner_markup(element: etree._Element, method: str) -> str:
    """Serialize an element's content without its own start and end tags."""
    if element.text is None and len(element) == 0:
        return ""
    serialized = etree.tostring(element, method=method, encoding="unicode", with_tail=False)
    start = serialized.index(">") + 1
    end = serialized.rindex("</")
    return serialized[start:end]


def _close_empty_elements(root: etree._Element) -> None:
    """Force explicit end tags on empty non-void elements for XML output."""
    for element in root.iter():
        if not isinstance(element.tag, str):
            continue
        if element.text is None and len(element) == 0 and element.tag.lower() not in VOID_ELEMENTS:
            element.text = ""


@dataclass
class Fragment:
    """
    Parsed payload ready to be spliced into a tree.

    ``text`` is the text before the first element; each element carries its
    own trailing text as its lxml tail.
    """
    text: Optional[str] = None
    elements: List[etree._Element] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.text and not self.elements

    def first_element(self) -> Optional[etree._Element]:
        for element in self.elements:
            if is_element(element):
                return element
        return None

    def copy(self) -> 'Fragment':
        """Deep copy, so the same payload can be inserted at several nodes."""
        return Fragment(self.text, [copy.deepcopy(element) for element in self.elements])


def parse_fragment(payload: Optional[str], strict_first: bool = True) -> Fragment:
    """
    Parse a markup payload into a fragment.

    Strict XML is tried first; on failure the payload is parsed leniently as
    the body of an HTML document. Never raises: unparseable content is
    dropped and an empty fragment returned.
    """
    if not payload or not payload.strip():
        return Fragment()

    if strict_first:
        try:
            container = etree.fromstring(f"<viewx-fragment>{payload}</viewx-fragment>", _xml_parser())
            return Fragment(container.text, list(container))
        except (etree.XMLSyntaxError, ValueError):
            logger.debug("Payload is not well-formed XML, falling back to lenient HTML parsing")

    try:
        document = etree.fromstring(f"<html><body>{payload}</body></html>", _html_parser())
    except (etree.LxmlError, ValueError) as e:
        logger.warning(f"Dropping unparseable payload: {e}")
        return Fragment()

    body = document.find("body") if document is not None else None
    if body is None:
        logger.warning("Dropping payload with no body content after lenient parsing")
        return Fragment()
    return Fragment(body.text, list(body))


class MarkupTree:
    """
    A parsed, mutable view.

    Attributes:
        root: Top element of the parsed document (the wrapper in XML fragment
            mode, ``<html>`` otherwise)
        content_root: Element whose descendants are the view's own nodes
        method: ``"xml"`` or ``"html"``, the serialization method matching the parser
        fragment: Whether the source was a fragment that must be unwrapped
        doctype: Doctype declaration of a full document, if any
    """

    def __init__(self, root: etree._Element, content_root: etree._Element,
                 method: str, fragment: bool, doctype: Optional[str] = None):
        self.root = root
        self.content_root = content_root
        self.method = method
        self.fragment = fragment
        self.doctype = doctype

    @classmethod
    def parse(cls, markup: str, strict_first: bool = True) -> 'MarkupTree':
        """
        Parse base markup.

        Raises:
            ParseFailure: If the markup cannot be parsed at all
        """
        if markup is None:
            raise ParseFailure("No markup to parse")

        if is_document(markup):
            return cls._parse_document(markup)

        if strict_first:
            try:
                root = etree.fromstring(f'<div id="{ROOT_ID}">{markup}</div>', _xml_parser())
                return cls(root, root, "xml", True)
            except (etree.XMLSyntaxError, ValueError):
                logger.debug("Base markup is not well-formed XML, using the HTML parser")

        try:
            root = etree.fromstring(
                f'<html><body><div id="{ROOT_ID}">{markup}</div></body></html>', _html_parser()
            )
        except (etree.LxmlError, ValueError) as e:
            raise ParseFailure(f"Failed to parse markup as HTML: {e}") from e

        wrapper = cls._find_wrapper(root)
        if wrapper is None:
            raise ParseFailure("Fragment root was lost while parsing")
        return cls(root, wrapper, "html", True)

    @classmethod
    def _parse_document(cls, markup: str) -> 'MarkupTree':
        try:
            root = etree.fromstring(markup, _html_parser())
        except (etree.LxmlError, ValueError) as e:
            raise ParseFailure(f"Failed to parse document: {e}") from e
        if root is None:
            raise ParseFailure("Document is empty")
        doctype = root.getroottree().docinfo.doctype or None
        return cls(root, root, "html", False, doctype)

    @staticmethod
    def _find_wrapper(root: etree._Element) -> Optional[etree._Element]:
        if root.get("id") == ROOT_ID:
            return root
        return root.find(f".//div[@id='{ROOT_ID}']")

    def copy(self) -> 'MarkupTree':
        """Independent working copy of this tree."""
        root = copy.deepcopy(self.root)
        content_root = self._find_wrapper(root) if self.fragment else root
        return MarkupTree(root, content_root, self.method, self.fragment, self.doctype)

    def contains(self, node: etree._Element) -> bool:
        """True if node belongs to the view content (and is not the synthetic root)."""
        if node is self.content_root:
            return not self.fragment
        if not self.fragment:
            return node.getroottree().getroot() is self.root
        for ancestor in node.iterancestors():
            if ancestor is self.content_root:
                return True
        return False

    def serialize(self) -> str:
        """Serialize the view back to markup, without any parser scaffolding."""
        if not self.fragment:
            return etree.tostring(
                self.root, method="html", encoding="unicode", doctype=self.doctype
            )

        if self.method == "xml":
            _close_empty_elements(self.content_root)
            return _inner_markup(self.content_root, "xml")

        # Unbalanced markup may have pushed nodes out of the wrapper; keep them.
        parts = [_inner_markup(self.content_root, "html")]
        if self.content_root.tail:
            parts.append(html.escape(self.content_root.tail, quote=False))
        for sibling in self.content_root.itersiblings():
            parts.append(etree.tostring(sibling, method="html", encoding="unicode", with_tail=True))
        return "".join(parts)

    def __repr__(self):
        kind = "fragment" if self.fragment else "document"
        return f"<MarkupTree({kind}, method={self.method})>"
