"""Parsed XML document wrapper used by every transformation step.

``ParsedDocument`` owns one ``lxml`` tree for the duration of a single
transformation call. ``lxml`` keeps per-element namespace maps and comment
nodes, which the migrator needs to rewrite namespaces without disturbing
prefixes and to honour ``preserve_comments``.

Parent lookups are answered by libxml2's node links rather than Python-level
back references, so no reference cycles are created::

    doc = ParsedDocument.parse(xml_text)
    body = next(doc.iter_local("EPCISBody"))
    assert doc.parent_of(body) is doc.root

The parser expands entities declared in the internal subset, so a rebuilt
tree never carries references to a DOCTYPE it no longer has. It never
resolves external entities or fetches DTDs over the network.
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional

from lxml import etree

from .errors import ValidationError

logger = logging.getLogger(__name__)


def _make_parser() -> etree.XMLParser:
    # Input arrives as str and is always re-encoded to UTF-8 before parsing.
    return etree.XMLParser(
        encoding="utf-8",
        remove_comments=False,
        remove_blank_text=False,
        resolve_entities="internal",
        no_network=True,
        load_dtd=False,
    )


def local_name(node: etree._Element) -> Optional[str]:
    """Return the local part of an element tag, or ``None`` for non-elements."""
    if not isinstance(node.tag, str):
        return None
    return etree.QName(node).localname


def namespace_of(node: etree._Element) -> Optional[str]:
    """Return the namespace URI of an element tag, if any."""
    if not isinstance(node.tag, str):
        return None
    return etree.QName(node).namespace


def is_comment(node: etree._Element) -> bool:
    return isinstance(node, etree._Comment)


class ParsedDocument:
    """An owned, mutable XML tree with exactly one root element."""

    def __init__(self, tree: etree._ElementTree) -> None:
        self.tree = tree

    @classmethod
    def parse(cls, text: str) -> "ParsedDocument":
        """Parse UTF-8 text into a document.

        Args:
            text: Complete XML document.

        Returns:
            A new :class:`ParsedDocument`.

        Raises:
            ValidationError: If the input is empty or not well-formed.
        """
        if text is None or not text.strip():
            raise ValidationError("XML parsing failed: document is empty")
        try:
            root = etree.fromstring(text.encode("utf-8"), _make_parser())
        except etree.XMLSyntaxError as e:
            logger.debug(f"XML parse error: {e}")
            raise ValidationError(f"XML parsing failed: {e}") from e
        return cls(root.getroottree())

    @classmethod
    def from_root(cls, root: etree._Element) -> "ParsedDocument":
        return cls(root.getroottree())

    @property
    def root(self) -> etree._Element:
        return self.tree.getroot()

    @property
    def root_local_name(self) -> str:
        return local_name(self.root) or ""

    @property
    def root_namespace(self) -> Optional[str]:
        return namespace_of(self.root)

    def get_root_attribute(self, name: str) -> Optional[str]:
        return self.root.get(name)

    def set_root_attribute(self, name: str, value: str) -> None:
        self.root.set(name, value)

    def iter_local(
        self, name: str, start: Optional[etree._Element] = None
    ) -> Iterator[etree._Element]:
        """Yield descendants of ``start`` (default: root) with local name ``name``.

        Matching ignores namespaces and prefixes, so ``epcis:EventList`` and an
        unprefixed ``EventList`` both match ``"EventList"``. ``start`` itself
        is not yielded.
        """
        origin = self.root if start is None else start
        for node in origin.iterdescendants():
            if local_name(node) == name:
                yield node

    def parent_of(self, node: etree._Element) -> Optional[etree._Element]:
        """Return the parent element of ``node`` (``None`` for the root)."""
        return node.getparent()

    def detached_copy(self) -> "ParsedDocument":
        """Copy of the root element alone, without prolog or epilog nodes."""
        root = etree.fromstring(
            etree.tostring(self.root, encoding="UTF-8"), _make_parser()
        )
        return ParsedDocument.from_root(root)

    def to_xml(self) -> str:
        """Serialize the document, including prolog comments and PIs."""
        return etree.tostring(
            self.tree, xml_declaration=True, encoding="UTF-8"
        ).decode("utf-8")
