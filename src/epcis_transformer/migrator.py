"""EPCIS 1.x -> 2.0 XML migration.

Two interchangeable migrators share one contract,
``migrate(doc, options) -> ParsedDocument``:

* :class:`SchemaMigrator` rewrites the tree directly. A document whose root is
  bound to ``urn:epcglobal:epcis:xsd:1`` is rebuilt under a new root bound to
  ``urn:epcglobal:epcis:xsd:2``. Root attributes are copied verbatim, the
  version-1 namespace declaration is rewritten to version 2 (prefixes kept) and
  every child node is carried over in order. Any other document only has its
  ``schemaVersion`` attribute normalized, so migrating a 2.0 document twice is
  a no-op.
* :class:`XsltMigrator` hands version-1 documents to a cached XSLT 1.0
  stylesheet (see :mod:`epcis_transformer.stylesheet`) instead of rewriting
  the tree by hand.

Comment handling is deterministic: while a 1.x document is rewritten, every
comment (at any depth, including prolog/epilog comments) is dropped unless
``preserve_comments`` is set. Documents that are already 2.0 are left alone.

Example:
        from epcis_transformer.migrator import convert_to_v2
        from epcis_transformer.models import XmlTransformOptions

        xml_20 = convert_to_v2(xml_12, XmlTransformOptions(preserve_comments=True))
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from lxml import etree

from .document import ParsedDocument, is_comment, local_name, namespace_of
from .errors import TransformationError, ValidationError
from .models import TARGET_SCHEMA_VERSION, SchemaVersion, XmlTransformOptions
from .validation import EPCIS_ROOT_NAME, check_well_formed, validate_for_migration

logger = logging.getLogger(__name__)

_V1_NAMESPACE = SchemaVersion.V1.namespace
_V2_NAMESPACE = SchemaVersion.V2.namespace
_V1_PREFIX = "{" + _V1_NAMESPACE + "}"
_V2_PREFIX = "{" + _V2_NAMESPACE + "}"


def _remap_uri(uri: Optional[str]) -> Optional[str]:
    return _V2_NAMESPACE if uri == _V1_NAMESPACE else uri


def _remap_name(name: str) -> str:
    if name.startswith(_V1_PREFIX):
        return _V2_PREFIX + name[len(_V1_PREFIX):]
    return name


def _own_nsmap(element: etree._Element) -> Dict[Optional[str], str]:
    """Namespace declarations made on ``element`` itself (not inherited)."""
    parent = element.getparent()
    inherited = parent.nsmap if parent is not None else {}
    return {
        prefix: _remap_uri(uri)
        for prefix, uri in element.nsmap.items()
        if inherited.get(prefix) != uri
    }


def _append_text(target: etree._Element, text: Optional[str]) -> None:
    """Append ``text`` after the last child of ``target`` (or as its text)."""
    if not text:
        return
    if len(target):
        last = target[-1]
        last.tail = (last.tail or "") + text
    else:
        target.text = (target.text or "") + text


def _without_comments(doc: ParsedDocument) -> ParsedDocument:
    """Return ``doc`` with every comment removed, keeping surrounding text.

    Prolog and epilog nodes are dropped as well; processing instructions
    outside the root element do not take part in the stylesheet transform.
    """
    root = doc.root
    for comment in list(root.iter(etree.Comment)):
        parent = doc.parent_of(comment)
        tail = comment.tail
        previous = comment.getprevious()
        parent.remove(comment)
        if not tail:
            continue
        if previous is not None:
            previous.tail = (previous.tail or "") + tail
        else:
            parent.text = (parent.text or "") + tail
    return doc.detached_copy()


class SchemaMigrator:
    """Rewrite EPCIS 1.x documents into the 2.0 namespace by tree surgery."""

    def migrate(
        self, doc: ParsedDocument, options: Optional[XmlTransformOptions] = None
    ) -> ParsedDocument:
        """Migrate ``doc`` to schema version 2.

        Args:
            doc: Parsed input. It is consumed by this call.
            options: Migration options (defaults apply when omitted).

        Returns:
            The migrated document (``doc`` itself when already 2.0).

        Raises:
            TransformationError: If building the new tree fails.
        """
        options = options or XmlTransformOptions()
        try:
            if doc.root_namespace != _V1_NAMESPACE:
                logger.debug("Document is not in the 1.x namespace; normalizing schemaVersion only")
                doc.set_root_attribute("schemaVersion", TARGET_SCHEMA_VERSION)
                return doc
            return self._rewrite(doc, options)
        except (ValidationError, TransformationError):
            raise
        except Exception as e:
            raise TransformationError(f"Failed to convert XML: {e}") from e

    def _rewrite(
        self, doc: ParsedDocument, options: XmlTransformOptions
    ) -> ParsedDocument:
        old_root = doc.root
        new_root = etree.Element(
            _V2_PREFIX + local_name(old_root), nsmap=_own_nsmap(old_root)
        )
        for name, value in old_root.attrib.items():
            new_root.set(_remap_name(name), value)
        new_root.set("schemaVersion", TARGET_SCHEMA_VERSION)

        self._copy_children(old_root, new_root, options.preserve_comments)

        # addprevious/addnext insert right next to the root, hence the ordering
        for sibling in reversed(list(old_root.itersiblings(preceding=True))):
            copied = self._copy_top_level(sibling, options.preserve_comments)
            if copied is not None:
                new_root.addprevious(copied)
        for sibling in reversed(list(old_root.itersiblings())):
            copied = self._copy_top_level(sibling, options.preserve_comments)
            if copied is not None:
                new_root.addnext(copied)

        logger.info(
            f"Rewrote {EPCIS_ROOT_NAME} from {_V1_NAMESPACE} to {_V2_NAMESPACE}"
        )
        return ParsedDocument.from_root(new_root)

    @staticmethod
    def _copy_top_level(
        node: etree._Element, preserve_comments: bool
    ) -> Optional[etree._Element]:
        if is_comment(node):
            return etree.Comment(node.text) if preserve_comments else None
        if isinstance(node, etree._ProcessingInstruction):
            return etree.ProcessingInstruction(node.target, node.text)
        return None

    def _copy_children(
        self,
        source: etree._Element,
        target: etree._Element,
        preserve_comments: bool,
    ) -> None:
        target.text = source.text
        for child in source:
            if is_comment(child):
                if not preserve_comments:
                    _append_text(target, child.tail)
                    continue
                copied = etree.Comment(child.text)
                target.append(copied)
            elif isinstance(child, etree._ProcessingInstruction):
                copied = etree.ProcessingInstruction(child.target, child.text)
                target.append(copied)
            elif isinstance(child, etree._Entity):
                copied = etree.Entity(child.name)
                target.append(copied)
            else:
                copied = etree.SubElement(
                    target, _remap_name(child.tag), nsmap=_own_nsmap(child)
                )
                for name, value in child.attrib.items():
                    copied.set(_remap_name(name), value)
                self._copy_children(child, copied, preserve_comments)
            copied.tail = child.tail


class XsltMigrator(SchemaMigrator):
    """Migrate 1.x documents with a cached XSLT 1.0 stylesheet.

    Args:
        stylesheet_url: Location of the stylesheet; fetched once per process.
        loader: Callable returning a compiled ``etree.XSLT`` for a URL
            (defaults to :func:`epcis_transformer.stylesheet.load_stylesheet`).
    """

    def __init__(
        self,
        stylesheet_url: str,
        loader: Optional[Callable[[str], etree.XSLT]] = None,
    ) -> None:
        if loader is None:
            from .stylesheet import load_stylesheet

            loader = load_stylesheet
        self.stylesheet_url = stylesheet_url
        self._loader = loader

    def _rewrite(
        self, doc: ParsedDocument, options: XmlTransformOptions
    ) -> ParsedDocument:
        if not options.preserve_comments:
            doc = _without_comments(doc)

        transform = self._loader(self.stylesheet_url)
        try:
            result = transform(doc.tree)
        except etree.XSLTApplyError as e:
            raise TransformationError(f"XSLT transformation failed: {e}") from e

        root = result.getroot()
        if (
            root is None
            or local_name(root) != EPCIS_ROOT_NAME
            or namespace_of(root) != _V2_NAMESPACE
        ):
            raise TransformationError(
                "XSLT transformation did not produce an EPCIS 2.0 document"
            )
        root.set("schemaVersion", TARGET_SCHEMA_VERSION)
        logger.info(f"Applied stylesheet {self.stylesheet_url}")
        return ParsedDocument(result)


_default_migrator = SchemaMigrator()


def migrate(
    doc: ParsedDocument, options: Optional[XmlTransformOptions] = None
) -> ParsedDocument:
    """Migrate ``doc`` with the tree-surgery :class:`SchemaMigrator`."""
    return _default_migrator.migrate(doc, options)


def convert_to_v2(
    xml: str,
    options: Optional[XmlTransformOptions] = None,
    migrator: Optional[SchemaMigrator] = None,
) -> str:
    """Convert EPCIS 1.x XML text into EPCIS 2.0 XML text.

    Args:
        xml: Source document.
        options: Migration options (defaults apply when omitted).
        migrator: Alternate migrator, e.g. an :class:`XsltMigrator`.

    Returns:
        Serialized 2.0 document with an XML declaration.

    Raises:
        ValidationError: Input does not parse, or fails the document-type
            gate when ``validate_before_transform`` is set.
        TransformationError: Migration failed.
    """
    options = options or XmlTransformOptions()
    logger.info("Starting XML transformation")
    if options.validate_before_transform:
        doc = validate_for_migration(xml)
    else:
        doc = check_well_formed(xml)
    migrated = (migrator or _default_migrator).migrate(doc, options)
    try:
        return migrated.to_xml()
    except Exception as e:
        raise TransformationError(f"Failed to serialize XML: {e}") from e
