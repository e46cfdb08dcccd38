"""Well-formedness and document-type checks run before migration/projection.

The gate answers three questions, each raising :class:`ValidationError` on
failure:

1. Does the text parse? (:func:`check_well_formed`)
2. Is the root an ``EPCISDocument`` of a known schema version?
   (:func:`check_is_epcis_document`)
3. Is it the version the entry point requires? (:func:`require_version`)

Version detection (:func:`detect_schema_version`) is lenient and returns
``None`` for unknown documents; the migrator uses it directly when the caller
did not ask for validation.
"""

from __future__ import annotations

import logging
from typing import Optional

from .document import ParsedDocument
from .errors import ValidationError
from .models import SchemaVersion

logger = logging.getLogger(__name__)

EPCIS_ROOT_NAME = "EPCISDocument"


def check_well_formed(text: str) -> ParsedDocument:
    """Parse ``text`` or raise :class:`ValidationError`."""
    return ParsedDocument.parse(text)


def detect_schema_version(doc: ParsedDocument) -> Optional[SchemaVersion]:
    """Best-effort schema version of ``doc``.

    The root namespace decides when present. An unqualified root falls back
    to the ``schemaVersion`` attribute (``1.x`` or ``2.x``).

    Returns:
        The detected version or ``None`` when unrecognized.
    """
    namespace = doc.root_namespace
    if namespace:
        for version in SchemaVersion:
            if namespace == version.namespace:
                return version
        return None

    declared = (doc.get_root_attribute("schemaVersion") or "").strip()
    major = declared.split(".", 1)[0]
    if major == "1":
        return SchemaVersion.V1
    if major == "2":
        return SchemaVersion.V2
    return None


def check_is_epcis_document(doc: ParsedDocument) -> SchemaVersion:
    """Confirm ``doc`` is an EPCIS document and return its schema version.

    Raises:
        ValidationError: If the root is not ``EPCISDocument`` or the version
            cannot be determined.
    """
    if doc.root_local_name != EPCIS_ROOT_NAME:
        raise ValidationError(
            f"Not an EPCIS document: unexpected root element '{doc.root_local_name}'"
        )

    version = detect_schema_version(doc)
    if version is None:
        raise ValidationError(
            "Unrecognized EPCIS schema version "
            f"(namespace={doc.root_namespace!r}, "
            f"schemaVersion={doc.get_root_attribute('schemaVersion')!r})"
        )
    logger.debug(f"Detected EPCIS schema version {version.value}")
    return version


def require_version(doc: ParsedDocument, expected: SchemaVersion) -> SchemaVersion:
    """Run :func:`check_is_epcis_document` and insist on ``expected``."""
    version = check_is_epcis_document(doc)
    if version is not expected:
        raise ValidationError(
            f"Invalid EPCIS {expected.value}.0 XML document: "
            f"found schema version {version.value}.x"
        )
    return version


def validate_for_projection(text: str) -> ParsedDocument:
    """Full gate for the JSON-LD path: parse, EPCIS root, version 2."""
    doc = check_well_formed(text)
    require_version(doc, SchemaVersion.V2)
    return doc


def validate_for_migration(text: str) -> ParsedDocument:
    """Gate for the 1.x -> 2.0 path when validation was requested."""
    doc = check_well_formed(text)
    check_is_epcis_document(doc)
    return doc
