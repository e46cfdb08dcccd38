"""Projection of EPCIS 2.0 XML documents into JSON-LD.

The projector walks ``EPCISBody/EventList`` and emits one JSON-LD record per
event. Variants are emitted in :class:`~epcis_transformer.models.EventType`
order: every ``ObjectEvent`` first, then every ``AggregationEvent`` and so on,
each bucket in document order. Element names are matched by local name, so
prefixed (``epcis:ObjectEvent``) and unprefixed markup are treated alike.

Only a fixed subset of event fields is extracted: ``eventTime``,
``eventTimeZoneOffset``, ``epcList``, ``action``, ``bizStep``,
``disposition``, ``readPoint/id`` and ``bizLocation/id``. A field whose source
element is missing or empty is left out of the record.

Example:
        from epcis_transformer.projector import convert_to_jsonld
        from epcis_transformer.models import JsonLdTransformOptions

        text = convert_to_jsonld(xml_20, JsonLdTransformOptions(pretty_print=False))
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from lxml import etree

from .document import ParsedDocument, local_name
from .errors import TransformationError, ValidationError
from .models import (
    EPCIS_CONTEXT_URI,
    EVENT_TYPES,
    TARGET_SCHEMA_VERSION,
    EpcisEvent,
    EventType,
    JsonLdDocument,
    JsonLdTransformOptions,
    Location,
)
from .validation import validate_for_projection

logger = logging.getLogger(__name__)

# EPCIS 1.x placed TransformationEvent under EventList/extension.
_EXTENSION_WRAPPER = "extension"


def _utc_timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _first(doc: ParsedDocument, name: str, start: etree._Element) -> Optional[etree._Element]:
    return next(doc.iter_local(name, start), None)


def _text_of(doc: ParsedDocument, parent: etree._Element, name: str) -> Optional[str]:
    """Stripped text of the first ``name`` descendant, ``None`` if missing/empty."""
    element = _first(doc, name, parent)
    if element is None:
        return None
    text = "".join(element.itertext()).strip()
    return text or None


def _location(doc: ParsedDocument, event: etree._Element, name: str) -> Optional[Location]:
    container = _first(doc, name, event)
    if container is None:
        return None
    location_id = _text_of(doc, container, "id")
    return Location(id=location_id) if location_id else None


def _epc_list(doc: ParsedDocument, event: etree._Element) -> Optional[List[str]]:
    container = _first(doc, "epcList", event)
    if container is None:
        return None
    epcs = []
    for epc in doc.iter_local("epc", container):
        text = "".join(epc.itertext()).strip()
        if text:
            epcs.append(text)
    return epcs


def extract_event(
    doc: ParsedDocument, element: etree._Element, event_type: EventType
) -> EpcisEvent:
    """Build an :class:`EpcisEvent` from one event element."""
    return EpcisEvent(
        type=event_type,
        event_time=_text_of(doc, element, "eventTime"),
        event_time_zone_offset=_text_of(doc, element, "eventTimeZoneOffset"),
        epc_list=_epc_list(doc, element),
        action=_text_of(doc, element, "action"),
        biz_step=_text_of(doc, element, "bizStep"),
        disposition=_text_of(doc, element, "disposition"),
        read_point=_location(doc, element, "readPoint"),
        biz_location=_location(doc, element, "bizLocation"),
    )


def _bucket_events(event_list: etree._Element) -> Dict[EventType, List[etree._Element]]:
    """Group event elements of ``event_list`` by variant, in document order."""
    buckets: Dict[EventType, List[etree._Element]] = {member: [] for member in EventType}
    for child in event_list:
        name = local_name(child)
        if name == _EXTENSION_WRAPPER:
            candidates = list(child)
        else:
            candidates = [child]
        for candidate in candidates:
            event_type = EVENT_TYPES.get(local_name(candidate) or "")
            if event_type is not None:
                buckets[event_type].append(candidate)
    return buckets


def project(
    doc: ParsedDocument, options: Optional[JsonLdTransformOptions] = None
) -> JsonLdDocument:
    """Project a validated EPCIS 2.0 document into a :class:`JsonLdDocument`.

    Args:
        doc: Document that already passed the version-2 gate.
        options: Projection options (defaults apply when omitted).

    Returns:
        The JSON-LD projection. ``event_list`` is empty when the document has
        no ``EPCISBody``/``EventList`` or no events.
    """
    options = options or JsonLdTransformOptions()
    result = JsonLdDocument(
        schema_version=doc.get_root_attribute("schemaVersion") or TARGET_SCHEMA_VERSION,
        creation_date=doc.get_root_attribute("creationDate") or _utc_timestamp(),
        context=EPCIS_CONTEXT_URI if options.include_context else None,
    )

    body = _first(doc, "EPCISBody", doc.root)
    event_list = _first(doc, "EventList", body) if body is not None else None
    if event_list is None:
        logger.debug("No EPCISBody/EventList found; emitting an empty eventList")
        return result

    buckets = _bucket_events(event_list)
    for event_type in EventType:
        for element in buckets[event_type]:
            result.event_list.append(extract_event(doc, element, event_type))
    logger.debug(f"Projected {len(result.event_list)} events")
    return result


def serialize(document: JsonLdDocument, options: Optional[JsonLdTransformOptions] = None) -> str:
    """Serialize a projection as JSON text."""
    options = options or JsonLdTransformOptions()
    if options.pretty_print:
        return json.dumps(document.to_dict(), indent=2, ensure_ascii=False)
    return json.dumps(document.to_dict(), separators=(",", ":"), ensure_ascii=False)


def convert_to_jsonld(
    xml: str, options: Optional[JsonLdTransformOptions] = None
) -> str:
    """Convert EPCIS 2.0 XML text into JSON-LD text.

    The version-2 gate always runs first, regardless of ``options``.

    Raises:
        ValidationError: Input is malformed, not an EPCIS document, or not 2.0.
        TransformationError: Projection failed.
    """
    options = options or JsonLdTransformOptions()
    logger.info("Starting JSON-LD conversion")
    doc = validate_for_projection(xml)
    try:
        return serialize(project(doc, options), options)
    except (ValidationError, TransformationError):
        raise
    except Exception as e:
        raise TransformationError(f"Failed to convert to JSON-LD: {e}") from e
