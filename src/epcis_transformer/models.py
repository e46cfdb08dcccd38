"""Core data structures shared by the migrator, projector and coordinator.

These lightweight dataclasses carry transformation options in and JSON-LD
projections out. They avoid framework dependencies so they can be produced by
the local engine, rebuilt from remote responses, or serialized directly.

Overview:
        * ``XmlTransformOptions`` / ``JsonLdTransformOptions`` configure the two
            transformations. Defaults match the HTTP and CLI defaults.
        * ``SchemaVersion`` identifies EPCIS 1.x vs 2.0 documents.
        * ``EventType`` enumerates the five EPCIS event variants. Declaration order
            is the order in which variants are emitted into ``eventList``.
        * ``EpcisEvent`` holds the fixed subset of fields extracted per event.
        * ``JsonLdDocument`` is the projection root.

Typical construction (simplified)::

        from epcis_transformer.models import EpcisEvent, EventType, JsonLdDocument

        event = EpcisEvent(
                type=EventType.OBJECT_EVENT,
                event_time="2024-01-01T00:00:00Z",
                action="ADD",
        )
        doc = JsonLdDocument(schema_version="2.0", creation_date="2024-01-02T00:00:00.000Z")
        doc.event_list.append(event)
        payload = doc.to_dict()

Design notes:
        * ``to_dict`` emits keys in a stable order and omits every unset field,
            so absent source elements never show up as ``null`` or ``""``.
        * ``EVENT_TYPES`` maps tag local names to variants; the projector never
            branches on raw strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

EPCIS_V1_NAMESPACE = "urn:epcglobal:epcis:xsd:1"
EPCIS_V2_NAMESPACE = "urn:epcglobal:epcis:xsd:2"
EPCIS_CONTEXT_URI = "https://ref.gs1.org/standards/epcis/2.0.0/epcis-context.jsonld"
TARGET_SCHEMA_VERSION = "2.0"


class SchemaVersion(str, Enum):
    """EPCIS schema generation of a document."""

    V1 = "1"
    V2 = "2"

    @property
    def namespace(self) -> str:
        return EPCIS_V1_NAMESPACE if self is SchemaVersion.V1 else EPCIS_V2_NAMESPACE


class EventType(str, Enum):
    """EPCIS event variants in output order."""

    OBJECT_EVENT = "ObjectEvent"
    AGGREGATION_EVENT = "AggregationEvent"
    TRANSACTION_EVENT = "TransactionEvent"
    TRANSFORMATION_EVENT = "TransformationEvent"
    ASSOCIATION_EVENT = "AssociationEvent"


EVENT_TYPES: Dict[str, EventType] = {member.value: member for member in EventType}


@dataclass
class XmlTransformOptions:
    """Options for the 1.x -> 2.0 XML migration.

    Attributes:
        validate_before_transform: Run the document-type gate before migrating.
        preserve_comments: Keep comment nodes while rewriting a 1.x document.
    """

    validate_before_transform: bool = False
    preserve_comments: bool = False


@dataclass
class JsonLdTransformOptions:
    """Options for the 2.0 XML -> JSON-LD projection.

    Attributes:
        pretty_print: Indent output with two spaces; compact otherwise.
        include_context: Emit the fixed ``@context`` URI.
    """

    pretty_print: bool = True
    include_context: bool = True


@dataclass
class Location:
    """``readPoint`` / ``bizLocation`` reference."""

    id: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id}


@dataclass
class EpcisEvent:
    """One projected event. Every field except ``type`` is optional.

    Attributes:
        type: Event variant.
        event_time: ``eventTime`` text exactly as found in the source.
        event_time_zone_offset: ``eventTimeZoneOffset`` text.
        epc_list: EPC identifiers in document order; ``None`` when the source
            has no ``epcList`` container, ``[]`` when the container is empty.
        action: ``action`` text (ADD / OBSERVE / DELETE).
        biz_step: ``bizStep`` URI.
        disposition: ``disposition`` URI.
        read_point: ``readPoint/id`` when present.
        biz_location: ``bizLocation/id`` when present.

    Example:
        >>> EpcisEvent(type=EventType.OBJECT_EVENT, action="ADD").to_dict()
        {'type': 'ObjectEvent', 'action': 'ADD'}
    """

    type: EventType
    event_time: Optional[str] = None
    event_time_zone_offset: Optional[str] = None
    epc_list: Optional[List[str]] = None
    action: Optional[str] = None
    biz_step: Optional[str] = None
    disposition: Optional[str] = None
    read_point: Optional[Location] = None
    biz_location: Optional[Location] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert the event into its JSON-LD record, omitting unset fields."""
        record: Dict[str, Any] = {"type": self.type.value}
        if self.event_time is not None:
            record["eventTime"] = self.event_time
        if self.event_time_zone_offset is not None:
            record["eventTimeZoneOffset"] = self.event_time_zone_offset
        if self.epc_list is not None:
            record["epcList"] = list(self.epc_list)
        if self.action is not None:
            record["action"] = self.action
        if self.biz_step is not None:
            record["bizStep"] = self.biz_step
        if self.disposition is not None:
            record["disposition"] = self.disposition
        if self.read_point is not None:
            record["readPoint"] = self.read_point.to_dict()
        if self.biz_location is not None:
            record["bizLocation"] = self.biz_location.to_dict()
        return record


@dataclass
class JsonLdDocument:
    """Root of the JSON-LD projection.

    Attributes:
        schema_version: ``schemaVersion`` of the source root (``"2.0"`` if unset).
        creation_date: ``creationDate`` of the source root or the projection time.
        event_list: Events grouped by variant in :class:`EventType` order.
        context: ``@context`` URI, or ``None`` to omit the key.
    """

    schema_version: str
    creation_date: str
    event_list: List[EpcisEvent] = field(default_factory=list)
    context: Optional[str] = EPCIS_CONTEXT_URI

    def to_dict(self) -> Dict[str, Any]:
        """Convert the document into a JSON-serializable dictionary."""
        payload: Dict[str, Any] = {}
        if self.context is not None:
            payload["@context"] = self.context
        payload["type"] = "EPCISDocument"
        payload["schemaVersion"] = self.schema_version
        payload["creationDate"] = self.creation_date
        payload["epcisBody"] = {
            "eventList": [event.to_dict() for event in self.event_list]
        }
        return payload
