"""EPCIS Transformer
===================

Conversion toolkit for **EPCIS** supply-chain event documents.

Key capabilities
----------------
- Migrate EPCIS 1.x XML to EPCIS 2.0 XML, either by rewriting the tree
  (:class:`~epcis_transformer.migrator.SchemaMigrator`) or with a cached XSLT
  stylesheet (:class:`~epcis_transformer.migrator.XsltMigrator`).
- Project EPCIS 2.0 XML into a fixed JSON-LD shape.
- Route each conversion to the remote OpenEPCIS service first and fall back
  to the local engine on any remote failure
  (:class:`~epcis_transformer.coordinator.TransformationCoordinator`).
- FastAPI endpoints, an ``epcis-transformer`` CLI and in-process metrics.

Minimal quick start
-------------------
>>> from epcis_transformer import convert_v1_to_jsonld
>>> print(convert_v1_to_jsonld(xml_12))

The package-level functions run the local engine synchronously; use
:func:`~epcis_transformer.coordinator.create_coordinator` for the async
remote-first variants.
"""

__version__ = "1.0.0"

from typing import Optional

from .errors import EpcisTransformerError, TransformationError, ValidationError
from .migrator import convert_to_v2
from .models import JsonLdTransformOptions, XmlTransformOptions
from .projector import convert_to_jsonld


def convert_v1_to_jsonld(
    xml: str, options: Optional[JsonLdTransformOptions] = None
) -> str:
    """Convert EPCIS 1.x XML to JSON-LD with the local engine."""
    return convert_to_jsonld(convert_to_v2(xml), options)


__all__ = [
    "EpcisTransformerError",
    "JsonLdTransformOptions",
    "TransformationError",
    "ValidationError",
    "XmlTransformOptions",
    "convert_to_jsonld",
    "convert_to_v2",
    "convert_v1_to_jsonld",
]
