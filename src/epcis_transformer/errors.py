"""Typed failure signals raised by the transformation engine.

Two categories are surfaced to callers:

* :class:`ValidationError` - the input is not well-formed XML or is not a
  recognized EPCIS document. Caller error; never retried or wrapped.
* :class:`TransformationError` - a recognized input failed during migration or
  projection, or a downstream dependency (remote service, stylesheet fetch)
  failed. The coordinator may absorb it and fall back to the local engine.

Both carry a stable ``code`` so HTTP and CLI layers can report them uniformly::

    try:
        convert_to_jsonld(xml)
    except EpcisTransformerError as exc:
        print(exc.code, exc.message)
"""

from __future__ import annotations

from typing import Dict


class EpcisTransformerError(Exception):
    """Base class for every error raised by :mod:`epcis_transformer`."""

    code = "EPCIS_TRANSFORMER_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, str]:
        """Return the JSON body used by the HTTP layer."""
        return {"message": self.message, "code": self.code}


class ValidationError(EpcisTransformerError):
    """Input is malformed or not an EPCIS document of the expected version."""

    code = "INVALID_XML"


class TransformationError(EpcisTransformerError):
    """A recognized document could not be transformed."""

    code = "TRANSFORMATION_ERROR"
