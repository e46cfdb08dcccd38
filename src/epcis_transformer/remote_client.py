"""Async client for the OpenEPCIS conversion API.

The remote service exposes the same two conversions as the local engine:

    POST {base}/convert/xml/2.0    EPCIS 1.x XML  -> EPCIS 2.0 XML
    POST {base}/convert/json/2.0   EPCIS 2.0 XML  -> JSON-LD

Both take the raw XML document as the request body with
``Content-Type: application/xml``. Every failure (non-2xx status, network
error, undecodable body) surfaces as a single
:class:`~epcis_transformer.errors.TransformationError` so the coordinator can
treat them uniformly.

Example::

    client = OpenEpcisClient()
    xml_20 = await client.convert_to_v2(xml_12)
    ok = await client.test_connection()
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from .config import DEFAULT_PROBE_URL, DEFAULT_REMOTE_TIMEOUT, DEFAULT_REMOTE_URL
from .errors import TransformationError
from .models import JsonLdTransformOptions

logger = logging.getLogger(__name__)

_XML_HEADERS = {"Content-Type": "application/xml"}


class OpenEpcisClient:
    """Client for the OpenEPCIS conversion endpoints.

    Args:
        base_url: API root, without trailing slash.
        timeout: Per-request timeout in seconds.
        probe_url: URL fetched by :meth:`test_connection`.
        transport: Optional ``httpx`` transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str = DEFAULT_REMOTE_URL,
        timeout: float = DEFAULT_REMOTE_TIMEOUT,
        probe_url: str = DEFAULT_PROBE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.probe_url = probe_url
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _post_xml(self, path: str, xml: str) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            async with self._client() as client:
                response = await client.post(
                    url, content=xml.encode("utf-8"), headers=_XML_HEADERS
                )
                response.raise_for_status()
                return response
        except httpx.HTTPError as e:
            logger.error(f"OpenEPCIS API Error: {e}")
            raise TransformationError(f"OpenEPCIS API Error: {e}") from e

    async def convert_to_v2(self, xml: str) -> str:
        """Convert EPCIS 1.x XML to EPCIS 2.0 XML remotely."""
        response = await self._post_xml("/convert/xml/2.0", xml)
        return response.text

    async def convert_to_jsonld(
        self, xml: str, options: Optional[JsonLdTransformOptions] = None
    ) -> str:
        """Convert EPCIS 2.0 XML to JSON-LD remotely.

        The response is re-serialized locally so ``pretty_print`` and
        ``include_context`` behave the same as for the local projector.
        """
        options = options or JsonLdTransformOptions()
        response = await self._post_xml("/convert/json/2.0", xml)
        try:
            payload: Any = response.json()
        except ValueError as e:
            raise TransformationError(
                f"OpenEPCIS API Error: response is not valid JSON: {e}"
            ) from e

        if not options.include_context and isinstance(payload, dict):
            payload.pop("@context", None)
        if options.pretty_print:
            return json.dumps(payload, indent=2, ensure_ascii=False)
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)

    async def test_connection(self) -> bool:
        """Return True when the probe URL answers with a success status."""
        try:
            async with self._client() as client:
                response = await client.get(self.probe_url, follow_redirects=True)
            return response.is_success
        except httpx.HTTPError as e:
            logger.info(f"OpenEPCIS connection test failed: {e}")
            return False
