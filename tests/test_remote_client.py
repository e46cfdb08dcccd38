"""Tests for the OpenEPCIS client against a mocked transport."""

import json

import httpx
import pytest

from epcis_transformer.errors import TransformationError
from epcis_transformer.models import JsonLdTransformOptions
from epcis_transformer.remote_client import OpenEpcisClient

BASE_URL = "https://remote.example/api"
REMOTE_JSONLD = {
    "@context": ["https://ref.gs1.org/standards/epcis/2.0.0/epcis-context.jsonld"],
    "type": "EPCISDocument",
    "schemaVersion": "2.0",
    "epcisBody": {"eventList": []},
}


def _client(handler):
    return OpenEpcisClient(
        base_url=BASE_URL,
        probe_url="https://remote.example",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_convert_to_v2_posts_raw_xml():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["content_type"] = request.headers["content-type"]
        seen["body"] = request.content.decode("utf-8")
        return httpx.Response(200, text="<EPCISDocument/>")

    result = await _client(handler).convert_to_v2("<epcis:EPCISDocument/>")

    assert result == "<EPCISDocument/>"
    assert seen == {
        "url": f"{BASE_URL}/convert/xml/2.0",
        "content_type": "application/xml",
        "body": "<epcis:EPCISDocument/>",
    }


@pytest.mark.asyncio
async def test_convert_to_jsonld_reformats_response():
    def handler(request):
        assert request.url.path == "/api/convert/json/2.0"
        return httpx.Response(200, json=REMOTE_JSONLD)

    client = _client(handler)
    pretty = await client.convert_to_jsonld("<x/>")
    compact = await client.convert_to_jsonld(
        "<x/>", JsonLdTransformOptions(pretty_print=False)
    )

    assert pretty == json.dumps(REMOTE_JSONLD, indent=2)
    assert compact == json.dumps(REMOTE_JSONLD, separators=(",", ":"))


@pytest.mark.asyncio
async def test_convert_to_jsonld_drops_context_when_excluded():
    def handler(request):
        return httpx.Response(200, json=REMOTE_JSONLD)

    result = await _client(handler).convert_to_jsonld(
        "<x/>", JsonLdTransformOptions(include_context=False)
    )
    assert "@context" not in json.loads(result)


@pytest.mark.asyncio
async def test_error_status_raises_transformation_error():
    def handler(request):
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(TransformationError, match="OpenEPCIS API Error"):
        await _client(handler).convert_to_v2("<x/>")


@pytest.mark.asyncio
async def test_network_error_raises_transformation_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransformationError, match="connection refused"):
        await _client(handler).convert_to_jsonld("<x/>")


@pytest.mark.asyncio
async def test_invalid_json_raises_transformation_error():
    def handler(request):
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(TransformationError, match="not valid JSON"):
        await _client(handler).convert_to_jsonld("<x/>")


@pytest.mark.asyncio
async def test_connection_probe():
    def healthy(request):
        assert request.url.host == "remote.example"
        return httpx.Response(200, text="ok")

    def down(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    def unavailable(request):
        return httpx.Response(503)

    assert await _client(healthy).test_connection() is True
    assert await _client(down).test_connection() is False
    assert await _client(unavailable).test_connection() is False
