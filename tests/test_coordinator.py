"""Tests for remote-first execution with local fallback."""

import asyncio
import json
from pathlib import Path

import pytest

from epcis_transformer.config import TransformerSettings
from epcis_transformer.coordinator import (
    LocalBackend,
    RemoteBackend,
    TransformationCoordinator,
    create_coordinator,
)
from epcis_transformer.errors import TransformationError, ValidationError
from epcis_transformer.migrator import SchemaMigrator, XsltMigrator
from epcis_transformer.models import JsonLdTransformOptions, XmlTransformOptions
from epcis_transformer.monitoring import TransformMonitor

FIXTURES = Path(__file__).resolve().parent / "fixtures"
SAMPLE_V1 = (FIXTURES / "epcis_1_2_sample.xml").read_text(encoding="utf-8")
SAMPLE_V2 = (FIXTURES / "epcis_2_0_sample.xml").read_text(encoding="utf-8")


def _jsonld(source):
    return json.dumps({"type": "EPCISDocument", "epcisBody": {"eventList": []}, "source": source})


REMOTE_JSONLD = _jsonld("remote")


class FakeBackend:
    """Backend double recording every call."""

    def __init__(self, name, v2_result=SAMPLE_V2, jsonld_result=REMOTE_JSONLD,
                 v2_error=None, jsonld_error=None, delay=0.0, connected=True):
        self.name = name
        self.v2_result = v2_result
        self.jsonld_result = jsonld_result
        self.v2_error = v2_error
        self.jsonld_error = jsonld_error
        self.delay = delay
        self.connected = connected
        self.calls = []

    async def convert_to_v2(self, xml, options):
        self.calls.append("convert_to_v2")
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.v2_error is not None:
            raise self.v2_error
        return self.v2_result

    async def convert_to_jsonld(self, xml, options):
        self.calls.append("convert_to_jsonld")
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.jsonld_error is not None:
            raise self.jsonld_error
        return self.jsonld_result

    async def test_connection(self):
        return self.connected


def _coordinator(local, remote=None, timeout=1.0):
    return TransformationCoordinator(
        local, remote, remote_timeout=timeout, monitor=TransformMonitor()
    )


@pytest.mark.asyncio
async def test_remote_success_skips_local():
    local = FakeBackend("local", jsonld_result="local")
    remote = FakeBackend("remote")
    coordinator = _coordinator(local, remote)

    assert await coordinator.convert_to_jsonld(SAMPLE_V2) == REMOTE_JSONLD
    assert local.calls == []
    summary = coordinator.monitor.get_backend_summary()
    assert summary["backends"]["convert_to_jsonld"]["remote"]["attempts"] == 1
    assert summary["fallbacks"] == {}


@pytest.mark.asyncio
async def test_remote_failure_falls_back_to_local():
    local = FakeBackend("local", v2_result="<local/>")
    remote = FakeBackend("remote", v2_error=TransformationError("OpenEPCIS API Error: 502"))
    coordinator = _coordinator(local, remote)

    assert await coordinator.convert_to_v2(SAMPLE_V1) == "<local/>"
    assert remote.calls == ["convert_to_v2"]
    assert local.calls == ["convert_to_v2"]
    summary = coordinator.monitor.get_backend_summary()
    assert summary["fallbacks"] == {"convert_to_v2": 1}
    assert summary["backends"]["convert_to_v2"]["remote"]["failures"] == 1
    assert "502" in summary["backends"]["convert_to_v2"]["remote"]["last_error"]


@pytest.mark.asyncio
async def test_any_remote_exception_triggers_fallback():
    local = FakeBackend("local", jsonld_result="local")
    remote = FakeBackend("remote", jsonld_error=ConnectionResetError("peer reset"))
    coordinator = _coordinator(local, remote)

    assert await coordinator.convert_to_jsonld(SAMPLE_V2) == "local"


@pytest.mark.asyncio
async def test_remote_timeout_falls_back():
    local = FakeBackend("local", jsonld_result="local")
    remote = FakeBackend("remote", delay=5.0)
    coordinator = _coordinator(local, remote, timeout=0.05)

    assert await coordinator.convert_to_jsonld(SAMPLE_V2) == "local"
    last_error = coordinator.monitor.get_backend_summary()["backends"]["convert_to_jsonld"]["remote"]["last_error"]
    assert "timed out" in last_error


@pytest.mark.asyncio
async def test_local_only_never_calls_remote():
    local = FakeBackend("local", jsonld_result="local")
    remote = FakeBackend("remote", jsonld_error=TransformationError("unreachable"))
    coordinator = _coordinator(local, remote)

    assert await coordinator.convert_to_jsonld(SAMPLE_V2, local_only=True) == "local"
    assert await coordinator.convert_v1_to_jsonld(SAMPLE_V1, local_only=True) == "local"
    assert remote.calls == []


@pytest.mark.asyncio
async def test_local_error_propagates_after_fallback():
    local = FakeBackend("local", v2_error=TransformationError("local broke"))
    remote = FakeBackend("remote", v2_error=TransformationError("remote broke"))
    coordinator = _coordinator(local, remote)

    with pytest.raises(TransformationError, match="^local broke$"):
        await coordinator.convert_to_v2(SAMPLE_V1)


@pytest.mark.asyncio
async def test_validation_failures_skip_both_backends():
    local = FakeBackend("local")
    remote = FakeBackend("remote")
    coordinator = _coordinator(local, remote)

    with pytest.raises(ValidationError):
        await coordinator.convert_to_v2("<broken")
    with pytest.raises(ValidationError, match="found schema version 1.x"):
        await coordinator.convert_to_jsonld(SAMPLE_V1)
    with pytest.raises(ValidationError, match="Not an EPCIS document"):
        await coordinator.convert_to_v2(
            "<Other/>", XmlTransformOptions(validate_before_transform=True)
        )
    assert local.calls == []
    assert remote.calls == []


@pytest.mark.asyncio
async def test_direct_conversion_routes_each_step_independently():
    local = FakeBackend("local", v2_result=SAMPLE_V2, jsonld_result="local-json")
    remote = FakeBackend(
        "remote",
        v2_error=TransformationError("remote v2 down"),
        jsonld_result=REMOTE_JSONLD,
    )
    coordinator = _coordinator(local, remote)

    result = await coordinator.convert_v1_to_jsonld(SAMPLE_V1)

    assert result == REMOTE_JSONLD
    assert remote.calls == ["convert_to_v2", "convert_to_jsonld"]
    assert local.calls == ["convert_to_v2"]


@pytest.mark.asyncio
async def test_remote_error_page_with_success_status_falls_back():
    remote = FakeBackend(
        "remote",
        v2_result="<html><body>Service temporarily unavailable</body></html>",
    )
    coordinator = _coordinator(LocalBackend(), remote)

    payload = json.loads(await coordinator.convert_v1_to_jsonld(SAMPLE_V1))

    assert payload["type"] == "EPCISDocument"
    assert len(payload["epcisBody"]["eventList"]) == 4
    summary = coordinator.monitor.get_backend_summary()
    assert summary["fallbacks"] == {"convert_to_v2": 1}
    assert summary["backends"]["convert_to_v2"]["local"]["attempts"] == 1
    assert "invalid EPCIS 2.0 document" in summary["backends"]["convert_to_v2"]["remote"]["last_error"]


@pytest.mark.asyncio
async def test_remote_v1_result_is_rejected():
    local = FakeBackend("local", v2_result="<local/>")
    remote = FakeBackend("remote", v2_result=SAMPLE_V1)
    coordinator = _coordinator(local, remote)

    assert await coordinator.convert_to_v2(SAMPLE_V1) == "<local/>"
    assert local.calls == ["convert_to_v2"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        "<html>Bad gateway</html>",
        "[]",
        '{"type": "Other", "epcisBody": {}}',
        '{"type": "EPCISDocument"}',
    ],
)
async def test_remote_jsonld_that_is_not_an_epcis_document_falls_back(body):
    local = FakeBackend("local", jsonld_result="local")
    remote = FakeBackend("remote", jsonld_result=body)
    coordinator = _coordinator(local, remote)

    assert await coordinator.convert_to_jsonld(SAMPLE_V2) == "local"
    assert coordinator.monitor.get_backend_summary()["fallbacks"] == {"convert_to_jsonld": 1}


@pytest.mark.asyncio
async def test_cancellation_is_not_a_remote_failure():
    local = FakeBackend("local", jsonld_result="local")
    remote = FakeBackend("remote", jsonld_error=asyncio.CancelledError())
    coordinator = _coordinator(local, remote)

    with pytest.raises(asyncio.CancelledError):
        await coordinator.convert_to_jsonld(SAMPLE_V2)
    assert local.calls == []


@pytest.mark.asyncio
async def test_connection_probe():
    assert await _coordinator(FakeBackend("local")).test_connection() is False
    remote = FakeBackend("remote", connected=True)
    assert await _coordinator(FakeBackend("local"), remote).test_connection() is True
    remote.connected = False
    assert await _coordinator(FakeBackend("local"), remote).test_connection() is False


@pytest.mark.asyncio
async def test_probe_result_does_not_gate_remote_attempts():
    local = FakeBackend("local", jsonld_result="local")
    remote = FakeBackend("remote", connected=False)
    coordinator = _coordinator(local, remote)

    assert await coordinator.test_connection() is False
    assert await coordinator.convert_to_jsonld(SAMPLE_V2) == REMOTE_JSONLD


@pytest.mark.asyncio
async def test_real_local_backend_end_to_end():
    coordinator = _coordinator(LocalBackend())
    result = await coordinator.convert_v1_to_jsonld(
        SAMPLE_V1, JsonLdTransformOptions(pretty_print=False)
    )
    payload = json.loads(result)
    assert payload["schemaVersion"] == "2.0"
    assert len(payload["epcisBody"]["eventList"]) == 4
    assert "\n" not in result


def test_create_coordinator_without_remote():
    coordinator = create_coordinator(TransformerSettings(remote_enabled=False))
    assert coordinator.remote is None
    assert isinstance(coordinator.local.migrator, SchemaMigrator)
    assert not isinstance(coordinator.local.migrator, XsltMigrator)


def test_create_coordinator_with_remote_and_stylesheet():
    settings = TransformerSettings(
        remote_url="https://remote.example/api",
        remote_timeout=7.5,
        stylesheet_url="https://assets.example/epcis.xsl",
    )
    coordinator = create_coordinator(settings)

    assert isinstance(coordinator.remote, RemoteBackend)
    assert coordinator.remote.client.base_url == "https://remote.example/api"
    assert coordinator.remote_timeout == 7.5
    assert isinstance(coordinator.local.migrator, XsltMigrator)
    assert coordinator.local.migrator.stylesheet_url == "https://assets.example/epcis.xsl"
