import json
from pathlib import Path
from unittest.mock import patch

import pytest

from epcis_transformer import stylesheet
from epcis_transformer.cli import main
from epcis_transformer.coordinator import LocalBackend, TransformationCoordinator
from epcis_transformer.monitoring import TransformMonitor

FIXTURES = Path(__file__).resolve().parent / "fixtures"
SAMPLE_V1 = FIXTURES / "epcis_1_2_sample.xml"
SAMPLE_V2 = FIXTURES / "epcis_2_0_sample.xml"


@pytest.fixture(autouse=True)
def offline(monkeypatch, tmp_path):
    monkeypatch.setenv("EPCIS_REMOTE_ENABLED", "false")
    monkeypatch.setenv("EPCIS_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.delenv("EPCIS_STYLESHEET_URL", raising=False)


def test_convert_to_epcis20_writes_output(tmp_path):
    output = tmp_path / "out.xml"
    assert main(["convert-to-epcis20", str(SAMPLE_V1), "-o", str(output)]) == 0
    text = output.read_text(encoding="utf-8")
    assert 'xmlns:epcis="urn:epcglobal:epcis:xsd:2"' in text
    assert "<!--" not in text


def test_convert_to_epcis20_preserve_comments_to_stdout(capsys):
    assert main(["convert-to-epcis20", str(SAMPLE_V1), "--preserve-comments", "--local"]) == 0
    assert "events recorded by reader 7" in capsys.readouterr().out


def test_convert_to_jsonld_flags(capsys):
    assert main(["convert-to-jsonld", str(SAMPLE_V2), "--no-pretty", "--no-context"]) == 0
    out = capsys.readouterr().out.strip()
    payload = json.loads(out)
    assert "\n" not in out
    assert "@context" not in payload


def test_convert_from_12_to_jsonld(capsys):
    assert main(["convert-from-12-to-jsonld", str(SAMPLE_V1)]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert [event["type"] for event in payload["epcisBody"]["eventList"]] == [
        "ObjectEvent",
        "ObjectEvent",
        "AggregationEvent",
        "TransformationEvent",
    ]


def test_validation_error_exit_code(capsys):
    assert main(["convert-to-jsonld", str(SAMPLE_V1)]) == 1
    assert "Validation Error" in capsys.readouterr().err


def test_missing_input_file(tmp_path, capsys):
    assert main(["convert-to-epcis20", str(tmp_path / "missing.xml")]) == 1
    assert "Error" in capsys.readouterr().err


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "epcis-transformer" in capsys.readouterr().out


class FakeRemote:
    def __init__(self, connected):
        self.connected = connected

    async def test_connection(self):
        return self.connected


@pytest.mark.parametrize("connected, code", [(True, 0), (False, 1)])
def test_test_connection(connected, code):
    coordinator = TransformationCoordinator(
        LocalBackend(), FakeRemote(connected), monitor=TransformMonitor()
    )
    with patch("epcis_transformer.cli.create_coordinator", return_value=coordinator):
        assert main(["test-connection"]) == code


def test_stylesheet_download_and_clear(capsys):
    xslt = (FIXTURES / "epcis_1_to_2.xsl").read_bytes()
    with patch.object(stylesheet, "_fetch", return_value=xslt):
        assert main(["stylesheet", "download", "--url", "https://assets.example/a.xsl"]) == 0
    assert "Stylesheet cached at" in capsys.readouterr().out

    assert main(["stylesheet", "clear"]) == 0
    assert "cleared" in capsys.readouterr().out


def test_stylesheet_download_requires_url(capsys):
    assert main(["stylesheet", "download"]) == 1
    assert "No stylesheet URL" in capsys.readouterr().err
