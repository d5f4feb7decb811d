import logging
from datetime import timezone

import pytest
from unittest.mock import MagicMock

from trafficjam.analyzer import ANALYSIS_PROMPT, TrafficAnalyzer, build_analyzer
from trafficjam.errors import FetchError, ModelError
from trafficjam.models import Reading
from trafficjam.vlm.prober import FieldRecoveryProber

JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg"

TEMPLATE = "http://cams.example/{identifier}.jpg"


def _analyzer(client, fetch_image, prober=None):
    return TrafficAnalyzer(client, prober=prober, fetch_image=fetch_image, image_url_template=TEMPLATE)


def test_analyze_returns_parsed_reading(model_client, fetch_image):
    model_client.complete.return_value = '{"Title": "CV-1", "Date": "12/06/2025 18:47", "Traffic": 30}'

    outcome = _analyzer(model_client, fetch_image).analyze("CV-1")

    fetch_image.assert_called_once_with("http://cams.example/CV-1.jpg")
    model_client.complete.assert_called_once_with(ANALYSIS_PROMPT, JPEG_BYTES, "image/jpeg")
    assert outcome.source_url == "http://cams.example/CV-1.jpg"
    assert outcome.reading == Reading(title="CV-1", date="12/06/2025 18:47", traffic=30)
    assert outcome.created_at.tzinfo == timezone.utc


def test_fetch_failure_continues_with_empty_image(model_client, caplog):
    fetch_image = MagicMock(side_effect=FetchError("connection refused"))
    model_client.complete.return_value = '{"Title": "CV-1", "Date": "12/06/2025 18:47", "Traffic": 5}'

    with caplog.at_level(logging.ERROR, logger="trafficjam.analyzer"):
        outcome = _analyzer(model_client, fetch_image).analyze("CV-1")

    assert model_client.complete.call_args.args[1] == b""
    assert outcome.reading is not None
    assert "Error downloading image" in caplog.text


def test_model_error_propagates(model_client, fetch_image):
    model_client.complete.side_effect = ModelError("backend down")
    with pytest.raises(ModelError):
        _analyzer(model_client, fetch_image).analyze("CV-1")


def test_empty_response_has_no_reading(model_client, fetch_image):
    prober = MagicMock()
    model_client.complete.return_value = ""

    outcome = _analyzer(model_client, fetch_image, prober).analyze("CV-1")

    assert outcome.reading is None
    assert outcome.source_url == "http://cams.example/CV-1.jpg"
    prober.probe.assert_not_called()


def test_unparseable_response_without_prober(model_client, fetch_image, caplog):
    model_client.complete.return_value = "I cannot read this image."

    with caplog.at_level(logging.WARNING, logger="trafficjam.analyzer"):
        outcome = _analyzer(model_client, fetch_image).analyze("CV-1")

    assert outcome.reading is None
    assert model_client.complete.call_count == 1
    assert "could not be parsed" in caplog.text


def test_unparseable_response_uses_wired_prober(model_client, fetch_image, sample_reading):
    prober = MagicMock()
    prober.probe.return_value = sample_reading
    model_client.complete.return_value = "I cannot read this image."

    outcome = _analyzer(model_client, fetch_image, prober).analyze("CV-1")

    prober.probe.assert_called_once_with(JPEG_BYTES, "image/jpeg")
    assert outcome.reading == sample_reading


def test_prober_not_used_when_parsing_succeeds(model_client, fetch_image):
    prober = MagicMock()
    model_client.complete.return_value = "CV-1 - 12/06/2025 18:47 - 15"

    outcome = _analyzer(model_client, fetch_image, prober).analyze("CV-1")

    assert outcome.reading.traffic == 15
    prober.probe.assert_not_called()


def test_build_analyzer_wires_prober_only_when_asked(model_client, monkeypatch):
    monkeypatch.setenv("FIELD_PROBER_ENABLED", "true")
    assert build_analyzer(model_client).prober is None
    assert build_analyzer(model_client, use_prober=False).prober is None
    prober = build_analyzer(model_client, use_prober=True).prober
    assert isinstance(prober, FieldRecoveryProber)
    assert prober.client is model_client
