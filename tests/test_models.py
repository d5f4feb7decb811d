import pytest
from pydantic import ValidationError

from trafficjam.models import CameraSource, Reading, TrafficResult, coerce_traffic


@pytest.mark.parametrize(
    "value, expected",
    [
        (42, 42),
        ("17", 17),
        (" 8 ", 8),
        (12.9, 12),
        (None, 0),
        (True, 0),
        ("abc", 0),
        ("", 0),
        (float("nan"), 0),
        (2147483647, 2147483647),
        (-2147483648, -2147483648),
        (2147483648, 0),
        ("99999999999999999999", 0),
        (1e20, 0),
    ],
)
def test_coerce_traffic(value, expected):
    assert coerce_traffic(value) == expected


def test_from_payload_matches_keys_case_insensitively():
    reading = Reading.from_payload({"TITLE": "CV-1", "date": "12/06/2025 18:47", "Traffic": "30", "extra": 1})
    assert reading == Reading(title="CV-1", date="12/06/2025 18:47", traffic=30)


def test_from_payload_missing_fields_default_to_empty():
    reading = Reading.from_payload({"Title": "CV-1"})
    assert reading.date == ""
    assert reading.traffic == 0
    assert not reading.is_valid()


def test_reading_rejects_structured_title():
    with pytest.raises(ValidationError):
        Reading(title={"nested": "x"}, date="12/06/2025 18:47")


def test_reading_is_immutable(sample_reading):
    with pytest.raises(ValidationError):
        sample_reading.traffic = 1


def test_camera_source_dumps_camel_case_and_accepts_both_names():
    source = CameraSource(id=1, url="http://cams/CAM-1.jpg", currentTrafficAmount=5)
    source = source.model_copy(update={"results": [TrafficResult(traffic_id=1, traffic_amount=5)]})

    document = source.model_dump(by_alias=True)

    assert document["currentTrafficAmount"] == 5
    assert document["title"] == "entry"
    assert document["results"][0]["trafficId"] == 1
