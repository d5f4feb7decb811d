import pytest
from unittest.mock import MagicMock

from trafficjam.models import CameraSource, Reading
from trafficjam.storage import SourceRepository

JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg"


@pytest.fixture
def sample_reading():
    return Reading(title="3M-TVM-21 (Túnel 3 de Mayo)", date="12/06/2025 18:47", traffic=42)


@pytest.fixture
def model_client():
    client = MagicMock()
    client.complete.return_value = ""
    return client


@pytest.fixture
def fetch_image():
    return MagicMock(return_value=(JPEG_BYTES, "image/jpeg"))


@pytest.fixture
def repository(tmp_path):
    repo = SourceRepository(tmp_path / "trafficjam.db")
    repo.init_db()
    return repo


@pytest.fixture
def make_source():
    def _make(source_id, title="entry", enabled=True):
        return CameraSource(
            id=source_id,
            url=f"http://cic.tenerife.es/e-Traffic3/data/CAM-{source_id}.jpg",
            title=title,
            enabled=enabled,
        )
    return _make
