import math
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Title given to freshly discovered cameras until the bootstrap pass names them.
PLACEHOLDER_TITLE = "entry"


def _utc_now():
    return datetime.now(timezone.utc)


INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1


def _to_int(value):
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    try:
        return int(str(value).strip())
    except ValueError:
        return 0


def coerce_traffic(value):
    """Best-effort integer conversion; anything unparseable or outside int32 becomes 0."""
    number = _to_int(value)
    if not INT32_MIN <= number <= INT32_MAX:
        return 0
    return number


class Reading(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = ""
    date: str = ""
    traffic: int = 0

    @field_validator("title", "date", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        if value is None:
            return ""
        if isinstance(value, (dict, list)):
            raise ValueError("title and date must be plain text")
        return str(value)

    @field_validator("traffic", mode="before")
    @classmethod
    def _coerce_traffic(cls, value):
        return coerce_traffic(value)

    @classmethod
    def from_payload(cls, payload):
        """Builds a reading from a decoded JSON object, matching keys case-insensitively."""
        fields = {}
        for key, value in payload.items():
            name = str(key).strip().lower()
            if name in {"title", "date", "traffic"}:
                fields[name] = value
        return cls(**fields)

    def is_valid(self):
        return bool(self.title) and bool(self.date)


class AnalysisOutcome(BaseModel):
    source_url: str = ""
    created_at: datetime = Field(default_factory=_utc_now)
    reading: Reading | None = None


class TrafficResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int | None = None
    traffic_id: int
    traffic_title: str = ""
    cctv_date: str | None = None
    traffic_amount: int = 0
    created_at: str = ""


class CameraSource(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    url: str
    title: str = PLACEHOLDER_TITLE
    enabled: bool = True
    cctv_date: str | None = None
    current_traffic_amount: int = 0
    created_at: str | None = None
    updated_at: str | None = None
    results: list[TrafficResult] = Field(default_factory=list)
