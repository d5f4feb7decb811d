"""
Recovers a traffic reading from free-form vision model output.

Models answer in many shapes: a plain JSON object, an envelope such as
``[{"data": "..."}]`` or ``{"data": "..."}`` whose payload is itself JSON
(often single-quoted) or loose text, JSON buried in markdown, or a bare
``"<title> - <dd/mm/yyyy hh:mm> - <amount>"`` line. Each shape is handled by
one strategy; ``parse_response`` tries them in priority order and stops at
the first match. Strategies never raise: malformed input is reported as an
errored result and the cascade moves on.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum

from pydantic import ValidationError

from trafficjam.models import Reading, coerce_traffic

logger = logging.getLogger(__name__)

READING_PATTERN = re.compile(r"^(.*?)\s*[-.]\s*(\d{2}/\d{2}/\d{4} \d{2}:\d{2})\s*[-.]\s*(\d+)")
EMBEDDED_OBJECT_PATTERN = re.compile(r"\{.*?\}", re.DOTALL)

# RecursionError: json.loads on deeply nested brackets.
_MALFORMED = (json.JSONDecodeError, ValidationError, TypeError, ValueError, RecursionError)


class ParseStatus(str, Enum):
    MATCHED = "matched"
    DECLINED = "declined"
    ERRORED = "errored"


@dataclass(frozen=True)
class ParseResult:
    status: ParseStatus
    reading: Reading | None = None
    strategy: str | None = None
    error: Exception | None = None

    @classmethod
    def matched(cls, reading, strategy):
        return cls(ParseStatus.MATCHED, reading=reading, strategy=strategy)

    @classmethod
    def declined(cls, strategy=None):
        return cls(ParseStatus.DECLINED, strategy=strategy)

    @classmethod
    def errored(cls, error, strategy=None):
        return cls(ParseStatus.ERRORED, strategy=strategy, error=error)

    @property
    def ok(self):
        return self.status is ParseStatus.MATCHED


def normalize_candidate_text(text):
    return text.strip().replace("'", '"')


def parse_direct(text):
    try:
        payload = json.loads(text)
        if not isinstance(payload, dict):
            return ParseResult.declined("direct")
        reading = Reading.from_payload(payload)
    except _MALFORMED as exc:
        return ParseResult.errored(exc, "direct")
    if not reading.is_valid():
        return ParseResult.declined("direct")
    return ParseResult.matched(reading, "direct")


def parse_pattern(text):
    match = READING_PATTERN.match(text or "")
    if not match:
        return ParseResult.declined("pattern")
    reading = Reading(
        title=match.group(1).strip(),
        date=match.group(2).strip(),
        traffic=coerce_traffic(match.group(3)),
    )
    if not reading.is_valid():
        return ParseResult.declined("pattern")
    return ParseResult.matched(reading, "pattern")


def parse_data_candidate(data, strategy):
    """Parses the string carried in an envelope's ``data`` field."""
    if not isinstance(data, str):
        return ParseResult.errored(TypeError("envelope 'data' must be a string"), strategy)
    result = parse_direct(normalize_candidate_text(data))
    if result.ok:
        return ParseResult.matched(result.reading, strategy)
    if result.status is ParseStatus.ERRORED:
        logger.warning("Failed to parse inner 'data' as a reading object: %s", result.error)
    # The pattern runs on the raw value, quotes untouched.
    result = parse_pattern(data)
    if result.ok:
        return ParseResult.matched(result.reading, strategy)
    return ParseResult.declined(strategy)


def parse_enveloped_array(text):
    try:
        payload = json.loads(text)
    except _MALFORMED as exc:
        return ParseResult.errored(exc, "enveloped_array")
    if not isinstance(payload, list) or not payload:
        return ParseResult.declined("enveloped_array")
    first = payload[0]
    if not isinstance(first, dict) or "data" not in first:
        return ParseResult.declined("enveloped_array")
    return parse_data_candidate(first["data"], "enveloped_array")


def parse_enveloped_object(text):
    try:
        payload = json.loads(text)
    except _MALFORMED as exc:
        return ParseResult.errored(exc, "enveloped_object")
    if not isinstance(payload, dict) or "data" not in payload:
        return ParseResult.declined("enveloped_object")
    return parse_data_candidate(payload["data"], "enveloped_object")


def parse_embedded_object(text):
    for match in EMBEDDED_OBJECT_PATTERN.finditer(text):
        result = parse_direct(match.group(0))
        if result.ok:
            return ParseResult.matched(result.reading, "embedded_object")
    return ParseResult.declined("embedded_object")


STRATEGIES = (
    ("direct", parse_direct),
    ("enveloped_array", parse_enveloped_array),
    ("enveloped_object", parse_enveloped_object),
    ("embedded_object", parse_embedded_object),
    ("pattern", parse_pattern),
)


def parse_response(text):
    """Runs the strategy cascade over a model response and returns a ParseResult."""
    if not text or not text.strip():
        return ParseResult.declined()
    for name, strategy in STRATEGIES:
        result = strategy(text)
        if result.ok:
            logger.debug("Response parsed by %s strategy", name)
            return result
        if result.status is ParseStatus.ERRORED:
            logger.debug("%s strategy rejected response: %s", name, result.error)
    return ParseResult.declined()


def parse_reading(text):
    return parse_response(text).reading
