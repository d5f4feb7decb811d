import re

_REDACTION_RULES = [
    (re.compile(r"sk-[A-Za-z0-9]{10,}"), "sk-REDACTED"),
    (re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._-]{10,}"), r"\1REDACTED"),
    (re.compile(r"(?i)(api[_-]?key\s*[:=]\s*)(\S+)"), r"\1REDACTED"),
    (re.compile(r"(?i)(token\s*[:=]\s*)(\S+)"), r"\1REDACTED"),
]


def sanitize_error_message(value):
    if not value or not isinstance(value, str):
        return value
    sanitized = value
    for pattern, replacement in _REDACTION_RULES:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


class TrafficJamError(Exception):
    """Base exception for the analyzer and its collaborators."""


class FetchError(TrafficJamError):
    """Raised when a camera image cannot be downloaded."""


class ModelError(TrafficJamError):
    """Raised when the vision model backend fails or is unreachable."""


class CallTimeoutError(TrafficJamError):
    """Raised when a network call exceeds its time budget."""


class FetchTimeoutError(FetchError, CallTimeoutError):
    pass


class ModelTimeoutError(ModelError, CallTimeoutError):
    pass
