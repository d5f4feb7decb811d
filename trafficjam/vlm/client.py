import base64
import logging
import time

import requests

from trafficjam.errors import ModelError, ModelTimeoutError, sanitize_error_message
from trafficjam.settings import (
    get_vlm_api_key,
    get_vlm_base_url,
    get_vlm_max_retries,
    get_vlm_max_tokens,
    get_vlm_model,
    get_vlm_timeout_seconds,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a useful assistant that replies using a direct style"


class VLMClient:
    """
    Chat-completions client for an OpenAI-compatible vision model endpoint
    (Ollama serves one under /v1).
    """

    def __init__(self, model=None, timeout_seconds=None, max_retries=None, max_tokens=None, base_url=None, api_key=None, session=None, retry_backoff_seconds=1.0, stop_event=None):
        self.model = model or get_vlm_model()
        self.timeout_seconds = timeout_seconds or get_vlm_timeout_seconds()
        if max_retries is None:
            max_retries = get_vlm_max_retries()
        # At least one attempt is always made.
        self.max_retries = max(1, max_retries)
        self.stop_event = stop_event
        self.max_tokens = max_tokens or get_vlm_max_tokens()
        self.base_url = (base_url or get_vlm_base_url()).rstrip("/")
        self.api_key = api_key or get_vlm_api_key()
        self.retry_backoff_seconds = retry_backoff_seconds
        self.session = session or requests.Session()
        self.headers = {"Content-Type": "application/json"}
        if self.api_key:
            self.headers["Authorization"] = f"Bearer {self.api_key}"

    def _image_to_data_url(self, image_bytes, content_type):
        content_type = (content_type or "image/jpeg").split(";")[0]
        encoded = base64.b64encode(image_bytes).decode("ascii")
        return f"data:{content_type};base64,{encoded}"

    def _build_payload(self, prompt, image_bytes, content_type):
        content = [{"type": "text", "text": prompt}]
        # An empty payload (failed download) is sent as a text-only request.
        if image_bytes:
            content.append(
                {
                    "type": "image_url",
                    "image_url": {"url": self._image_to_data_url(image_bytes, content_type)},
                }
            )
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": content},
            ],
            "temperature": 0.0,
            "max_tokens": self.max_tokens,
        }

    def _extract_output_text(self, payload):
        if not isinstance(payload, dict):
            raise ModelError("Unexpected VLM response payload")
        if payload.get("choices"):
            message = payload["choices"][0].get("message") or {}
            content = message.get("content")
            if isinstance(content, list):
                parts = []
                for item in content:
                    if isinstance(item, dict):
                        if item.get("text"):
                            parts.append(item["text"])
                    elif isinstance(item, str):
                        parts.append(item)
                return "".join(parts).strip()
            if isinstance(content, str):
                return content
            return ""
        if payload.get("output_text"):
            return payload["output_text"]
        return ""

    def _post(self, payload):
        url = f"{self.base_url}/chat/completions"
        try:
            response = self.session.post(url, headers=self.headers, json=payload, timeout=self.timeout_seconds)
        except requests.Timeout as exc:
            raise ModelTimeoutError(f"VLM request timed out after {self.timeout_seconds}s") from exc
        except requests.RequestException as exc:
            raise ModelError(sanitize_error_message(f"VLM request failed: {exc}")) from exc
        if response.status_code >= 400:
            try:
                error_payload = response.json()
            except ValueError:
                error_payload = response.text
            raise ModelError(sanitize_error_message(f"HTTP {response.status_code}: {error_payload}"))
        try:
            return response.json()
        except ValueError as exc:
            raise ModelError("VLM response was not valid JSON") from exc

    def complete(self, prompt, image_bytes=None, content_type=None):
        """
        Sends one prompt (plus optional image) and returns the reply text.

        An empty string means the backend answered without content. Transport
        and backend failures are retried, then raised as ModelError.
        """
        payload = self._build_payload(prompt, image_bytes, content_type)
        last_error = None
        for attempt in range(1, self.max_retries + 1):
            try:
                data = self._post(payload)
                return self._extract_output_text(data)
            except ModelError as exc:
                last_error = exc
                logger.warning("VLM attempt %s/%s failed: %s", attempt, self.max_retries, exc)
            if attempt < self.max_retries and self._backoff(attempt):
                logger.info("Stop requested, abandoning VLM retries")
                break
        raise last_error

    def _backoff(self, attempt):
        """Waits before the next attempt; returns True when a stop was requested."""
        delay = self.retry_backoff_seconds * attempt
        if self.stop_event is not None:
            return self.stop_event.wait(delay)
        time.sleep(delay)
        return False
