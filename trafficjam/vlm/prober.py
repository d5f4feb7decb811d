import logging

from trafficjam.models import Reading, coerce_traffic

logger = logging.getLogger(__name__)

TITLE_PROMPT = (
    "You are analyzing a CCTV traffic camera image. Your task is to extract and return ONLY the text visible "
    "in the top left corner of the image as a plain string. Do NOT return JSON, Markdown, HTML, or any "
    "explanation. Only the text itself.\n"
    "Sample output: '3M-TVM-21 (Túnel 3 de Mayo)'"
)
DATE_PROMPT = (
    "You are analyzing a CCTV traffic camera image. Your task is to extract and return ONLY the text visible "
    "in the bottom right corner of the image as a plain string. The text represents a Date. Do NOT return "
    "JSON, Markdown, HTML, or any explanation. Only the date string.\n"
    "Sample output: '12/06/2025 18:47'"
)
TRAFFIC_PROMPT = (
    "You are analyzing a CCTV traffic camera image. Your task is to analyze the visible road area and return "
    "ONLY the estimated current traffic level as an integer from 0 (no traffic) to 100 (maximum congestion). "
    "Do NOT return JSON, Markdown, HTML, or any explanation. Only the integer value.\n"
    "Sample output: '0'\n"
    "Sample output: '77'"
)

DATA_REPLY_PREFIX = '{ "data": "'
DATA_REPLY_SUFFIX = '" }'


def unwrap_data_reply(text):
    """Strips a literal ``{ "data": "..." }`` wrapper; no JSON decoding is involved."""
    if (
        len(text) >= len(DATA_REPLY_PREFIX) + len(DATA_REPLY_SUFFIX)
        and text.startswith(DATA_REPLY_PREFIX)
        and text.endswith(DATA_REPLY_SUFFIX)
    ):
        return text[len(DATA_REPLY_PREFIX):-len(DATA_REPLY_SUFFIX)]
    return text


class FieldRecoveryProber:
    """
    Last-resort recovery: asks the model for each field on its own, as plain
    text, reusing the image sent with the full analysis prompt. Model errors are not
    caught here.
    """

    def __init__(self, client):
        self.client = client

    def _ask(self, prompt, image_bytes, content_type):
        response = self.client.complete(prompt, image_bytes, content_type) or ""
        logger.info("Field probe response: %s", response)
        return unwrap_data_reply(response)

    def probe(self, image_bytes, content_type=None):
        title = self._ask(TITLE_PROMPT, image_bytes, content_type).strip()
        date = self._ask(DATE_PROMPT, image_bytes, content_type).strip()
        traffic = self._ask(TRAFFIC_PROMPT, image_bytes, content_type).strip()
        if not (title and date and traffic):
            logger.warning("Field probe could not recover every field")
            return None
        return Reading(title=title, date=date, traffic=coerce_traffic(traffic))
