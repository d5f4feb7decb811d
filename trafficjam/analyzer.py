import logging
from datetime import datetime, timezone

from trafficjam.errors import FetchError
from trafficjam.ingest.fetcher import build_image_url, fetch_image_bytes
from trafficjam.models import AnalysisOutcome
from trafficjam.vlm.client import VLMClient
from trafficjam.vlm.parser import parse_response
from trafficjam.vlm.prober import FieldRecoveryProber

logger = logging.getLogger(__name__)

ANALYSIS_PROMPT = """You are analyzing a CCTV traffic camera image. Your task is to extract and return a single, valid JSON object with the following fields: 'Title', 'Traffic', and 'Date'.

Instructions:
- 'Title': Extract ONLY the text visible in the top left corner of the image and assign it to this field.
- 'Date': Extract ONLY the text visible in the bottom right corner of the image and assign it to this field.
- 'Traffic': Analyze the visible road area and estimate the current traffic level as an integer from 0 (no traffic) to 100 (maximum congestion), based on the number of vehicles and the degree of congestion you observe.

Requirements:
- The image is from a real-time traffic CCTV camera. Focus on the road and vehicles for the 'Traffic' value.
- Do NOT include any information not visible in the image.
- Return ONLY a single valid JSON object, with no extra text, explanation, or markdown formatting.
- The JSON must have exactly these three fields: 'Title', 'Date', and 'Traffic'.

Example output:
{"Title": "3M-TVM-21 (Túnel 3 de Mayo)", "Date": "12/06/2025 18:47", "Traffic": 0}
"""


def _utc_now():
    return datetime.now(timezone.utc)


class TrafficAnalyzer:
    """
    Runs one analysis for a camera identifier: download the image, ask the
    model, recover a reading from whatever it answered.

    The field prober only runs when one is passed in explicitly.
    """

    def __init__(self, client, prober=None, fetch_image=None, image_url_template=None):
        self.client = client
        self.prober = prober
        self.fetch_image = fetch_image or fetch_image_bytes
        self.image_url_template = image_url_template

    def analyze(self, identifier):
        logger.info("Received analyze request with identifier: %s", identifier)
        image_url = build_image_url(identifier, self.image_url_template)
        image_bytes, content_type = b"", "image/jpeg"
        try:
            image_bytes, fetched_type = self.fetch_image(image_url)
            content_type = fetched_type or content_type
        except FetchError as exc:
            # Degrades to an empty payload; the model is still asked.
            logger.error("Error downloading image from URL %s: %s", image_url, exc)

        content = self.client.complete(ANALYSIS_PROMPT, image_bytes, content_type)
        if not content:
            logger.warning("No content received from the model for %s", image_url)
            return AnalysisOutcome(source_url=image_url, created_at=_utc_now())
        logger.info("Content received: %s", content)

        result = parse_response(content)
        reading = result.reading
        if reading is None and self.prober is not None:
            logger.info("Structured parsing failed for %s, probing fields one by one", image_url)
            reading = self.prober.probe(image_bytes, content_type)
        if reading is None:
            logger.warning("Content could not be parsed into a valid reading for %s", image_url)
            return AnalysisOutcome(source_url=image_url, created_at=_utc_now())

        outcome = AnalysisOutcome(source_url=image_url, created_at=_utc_now(), reading=reading)
        logger.info("Analysis result created: %s", outcome.model_dump_json())
        return outcome


def build_analyzer(client=None, use_prober=False):
    client = client or VLMClient()
    prober = FieldRecoveryProber(client) if use_prober else None
    return TrafficAnalyzer(client, prober=prober)
