import logging

import requests

from trafficjam.settings import get_request_timeout_seconds, get_vector_store_url

logger = logging.getLogger(__name__)


class VectorStoreClient:
    """Pushes a camera source with its reading history to the vector store service."""

    def __init__(self, base_url=None, timeout_seconds=None, session=None):
        self.base_url = (base_url or get_vector_store_url() or "").rstrip("/")
        if not self.base_url:
            raise ValueError("Missing vector store URL. Set VECTOR_STORE_URL.")
        self.timeout_seconds = timeout_seconds or get_request_timeout_seconds()
        self.session = session or requests.Session()

    def upsert(self, source):
        logger.info("Adding traffic entry to vector store: %s", source.title)
        response = self.session.post(
            f"{self.base_url}/addTrafficEntry/{source.id}",
            json=source.model_dump(mode="json", by_alias=True),
            timeout=self.timeout_seconds,
        )
        if response.status_code >= 400:
            logger.warning("Failed to add traffic entry %s to vector store: HTTP %s", source.id, response.status_code)
            return None
        try:
            acknowledged = response.json()
        except ValueError:
            logger.warning("No content received from vector store for traffic entry %s", source.id)
            return None
        logger.info("Traffic entry added to vector store: %s", source.title)
        return bool(acknowledged)


def build_vector_index():
    if not get_vector_store_url():
        return None
    return VectorStoreClient()
