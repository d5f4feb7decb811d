import logging
from urllib.parse import urlparse

import requests

from trafficjam.errors import FetchError, FetchTimeoutError
from trafficjam.settings import get_image_url_template, get_request_timeout_seconds

logger = logging.getLogger(__name__)


def build_image_url(identifier, template=None):
    if not identifier:
        raise ValueError("identifier is required to build the image URL")
    template = template or get_image_url_template()
    return template.format(identifier=identifier)


def identifier_from_url(url):
    """Last path segment of a camera URL without its .jpg suffix."""
    path = urlparse(url).path or url
    return path.rstrip("/").split("/")[-1].replace(".jpg", "")


def fetch_image_bytes(url, timeout=None, session=None):
    """
    Downloads one camera image and returns ``(bytes, content_type)``.

    Raises FetchError on network failure, a non-2xx status or a non-image
    payload, and FetchTimeoutError when the request runs out of time.
    """
    timeout = timeout or get_request_timeout_seconds()
    http = session or requests
    try:
        response = http.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.Timeout as exc:
        raise FetchTimeoutError(f"image_fetch_timeout: {url} after {timeout}s") from exc
    except requests.RequestException as exc:
        raise FetchError(f"image_fetch_failed: {url}: {exc}") from exc
    content_type = response.headers.get("Content-Type")
    if content_type and not content_type.lower().startswith("image/"):
        raise FetchError(f"snapshot_not_image: content_type={content_type}")
    logger.info("Image downloaded: %s (%s bytes)", url, len(response.content))
    return response.content, content_type
