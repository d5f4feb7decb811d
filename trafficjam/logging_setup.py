import logging

from trafficjam.settings import get_log_level

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level=None):
    """
    Attaches a stream handler with the standard format to the package logger.
    Safe to call more than once.
    """
    logger = logging.getLogger("trafficjam")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level or get_log_level())
    return logger
