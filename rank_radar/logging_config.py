"""Logging setup shared by the API process and the cron runner."""

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once; repeated calls only adjust the level."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    # googleapiclient is chatty about discovery cache at INFO
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
    if root.handlers:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
