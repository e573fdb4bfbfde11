"""Logging for the search frontends; the terminal belongs to the UI, so logs go to a file or nowhere."""

import logging
import os

LOG_FILE_ENV = "MPDSEARCH_LOG"
DEBUG_ENV = "MPDSEARCH_DEBUG"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging() -> logging.Handler:
    root = logging.getLogger()
    path = os.environ.get(LOG_FILE_ENV, "")
    if path:
        handler: logging.Handler = logging.FileHandler(path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    else:
        handler = logging.NullHandler()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if os.environ.get(DEBUG_ENV, "") == "1" else logging.INFO)
    return handler
