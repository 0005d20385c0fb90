# fulfillment/utils/logging.py
import logging
import sys

from fulfillment.utils.settings import LOG_LEVEL

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _configure_root() -> None:
    root = logging.getLogger("fulfillment")
    if root.handlers:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)
    root.setLevel(LOG_LEVEL)


def get_logger(name: str) -> logging.Logger:
    _configure_root()
    return logging.getLogger(name)
