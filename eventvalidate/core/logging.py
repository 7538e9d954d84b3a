# eventvalidate/core/logging.py
import logging
import sys

from eventvalidate.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once for the whole process."""
    global _configured
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel((level or settings.LOG_LEVEL).upper())

    # kafka-python is chatty at INFO
    logging.getLogger("kafka").setLevel(logging.WARNING)
    _configured = True
