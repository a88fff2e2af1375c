"""
Logging setup. Modules log through `logging.getLogger(__name__)`;
this only wires the root handler once.
"""

import logging

from mentorship_hub.core.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def configure_logging() -> None:
    """Install a single stream handler at the configured level (idempotent)."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    level = logging.DEBUG if settings.debug else settings.log_level.upper()

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if settings.debug else logging.WARNING)
    _configured = True
