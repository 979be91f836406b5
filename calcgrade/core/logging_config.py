# calcgrade/core/logging_config.py
import logging

from calcgrade.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure root logging once for both the API process and rq workers."""
    level_name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)

    # httpx logs every request at INFO, too noisy for provider calls
    logging.getLogger("httpx").setLevel(logging.WARNING)
