import logging
import os


def configure_logging() -> None:
    """Configure logging defaults for the service."""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # httpx logs every request URL at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
