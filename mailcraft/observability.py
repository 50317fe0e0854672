"""Logfire observability initialization."""

import logging

import logfire

from mailcraft import __version__
from mailcraft.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings) -> None:
    """
    Initialize Logfire tracing for pipeline runs.

    Must be called ONCE at application startup, before the first run.

    Configures Logfire cloud tracking so the `pipeline.run` and
    `pipeline.stage` spans are exported, and bridges Python logging
    (retry warnings, stage failures) into Logfire.

    Args:
        settings: Application settings containing Logfire token

    Returns:
        None. Logs success or warning messages.
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return

    try:
        # 1. Configure Logfire with cloud token
        logfire.configure(
            token=settings.logfire_token,
            service_name="mailcraft",
            service_version=__version__,
        )

        # 2. Bridge Python logging to Logfire
        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("✓ Logfire cloud tracking initialized")

    except Exception as e:
        # Tracing is optional; the pipeline runs without it
        logger.warning(f"Failed to initialize Logfire: {e}")
