# voicetutor/core/logging.py
"""
Logging setup for the voice tutor.

Modules log through ``logging.getLogger(__name__)`` with a bracketed component
tag ("[Flow]", "[TTS]", "[Storage]"); this module only installs the handler.
"""
import logging

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Install a single stream handler on the root logger.

    Args:
        level: Log level name (e.g. "INFO", "DEBUG"); unknown names fall back to INFO
    """
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logging.basicConfig(level=resolved, format=LOG_FORMAT, force=True)
    # httpx logs every request at INFO; vendor calls are logged by the services already
    logging.getLogger("httpx").setLevel(logging.WARNING)
