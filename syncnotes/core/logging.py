"""structlog setup shared by the API and scripts."""
import logging
import sys

import structlog

from syncnotes.core.config import settings

_configured = False


def configure_logging(json_output: bool | None = None) -> None:
    """Configure structlog once: ISO timestamps, log level and logger name, JSON lines when LOG_JSON is set, console output otherwise.
    Why available: Every module logs through structlog.get_logger(__name__) so request, guard and publish events share one format."""
    global _configured
    if _configured:
        return
    if json_output is None:
        json_output = settings.log_json

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=logging.INFO)

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True
