"""structlog setup for the solver process."""

import logging

import structlog

LOG_FORMATS = ("pretty", "json")


def configure_logging(level: str = "INFO", fmt: str = "pretty") -> None:
    """Configure structlog processors and the level filter.

    Args:
        level: Standard level name (DEBUG, INFO, WARNING, ...)
        fmt: "pretty" for console output, "json" for one JSON object per line
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if fmt == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=False,
    )
