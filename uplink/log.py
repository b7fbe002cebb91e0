"""
Logging setup for applications embedding Uplink
The library only emits events; callers decide how they are rendered
"""

import logging
from typing import Literal, Optional

import structlog

from uplink.config import get_uplink_config


def configure_logging(
    level: Optional[str] = None,
    fmt: Optional[Literal["json", "text"]] = None,
) -> None:
    """
    Configure structlog with timestamps, log level and a console or JSON renderer.

    Level and format default to UPLINK_LOG_LEVEL / UPLINK_LOG_FORMAT.
    """
    if level is None or fmt is None:
        config = get_uplink_config()
        level = level or config.log_level
        fmt = fmt or config.log_format

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
    )
