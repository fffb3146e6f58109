"""Logging setup for the GrameenLink backend.

Configured once at import of the app; every module asks for its logger with
``get_logger("grameenlink.<area>")``.
"""

import logging
import sys

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_configured = False


def setup_logging(level: str = "INFO") -> None:
    """Attach a single stream handler to the ``grameenlink`` logger tree."""
    global _configured
    root = logging.getLogger("grameenlink")
    root.setLevel(level.upper())
    if _configured:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(handler)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``grameenlink`` namespace."""
    if not name.startswith("grameenlink"):
        name = f"grameenlink.{name}"
    return logging.getLogger(name)


def log_request(
    logger: logging.Logger,
    operation: str,
    actor_id: str | None,
    **details,
) -> None:
    """One INFO line per API request: ``<op> | actor=<id> | key=value ...``."""
    parts = [operation, f"actor={actor_id or '-'}"]
    parts.extend(f"{key}={value}" for key, value in details.items() if value is not None)
    logger.info(" | ".join(parts))
