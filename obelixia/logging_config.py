"""Logging helpers for the ObelixIA backend.

All loggers live under the ``obelixia`` namespace so a single handler
configured here covers routes, services and the CLI.
"""

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Attach a stream handler to the ``obelixia`` root logger once."""
    global _configured
    if _configured:
        return

    level_name = (level or os.environ.get("OBELIXIA_LOG_LEVEL", "INFO")).upper()
    root = logging.getLogger("obelixia")
    root.setLevel(getattr(logging, level_name, logging.INFO))

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger, namespacing it under ``obelixia`` if needed."""
    if not name.startswith("obelixia"):
        name = f"obelixia.{name}"
    return logging.getLogger(name)


_remote_logger = get_logger("obelixia.remote")
_autosave_logger = get_logger("obelixia.autosave")


def log_remote_call(
    function: str,
    action: str,
    success: bool,
    error: str | None = None,
    tenant: str | None = None,
) -> None:
    """Log the outcome of a single edge-function call."""
    prefix = f"{tenant} | " if tenant else ""
    if success:
        _remote_logger.info(f"{prefix}{function}.{action} | ok")
    else:
        _remote_logger.warning(f"{prefix}{function}.{action} | failed | {error}")


def log_autosave(sheet_id: str, fields: list[str], success: bool, error: str | None = None) -> None:
    """Log a debounced visit sheet write."""
    if success:
        _autosave_logger.info(f"AUTOSAVE | {sheet_id} | fields={','.join(sorted(fields))}")
    else:
        _autosave_logger.error(f"AUTOSAVE FAILED | {sheet_id} | {error}")
