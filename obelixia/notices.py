"""User-facing notices returned alongside API results.

Browser clients render these as toasts. Success paths attach them to the
response body; remote failures are turned into an error notice by the
exception handlers registered in ``main``.
"""

from typing import Literal

from pydantic import BaseModel

NoticeLevel = Literal["info", "success", "warning", "error"]


class Notice(BaseModel):
    """A single message for the user."""

    level: NoticeLevel
    message: str


def info(message: str) -> Notice:
    return Notice(level="info", message=message)


def success(message: str) -> Notice:
    return Notice(level="success", message=message)


def warning(message: str) -> Notice:
    return Notice(level="warning", message=message)


def error(message: str) -> Notice:
    return Notice(level="error", message=message)


def error_payload(message: str) -> dict:
    """Body used for failed requests: ``{success: false, error, notice}``."""
    return {
        "success": False,
        "error": message,
        "notice": error(message).model_dump(),
    }
