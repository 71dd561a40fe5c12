"""Remote function calls to Supabase edge functions.

Every engine (security, compliance, threats, access control, revenue,
automation, messaging) is reached through the same envelope::

    request:  {"action": "<name>", ...parameters}
    response: {"success": true, ...fields}
              {"success": true, "data": {...}}
              {"success": false, "error": "<message>"}

Transport exceptions and ``success: false`` responses both surface as
``RemoteCallError`` subclasses. There is no retry policy.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from supabase import Client

from .logging_config import get_logger, log_remote_call

logger = get_logger("obelixia.remote")

INVALID_RESPONSE = "Invalid response"


class RemoteCallError(Exception):
    """Base error for edge-function calls."""

    def __init__(self, function: str, action: str, message: str):
        super().__init__(message)
        self.function = function
        self.action = action
        self.message = message

    def user_message(self) -> str:
        return f"Error in {self.action}: {self.message}"


class RemoteTransportError(RemoteCallError):
    """The call itself failed (network, relay, non-2xx)."""


class RemoteActionFailed(RemoteCallError):
    """The function answered but reported ``success: false``."""


@dataclass
class RemoteResult:
    """Successful response of an edge function."""

    function: str
    action: str
    data: dict[str, Any]
    raw: dict[str, Any] = field(default_factory=dict)


def build_envelope(action: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build the request body; ``action`` always wins over a same-named param."""
    body = dict(params or {})
    body["action"] = action
    return body


def decode_body(body: Any) -> Any:
    """Normalize a function response body to a Python object."""
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    if isinstance(body, str):
        if not body.strip():
            return None
        try:
            return json.loads(body)
        except json.JSONDecodeError:
            return None
    return body


def parse_envelope(function: str, action: str, payload: Any) -> RemoteResult:
    """Validate a decoded response envelope and extract its result fields."""
    if not isinstance(payload, dict):
        raise RemoteActionFailed(function, action, INVALID_RESPONSE)

    if not payload.get("success"):
        raise RemoteActionFailed(function, action, payload.get("error") or INVALID_RESPONSE)

    data = payload.get("data")
    if not isinstance(data, dict):
        data = {k: v for k, v in payload.items() if k != "success"}

    return RemoteResult(function=function, action=action, data=data, raw=payload)


class RemoteFunctionClient:
    """Invoke edge functions through a Supabase client."""

    def __init__(self, db: Client, tenant: str | None = None):
        self._db = db
        self._tenant = tenant

    async def invoke(self, function: str, action: str, **params: Any) -> RemoteResult:
        """Call ``function`` with ``action`` and return its parsed result."""
        body = build_envelope(action, params)
        logger.debug(f"INVOKE | {function}.{action} | params={sorted(params)}")

        try:
            response = self._db.functions.invoke(
                function,
                invoke_options={"body": body, "responseType": "json"},
            )
        except Exception as e:
            log_remote_call(function, action, False, str(e), tenant=self._tenant)
            raise RemoteTransportError(function, action, str(e) or type(e).__name__) from e

        try:
            result = parse_envelope(function, action, decode_body(response))
        except RemoteActionFailed as e:
            log_remote_call(function, action, False, e.message, tenant=self._tenant)
            raise

        log_remote_call(function, action, True, tenant=self._tenant)
        return result
