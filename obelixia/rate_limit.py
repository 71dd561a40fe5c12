"""Rate limiting for the ObelixIA backend.

Authenticated requests are limited per tenant, since engine calls are
billed per organization upstream. Anonymous requests fall back to the
client IP, honoring X-Forwarded-For only when it comes from a trusted proxy
(override the proxy list with the comma-separated TRUSTED_PROXY_CIDRS).
"""

import ipaddress
import os
from functools import lru_cache

from jose import JWTError, jwt
from slowapi import Limiter
from slowapi.util import get_remote_address

from .auth import AUTH_COOKIE_NAME

ENGINE_RATE_LIMIT = "30/minute"
WRITE_RATE_LIMIT = "120/minute"

DEFAULT_TRUSTED_PROXIES = "10.0.0.0/8,172.16.0.0/12,192.168.0.0/16,127.0.0.0/8,::1/128"


@lru_cache
def trusted_networks() -> tuple:
    networks = []
    for cidr in os.environ.get("TRUSTED_PROXY_CIDRS", DEFAULT_TRUSTED_PROXIES).split(","):
        try:
            networks.append(ipaddress.ip_network(cidr.strip(), strict=False))
        except ValueError:
            continue
    return tuple(networks)


def _from_trusted_proxy(ip: str) -> bool:
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return any(addr in network for network in trusted_networks())


def get_client_ip(request) -> str:
    direct_ip = get_remote_address(request)
    if not _from_trusted_proxy(direct_ip):
        return direct_ip
    forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    return forwarded or direct_ip


def _request_token(request) -> str | None:
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token:
        return token
    return request.cookies.get(AUTH_COOKIE_NAME)


def get_rate_limit_key(request) -> str:
    """``org:<id>`` or ``user:<id>`` for authenticated callers, else the client IP.

    Limits are checked after the route's auth dependencies have verified the
    token, so its claims can be read without verifying again.
    """
    token = _request_token(request)
    if token:
        try:
            claims = jwt.get_unverified_claims(token)
        except JWTError:
            claims = {}
        organization_id = (claims.get("app_metadata") or {}).get("organization_id")
        if organization_id:
            return f"org:{organization_id}"
        if claims.get("sub"):
            return f"user:{claims['sub']}"
    return get_client_ip(request)


limiter = Limiter(key_func=get_rate_limit_key)
