"""Rate limit bucket key derivation.

Keys identify a counter bucket by HTTP method, route and client address:
``temp:ratelimit:{method}:{route}:{ip}``. Every segment is normalized so the
result is safe to use as a Redis key or dict key.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from fastapi import Request

KEY_PREFIX = "temp:ratelimit"
UNKNOWN_CLIENT = "unknown"

_ROUTE_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9/]")
_IP_SEPARATORS = re.compile(r"[.:]")


@dataclass(frozen=True)
class RequestIdentity:
    """The narrow slice of a request the limiter needs."""

    method: str
    path: str
    ip: str


def normalize_route(route: str | None) -> str:
    """Strip characters outside ``[A-Za-z0-9/]`` and turn ``/`` into ``-``.

    Examples:
        >>> normalize_route("/v1/users/{user_id}")
        '-v1-users-userid'
    """

    return _ROUTE_UNSAFE_CHARS.sub("", route or "").replace("/", "-")


def normalize_ip(ip: str | None) -> str:
    """Replace IPv4/IPv6 separators with ``-``.

    Examples:
        >>> normalize_ip("1.2.3.4")
        '1-2-3-4'
        >>> normalize_ip("::1")
        '--1'
    """

    return _IP_SEPARATORS.sub("-", ip or "")


def build_rate_limit_key(method: str | None, route: str | None, ip: str | None) -> str:
    """Build the bucket key for a request.

    Never raises; missing or malformed parts degrade to empty segments.

    Args:
        method: HTTP method (any case).
        route: Route template, or raw path when no template is known.
        ip: Client IP address literal.

    Returns:
        str: ``temp:ratelimit:{method}:{route}:{ip}``.
    """

    return f"{KEY_PREFIX}:{(method or '').lower()}:{normalize_route(route)}:{normalize_ip(ip)}"


def key_for_identity(identity: RequestIdentity) -> str:
    return build_rate_limit_key(identity.method, identity.path, identity.ip)


def identity_from_request(request: Request, *, trust_forwarded_for: bool = False) -> RequestIdentity:
    """Extract method, route template and client IP from a FastAPI request.

    The matched route template (``/items/{item_id}``) is preferred so that all
    concrete paths of one route share a bucket; the raw path is used when no
    route has been matched yet.

    Args:
        request: Incoming FastAPI request.
        trust_forwarded_for: Use the first ``X-Forwarded-For`` hop as client IP.

    Returns:
        RequestIdentity for key generation.
    """

    route = request.scope.get("route")
    path = getattr(route, "path", None) or request.url.path

    ip = None
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip = forwarded.split(",")[0].strip() or None
    if ip is None:
        ip = request.client.host if request.client else UNKNOWN_CLIENT

    return RequestIdentity(method=request.method, path=path, ip=ip)
