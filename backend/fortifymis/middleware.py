# backend/fortifymis/middleware.py
"""
Role to route-prefix gate in front of every /api request.

The middleware only looks at token claims. Handlers still load the user and
check permissions themselves; this layer keeps whole areas of the API out of
reach of roles that never use them.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, Optional, Tuple

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

from .apps.accounts.models import UserRole
from .errors import error_response
from .security import decode_access_token

logger = logging.getLogger(__name__)

PUBLIC_PREFIXES: Tuple[str, ...] = (
    "/api/auth/login",
    "/api/auth/register",
    "/api/health",
    "/api/certificates/verify",
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
)

SHARED_PREFIXES: Tuple[str, ...] = (
    "/api/auth/me",
    "/api/notifications",
    "/api/alerts",
    "/api/users/me",
)

_MILL_FLOOR = (
    "/api/dashboard/mill",
    "/api/maintenance",
    "/api/iot",
    "/api/training",
)

_FWGA = (
    "/api/dashboard/inspector",
    "/api/dashboard/mill",
    "/api/compliance",
    "/api/maintenance",
    "/api/training",
    "/api/mills",
    "/api/users",
)

ROLE_ROUTES: Dict[UserRole, Tuple[str, ...]] = {
    UserRole.MILL_OPERATOR: _MILL_FLOOR,
    UserRole.MILL_TECHNICIAN: _MILL_FLOOR,
    UserRole.MILL_MANAGER: _MILL_FLOOR
    + (
        "/api/dashboard/logistics",
        "/api/compliance",
        "/api/procurement",
        "/api/logistics",
        "/api/mills",
        "/api/users",
    ),
    UserRole.FWGA_INSPECTOR: _FWGA,
    UserRole.FWGA_PROGRAM_MANAGER: _FWGA
    + (
        "/api/dashboard/program",
        "/api/procurement",
        "/api/iot",
        "/api/audit-logs",
    ),
    UserRole.INSTITUTIONAL_BUYER: (
        "/api/dashboard/buyer",
        "/api/procurement",
        "/api/logistics",
        "/api/mills",
    ),
    UserRole.DRIVER_LOGISTICS: (
        "/api/dashboard/logistics",
        "/api/logistics",
    ),
}

IDENTITY_HEADERS = (b"x-user-id", b"x-user-role", b"x-user-email", b"x-user-mill-id")


def path_matches(path: str, prefixes: Iterable[str]) -> bool:
    for prefix in prefixes:
        if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
            return True
    return False


def is_public(path: str) -> bool:
    if not path.startswith("/api"):
        return True
    return path_matches(path, PUBLIC_PREFIXES)


def role_allows(role: Optional[str], path: str) -> bool:
    try:
        role_enum = UserRole(role)
    except ValueError:
        return False
    if role_enum == UserRole.SYSTEM_ADMIN:
        return True
    if path_matches(path, SHARED_PREFIXES):
        return True
    return path_matches(path, ROLE_ROUTES.get(role_enum, ()))


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class RoleRouteMiddleware(BaseHTTPMiddleware):
    """
    Usage:
        app.add_middleware(RoleRouteMiddleware)

    Allowed requests carry x-user-id, x-user-role, x-user-email and
    x-user-mill-id taken from the token; client-sent copies are dropped.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if request.method == "OPTIONS" or is_public(path):
            return await call_next(request)

        token = _bearer_token(request)
        claims = decode_access_token(token) if token else None
        if not claims:
            return error_response(
                status.HTTP_401_UNAUTHORIZED,
                "Authentication required",
                "UNAUTHORIZED",
                headers={"WWW-Authenticate": "Bearer"},
            )

        role = claims.get("role")
        if not role_allows(role, path):
            logger.warning(
                "Route denied for role",
                extra={"path": path, "method": request.method, "role": role, "user_id": claims.get("sub")},
            )
            return error_response(
                status.HTTP_403_FORBIDDEN,
                "Your role does not have access to this resource",
                "FORBIDDEN",
            )

        headers = [(key, value) for key, value in request.scope["headers"] if key not in IDENTITY_HEADERS]
        identity = {
            b"x-user-id": claims.get("sub"),
            b"x-user-role": role,
            b"x-user-email": claims.get("email"),
            b"x-user-mill-id": claims.get("mill_id"),
        }
        for key, value in identity.items():
            if value:
                headers.append((key, str(value).encode("latin-1")))
        request.scope["headers"] = headers
        return await call_next(request)
