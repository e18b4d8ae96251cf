from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from fortifymis.apps.accounts import models as account_models
from fortifymis.middleware import RoleRouteMiddleware, is_public, path_matches, role_allows
from fortifymis.security import create_access_token


def _echo_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RoleRouteMiddleware)

    @app.get("/api/maintenance/echo")
    def echo(request: Request):
        return {key: request.headers.get(key) for key in ("x-user-id", "x-user-role", "x-user-mill-id")}

    return app


def _token(role: str, mill_id=None) -> str:
    return create_access_token(data={"sub": "user-1", "role": role, "mill_id": mill_id, "email": "u@example.com"})


def test_path_matching_is_segment_aware():
    assert path_matches("/api/iot", ["/api/iot"])
    assert path_matches("/api/iot/sensors", ["/api/iot"])
    assert not path_matches("/api/iotx", ["/api/iot"])


def test_public_paths():
    assert is_public("/api/auth/login")
    assert is_public("/api/certificates/verify/ABC")
    assert is_public("/docs")
    assert not is_public("/api/maintenance/tasks")


def test_role_allows():
    assert role_allows("MILL_OPERATOR", "/api/maintenance/tasks")
    assert not role_allows("MILL_OPERATOR", "/api/procurement/rfps")
    assert role_allows("DRIVER_LOGISTICS", "/api/alerts")
    assert role_allows("SYSTEM_ADMIN", "/api/anything")
    assert not role_allows("NOT_A_ROLE", "/api/alerts")


def test_missing_or_bad_token_is_unauthorized():
    client = TestClient(_echo_app())

    missing = client.get("/api/maintenance/echo")
    assert missing.status_code == 401
    assert missing.json() == {"success": False, "error": "Authentication required", "code": "UNAUTHORIZED"}

    garbage = client.get("/api/maintenance/echo", headers={"Authorization": "Bearer not-a-jwt"})
    assert garbage.status_code == 401


def test_role_without_route_is_forbidden():
    client = TestClient(_echo_app())

    response = client.get(
        "/api/maintenance/echo",
        headers={"Authorization": f"Bearer {_token('INSTITUTIONAL_BUYER')}"},
    )

    assert response.status_code == 403
    assert response.json()["error"] == "Your role does not have access to this resource"


def test_identity_headers_come_from_the_token():
    client = TestClient(_echo_app())

    response = client.get(
        "/api/maintenance/echo",
        headers={
            "Authorization": f"Bearer {_token('MILL_OPERATOR', mill_id='mill-9')}",
            "X-User-Id": "spoofed",
            "X-User-Role": "SYSTEM_ADMIN",
        },
    )

    assert response.status_code == 200
    assert response.json() == {"x-user-id": "user-1", "x-user-role": "MILL_OPERATOR", "x-user-mill-id": "mill-9"}


def test_health_is_public(client):
    assert client.get("/api/health").json() == {"status": "ok", "database": "ok"}
    assert client.get("/health").status_code == 200


def test_gate_applies_to_the_real_app(client, make_user, auth_headers):
    driver = make_user(account_models.UserRole.DRIVER_LOGISTICS)

    response = client.get("/api/compliance/audits", headers=auth_headers(driver))

    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"
