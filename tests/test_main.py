from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
from fastapi.testclient import TestClient

from progress_engine.main import app
from progress_engine.services import token_service
from tests.conftest import auth

client = TestClient(app)


def _routes() -> set[tuple[str, str]]:
    pairs = set()
    for route in app.routes:
        for method in getattr(route, "methods", None) or ():
            pairs.add((method, route.path))
    return pairs


def test_app_title() -> None:
    assert app.title == "progress-engine"


def test_every_operation_is_routed() -> None:
    expected = {
        ("POST", "/v1/enrollments"),
        ("POST", "/v1/progress/sections/{section_id}/complete"),
        ("POST", "/v1/progress/resources/{resource_id}/complete"),
        ("DELETE", "/v1/progress/resources/{resource_id}"),
        ("PUT", "/v1/progress/nodes/{node_id}/annotation"),
        ("GET", "/v1/progress/counts"),
        ("GET", "/v1/progress/dashboard"),
        ("GET", "/v1/progress/leagues/{league_id}"),
        ("GET", "/v1/progress/sections/{section_id}/resources"),
        ("GET", "/v1/progress/revisions"),
        ("GET", "/v1/enrollments"),
        ("GET", "/v1/badges/mine"),
        ("GET", "/v1/badges"),
        ("GET", "/v1/badges/analytics"),
        ("POST", "/v1/badges/{badge_id}/grant"),
        ("DELETE", "/v1/badges/{badge_id}/grant"),
        ("POST", "/v1/badges/reconcile"),
        ("GET", "/health"),
        ("GET", "/ready"),
        ("GET", "/metrics"),
    }
    assert expected <= _routes()


def _signed(**overrides) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": "00000000-0000-0000-0000-000000000001",
        "iss": token_service.ISSUER,
        "aud": token_service.AUDIENCE,
        "exp": now + timedelta(minutes=5),
        "iat": now,
        "jti": "t-1",
        "roles": ["learner"],
    }
    payload.update(overrides)
    return jwt.encode(payload, token_service._private_key, algorithm="ES256")


def test_expired_token_rejected() -> None:
    token = _signed(exp=datetime.now(UTC) - timedelta(minutes=1))
    r = client.get("/v1/progress/dashboard", headers=auth(token))
    assert r.status_code == 401
    assert r.json()["detail"] == "Token expired"


def test_wrong_audience_rejected() -> None:
    r = client.get("/v1/progress/dashboard", headers=auth(_signed(aud="other-service")))
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid token"


def test_default_roles_are_learner() -> None:
    claims = token_service.decode_access_token(token_service.create_access_token(sub="x"))
    assert claims["roles"] == ["learner"]
