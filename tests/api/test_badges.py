from __future__ import annotations

from uuid import uuid4

from fastapi.testclient import TestClient

from tests.conftest import (
    ADMIN_ID,
    World,
    add_badge,
    add_league,
    add_learner,
    auth,
    mint_token,
)


def _grant(client: TestClient, world: World, token: str, **body):
    return client.post(
        f"/v1/badges/{world.badge.id}/grant",
        json={"learner_id": str(world.learner.id), **body},
        headers=auth(token),
    )


def test_my_badges_empty(client: TestClient, world: World) -> None:
    r = client.get("/v1/badges/mine", headers=auth(mint_token(sub=world.learner.id)))
    assert r.status_code == 200
    assert r.json() == []


def test_manual_grant_by_admin(client: TestClient, world: World, admin_token: str) -> None:
    r = _grant(client, world, admin_token, reason="prior learning")
    assert r.status_code == 201
    body = r.json()
    assert body["granted_by"] == ADMIN_ID
    assert body["reason"] == "prior learning"

    mine = client.get("/v1/badges/mine", headers=auth(mint_token(sub=world.learner.id)))
    assert [b["badge"]["id"] for b in mine.json()] == [str(world.badge.id)]


def test_pathfinder_may_grant(client: TestClient, world: World) -> None:
    token = mint_token(sub=uuid4(), roles=["pathfinder"])
    assert _grant(client, world, token).status_code == 201


def test_learner_may_not_grant(client: TestClient, world: World) -> None:
    r = _grant(client, world, mint_token(sub=world.learner.id))
    assert r.status_code == 403


def test_grant_twice_conflicts(client: TestClient, world: World, admin_token: str) -> None:
    assert _grant(client, world, admin_token).status_code == 201
    r = _grant(client, world, admin_token)
    assert r.status_code == 409
    assert r.json()["code"] == "already_granted"


def test_grant_unknown_badge(client: TestClient, world: World, admin_token: str) -> None:
    r = client.post(
        f"/v1/badges/{uuid4()}/grant",
        json={"learner_id": str(world.learner.id)},
        headers=auth(admin_token),
    )
    assert r.status_code == 404
    assert r.json()["code"] == "badge_not_found"


def test_grant_requires_learner_id(client: TestClient, world: World, admin_token: str) -> None:
    r = client.post(
        f"/v1/badges/{world.badge.id}/grant", json={}, headers=auth(admin_token)
    )
    assert r.status_code == 400


def test_revoke(client: TestClient, world: World, admin_token: str) -> None:
    _grant(client, world, admin_token)
    r = client.delete(
        f"/v1/badges/{world.badge.id}/grant",
        params={"learner_id": str(world.learner.id), "reason": "issued in error"},
        headers=auth(admin_token),
    )
    assert r.status_code == 204

    again = client.delete(
        f"/v1/badges/{world.badge.id}/grant",
        params={"learner_id": str(world.learner.id)},
        headers=auth(admin_token),
    )
    assert again.status_code == 404
    assert again.json()["code"] == "grant_not_found"


def test_revoke_requires_staff(client: TestClient, world: World) -> None:
    r = client.delete(
        f"/v1/badges/{world.badge.id}/grant",
        params={"learner_id": str(world.learner.id)},
        headers=auth(mint_token(sub=world.learner.id)),
    )
    assert r.status_code == 403


def test_reconcile_after_revoke(client: TestClient, world: World, admin_token: str) -> None:
    learner_headers = auth(mint_token(sub=world.learner.id))
    for section in world.sections:
        client.post(
            f"/v1/progress/sections/{section.id}/complete", json={}, headers=learner_headers
        )
    client.delete(
        f"/v1/badges/{world.badge.id}/grant",
        params={"learner_id": str(world.learner.id)},
        headers=auth(admin_token),
    )

    r = client.post(
        "/v1/badges/reconcile",
        json={"learner_id": str(world.learner.id), "league_id": str(world.league.id)},
        headers=auth(admin_token),
    )
    assert r.status_code == 200
    assert r.json()["state"] == "COMPLETE_BADGED"
    assert r.json()["grant"]["granted_by"] == "SYSTEM"


def test_reconcile_incomplete_league(
    client: TestClient, world: World, admin_token: str
) -> None:
    r = client.post(
        "/v1/badges/reconcile",
        json={"learner_id": str(world.learner.id), "league_id": str(world.league.id)},
        headers=auth(admin_token),
    )
    assert r.status_code == 200
    assert r.json() == {"state": "NOT_STARTED", "grant": None}


def test_reconcile_unknown_learner(client: TestClient, world: World, admin_token: str) -> None:
    r = client.post(
        "/v1/badges/reconcile",
        json={"learner_id": str(uuid4()), "league_id": str(world.league.id)},
        headers=auth(admin_token),
    )
    assert r.status_code == 404


# ---- catalogue ----


def test_catalogue_flags_earned_badges(
    client: TestClient, world: World, admin_token: str
) -> None:
    frontend_league, *_ = add_league("Frontend League")
    add_badge(frontend_league, "Frontend Badge")
    _grant(client, world, admin_token)

    r = client.get("/v1/badges", headers=auth(mint_token(sub=world.learner.id)))
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 2
    assert body["earned_count"] == 1
    backend, frontend = body["badges"]
    assert backend["badge"]["name"] == "Backend Badge"
    assert backend["earned"] is True
    assert backend["earned_at"] is not None
    assert backend["total_earners"] == 1
    assert frontend["earned"] is False
    assert frontend["earned_at"] is None


def test_catalogue_is_per_caller(client: TestClient, world: World, admin_token: str) -> None:
    _grant(client, world, admin_token)
    grace = add_learner("Grace")
    r = client.get("/v1/badges", headers=auth(mint_token(sub=grace.id)))
    (entry,) = r.json()["badges"]
    assert entry["earned"] is False
    assert entry["total_earners"] == 1


def test_catalogue_requires_token(client: TestClient) -> None:
    assert client.get("/v1/badges").status_code == 401


# ---- analytics ----


def test_analytics_for_staff(client: TestClient, world: World, admin_token: str) -> None:
    _grant(client, world, admin_token)
    grace = add_learner("Grace")
    client.post(
        f"/v1/badges/{world.badge.id}/grant",
        json={"learner_id": str(grace.id)},
        headers=auth(admin_token),
    )

    r = client.get("/v1/badges/analytics", headers=auth(admin_token))
    assert r.status_code == 200
    body = r.json()
    assert body["overview"] == {
        "total_badges": 1,
        "total_awarded": 2,
        "unique_earners": 2,
        "average_badges_per_earner": 1.0,
    }
    assert body["popularity"][0]["times_earned"] == 2
    assert {a["grant"]["learner_id"] for a in body["recent_awards"]} == {
        str(world.learner.id),
        str(grace.id),
    }


def test_analytics_requires_staff(client: TestClient, world: World) -> None:
    r = client.get("/v1/badges/analytics", headers=auth(mint_token(sub=world.learner.id)))
    assert r.status_code == 403
