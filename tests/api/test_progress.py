from __future__ import annotations

import asyncio
from uuid import uuid4

from fastapi.testclient import TestClient

from progress_engine.services import aggregator, completion_recorder
from progress_engine.services.cache import cache_service, versioned_key
from progress_engine.services.unit_of_work import unit_of_work
from tests.conftest import World, add_learner, auth, build_world, mint_token


def _learner_headers(world: World) -> dict[str, str]:
    return auth(mint_token(sub=world.learner.id))


# ---- auth ----


def test_progress_requires_token(client: TestClient) -> None:
    r = client.get("/v1/progress/dashboard")
    assert r.status_code == 401


def test_non_uuid_subject_rejected(client: TestClient) -> None:
    r = client.get("/v1/progress/dashboard", headers=auth(mint_token(sub="someone")))
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid token subject"


def test_learner_cannot_read_another_learner(client: TestClient, world: World) -> None:
    other = add_learner("Grace")
    r = client.get(
        "/v1/progress/dashboard",
        params={"learner_id": str(world.learner.id)},
        headers=auth(mint_token(sub=other.id)),
    )
    assert r.status_code == 403


def test_staff_can_read_another_learner(
    client: TestClient, world: World, admin_token: str
) -> None:
    r = client.get(
        "/v1/progress/dashboard",
        params={"learner_id": str(world.learner.id)},
        headers=auth(admin_token),
    )
    assert r.status_code == 200
    assert r.json()["stats"]["total_enrollments"] == 1


# ---- sections ----


def test_complete_section(client: TestClient, world: World) -> None:
    r = client.post(
        f"/v1/progress/sections/{world.sections[0].id}/complete",
        json={"note": "easy"},
        headers=_learner_headers(world),
    )
    assert r.status_code == 200
    body = r.json()
    assert body["transitioned"] is True
    assert body["completion"]["completed"] is True
    assert body["completion"]["note"] == "easy"
    assert body["badge_granted"] is None


def test_final_section_reports_badge(client: TestClient, world: World) -> None:
    headers = _learner_headers(world)
    for section in world.sections[:3]:
        client.post(f"/v1/progress/sections/{section.id}/complete", json={}, headers=headers)

    r = client.post(
        f"/v1/progress/sections/{world.sections[3].id}/complete", json={}, headers=headers
    )
    assert r.status_code == 200
    grant = r.json()["badge_granted"]
    assert grant["badge_id"] == str(world.badge.id)
    assert grant["granted_by"] == "SYSTEM"

    again = client.post(
        f"/v1/progress/sections/{world.sections[3].id}/complete", json={}, headers=headers
    )
    assert again.json()["transitioned"] is False
    assert again.json()["badge_granted"] is None


def test_complete_section_not_enrolled(client: TestClient) -> None:
    world = build_world(enrolled=False)
    r = client.post(
        f"/v1/progress/sections/{world.sections[0].id}/complete",
        json={},
        headers=_learner_headers(world),
    )
    assert r.status_code == 403
    assert r.json()["code"] == "not_enrolled"


def test_complete_unknown_section(client: TestClient, world: World) -> None:
    r = client.post(
        f"/v1/progress/sections/{uuid4()}/complete", json={}, headers=_learner_headers(world)
    )
    assert r.status_code == 404
    assert r.json()["code"] == "node_not_found"


def test_overlong_note_rejected(client: TestClient, world: World) -> None:
    r = client.post(
        f"/v1/progress/sections/{world.sections[0].id}/complete",
        json={"note": "x" * 1001},
        headers=_learner_headers(world),
    )
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"


# ---- resources ----


def test_resource_complete_and_reset(client: TestClient, world: World) -> None:
    headers = _learner_headers(world)
    resource_id = world.resources[0].id

    r = client.post(
        f"/v1/progress/resources/{resource_id}/complete",
        json={"time_spent": 90},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["completed"] is True
    assert r.json()["time_spent"] == 90

    r = client.delete(f"/v1/progress/resources/{resource_id}", headers=headers)
    assert r.status_code == 200
    assert r.json()["completed"] is False
    assert r.json()["time_spent"] is None


def test_resource_negative_time_spent(client: TestClient, world: World) -> None:
    r = client.post(
        f"/v1/progress/resources/{world.resources[0].id}/complete",
        json={"time_spent": -5},
        headers=_learner_headers(world),
    )
    assert r.status_code == 400


def test_section_resources_listing(client: TestClient, world: World) -> None:
    headers = _learner_headers(world)
    client.post(
        f"/v1/progress/resources/{world.resources[1].id}/complete", json={}, headers=headers
    )
    r = client.get(
        f"/v1/progress/sections/{world.sections[0].id}/resources", headers=headers
    )
    assert r.status_code == 200
    rows = r.json()
    assert [row["order"] for row in rows] == [1, 2]
    assert rows[0]["completion"] is None
    assert rows[1]["completion"]["completed"] is True


# ---- annotations and revisions ----


def test_annotation_and_revision_list(client: TestClient, world: World) -> None:
    headers = _learner_headers(world)
    r = client.put(
        f"/v1/progress/nodes/{world.sections[1].id}/annotation",
        json={"note": "redo", "revisit": True},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["kind"] == "section"
    assert r.json()["completed"] is False

    r = client.get("/v1/progress/revisions", headers=headers)
    assert r.status_code == 200
    sections = r.json()["sections"]
    assert [s["id"] for s in sections] == [str(world.sections[1].id)]
    assert sections[0]["note"] == "redo"
    assert r.json()["resources"] == []


def test_annotation_on_league_rejected(client: TestClient, world: World) -> None:
    r = client.put(
        f"/v1/progress/nodes/{world.league.id}/annotation",
        json={"note": "no"},
        headers=_learner_headers(world),
    )
    assert r.status_code == 400


# ---- reads ----


def test_counts_global_default(client: TestClient, world: World) -> None:
    headers = _learner_headers(world)
    client.post(
        f"/v1/progress/sections/{world.sections[0].id}/complete", json={}, headers=headers
    )
    r = client.get("/v1/progress/counts", headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["scope"] == "global"
    assert (body["total"], body["completed"], body["percentage"]) == (4, 1, 25)
    assert body["totals"]["sections"] == 4


def test_counts_for_week(client: TestClient, world: World) -> None:
    r = client.get(
        "/v1/progress/counts",
        params={"scope": "week", "scope_id": str(world.weeks[1].id)},
        headers=_learner_headers(world),
    )
    assert r.status_code == 200
    assert r.json()["total"] == 2
    assert len(r.json()["nodes"][0]["children"]) == 2


def test_counts_bad_scope(client: TestClient, world: World) -> None:
    r = client.get(
        "/v1/progress/counts",
        params={"scope": "galaxy"},
        headers=_learner_headers(world),
    )
    assert r.status_code == 400


def test_counts_are_cached_and_invalidated(client: TestClient, world: World) -> None:
    headers = _learner_headers(world)
    first = client.get("/v1/progress/counts", headers=headers).json()
    assert first["completed"] == 0
    key = asyncio.run(versioned_key(world.learner.id, "counts", "global", "all"))
    assert cache_service._store.get(key) is not None  # type: ignore[union-attr]

    client.post(
        f"/v1/progress/sections/{world.sections[0].id}/complete", json={}, headers=headers
    )
    assert cache_service._store.get(key) is None  # type: ignore[union-attr]
    assert asyncio.run(versioned_key(world.learner.id, "counts", "global", "all")) != key

    second = client.get("/v1/progress/counts", headers=headers).json()
    assert second["completed"] == 1


def test_dashboard(client: TestClient, world: World) -> None:
    headers = _learner_headers(world)
    for section in world.sections:
        client.post(f"/v1/progress/sections/{section.id}/complete", json={}, headers=headers)

    r = client.get("/v1/progress/dashboard", headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["stats"] == {
        "total_enrollments": 1,
        "total_sections": 4,
        "completed_sections": 4,
        "overall_progress": 100,
        "badges_earned": 1,
    }
    assert body["leagues"][0]["children"] == []
    assert body["badges"][0]["badge"]["name"] == "Backend Badge"


def test_dashboard_computed_during_a_write_is_not_cached(
    client: TestClient, world: World, monkeypatch
) -> None:
    headers = _learner_headers(world)
    *first, last = world.sections
    for section in first:
        client.post(f"/v1/progress/sections/{section.id}/complete", json={}, headers=headers)

    real_dashboard = aggregator.dashboard

    async def dashboard_with_concurrent_completion(uow, learner_id):
        board = await real_dashboard(uow, learner_id)
        async with unit_of_work() as other:
            await completion_recorder.complete_section(
                other, learner_id=learner_id, section_id=last.id
            )
        return board

    monkeypatch.setattr(aggregator, "dashboard", dashboard_with_concurrent_completion)
    stale = client.get("/v1/progress/dashboard", headers=headers).json()
    assert stale["stats"]["badges_earned"] == 0

    monkeypatch.undo()
    fresh = client.get("/v1/progress/dashboard", headers=headers).json()
    assert fresh["stats"]["completed_sections"] == 4
    assert fresh["stats"]["badges_earned"] == 1


def test_league_progress(client: TestClient, world: World) -> None:
    headers = _learner_headers(world)
    client.post(
        f"/v1/progress/sections/{world.sections[0].id}/complete", json={}, headers=headers
    )
    r = client.get(f"/v1/progress/leagues/{world.league.id}", headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["state"] == "IN_PROGRESS"
    assert body["badge"]["id"] == str(world.badge.id)
    assert body["grant"] is None
    week = body["league"]["children"][0]
    assert week["counts"] == {"total": 2, "completed": 1, "percentage": 50}
    # depth=2 stops at sections
    assert week["children"][0]["children"] == []


def test_league_progress_not_enrolled(client: TestClient) -> None:
    world = build_world(enrolled=False)
    r = client.get(f"/v1/progress/leagues/{world.league.id}", headers=_learner_headers(world))
    assert r.status_code == 403
