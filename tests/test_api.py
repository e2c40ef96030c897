#!/usr/bin/env python3
"""
HTTP API tests: routes, status codes and error payloads.
"""

from datetime import datetime

import httpx
import pytest

from bookwise.main import create_app

from tests.conftest import utc


def at(hour: int, minute: int = 0):
    return utc(2024, 1, 15, hour, minute)


def instant(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.fixture
async def client(container):
    app = create_app(container)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
async def event_type(seed, host):
    return await seed.event_type(host, duration=60, buffer_after=15)


def booking_payload(event_type, start, **overrides):
    data = {
        "event_type_id": event_type.id,
        "guest_name": "Jane Doe",
        "guest_email": "jane@example.com",
        "guest_timezone": "America/Edmonton",
        "start_time": start.isoformat(),
    }
    data.update(overrides)
    return data


@pytest.mark.integration
class TestHealth:
    """Liveness, readiness and metrics"""

    @pytest.mark.asyncio
    async def test_health_endpoints(self, client):
        assert (await client.get("/healthz")).json() == {"ok": True}
        assert (await client.get("/readyz")).json() == {"db": "ok"}

        metrics = (await client.get("/metrics")).json()
        assert metrics["status"] == "healthy"
        assert "errors" in metrics

    @pytest.mark.asyncio
    async def test_reminder_processing_endpoint(self, client):
        response = await client.post("/internal/reminders/process")
        assert response.status_code == 200
        assert response.json() == {"sent": 0, "failed": 0}


@pytest.mark.integration
class TestAvailabilityRoutes:
    """Slots, weekly schedule and overrides"""

    @pytest.mark.asyncio
    async def test_slots_for_a_day(self, client, host):
        response = await client.get(
            f"/users/{host.id}/slots", params={"date": "2024-01-15", "duration": 30, "timezone": "America/Edmonton"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["date"] == "2024-01-15"
        assert body["timezone"] == "America/Edmonton"
        assert len(body["slots"]) == 31
        assert instant(body["slots"][0]["start_time"]) == at(9)

    @pytest.mark.asyncio
    async def test_duration_from_event_type(self, client, host, event_type):
        response = await client.get(
            f"/users/{host.id}/slots", params={"date": "2024-01-15", "event_type_id": event_type.id}
        )
        slots = response.json()["slots"]

        assert instant(slots[-1]["end_time"]) == at(17)
        assert len(slots) == 29

    @pytest.mark.asyncio
    async def test_include_unavailable(self, client, host, seed, event_type):
        await seed.booking(host, event_type, at(10), at(11))
        response = await client.get(f"/users/{host.id}/slots", params={
            "date": "2024-01-15", "duration": 30, "include_unavailable": "true",
        })
        slots = response.json()["slots"]

        assert len(slots) == 31
        assert not [s for s in slots if s["available"] and at(9, 45) <= instant(s["start_time"]) < at(11, 15)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [
        {"date": "2024-01-15"},
        {"date": "2024-01-15", "duration": 30, "timezone": "Mars/Olympus"},
    ])
    async def test_invalid_slot_queries(self, client, host, params):
        response = await client.get(f"/users/{host.id}/slots", params=params)

        assert response.status_code == 422
        assert response.json()["error"] == "validation"

    @pytest.mark.asyncio
    async def test_unknown_user(self, client):
        response = await client.get("/users/missing/slots", params={"date": "2024-01-15", "duration": 30})

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_replace_weekly_schedule(self, client, host):
        response = await client.put(f"/users/{host.id}/schedule", json=[
            {"day_of_week": 1, "start_time": "13:00", "end_time": "17:00"},
            {"day_of_week": 1, "start_time": "9:00", "end_time": "12:00"},
        ])

        assert response.status_code == 200
        assert response.json() == [
            {"day_of_week": 1, "start_time": "09:00", "end_time": "12:00"},
            {"day_of_week": 1, "start_time": "13:00", "end_time": "17:00"},
        ]
        assert (await client.get(f"/users/{host.id}/schedule")).json() == response.json()

    @pytest.mark.asyncio
    async def test_overlapping_weekly_windows(self, client, host):
        response = await client.put(f"/users/{host.id}/schedule", json=[
            {"day_of_week": 2, "start_time": "09:00", "end_time": "12:00"},
            {"day_of_week": 2, "start_time": "11:00", "end_time": "14:00"},
        ])

        assert response.status_code == 422
        assert response.json()["error"] == "validation"

    @pytest.mark.asyncio
    async def test_override_lifecycle(self, client, host):
        url = f"/users/{host.id}/overrides/2024-01-15"

        put = await client.put(url, json={"is_available": False})
        assert put.status_code == 200
        assert put.json()["date"] == "2024-01-15"

        slots = await client.get(f"/users/{host.id}/slots", params={"date": "2024-01-15", "duration": 30})
        assert slots.json()["slots"] == []

        listed = await client.get(f"/users/{host.id}/overrides", params={"start": "2024-01-01", "end": "2024-01-31"})
        assert [o["date"] for o in listed.json()] == ["2024-01-15"]

        assert (await client.delete(url)).status_code == 204
        assert (await client.delete(url)).status_code == 404


@pytest.mark.integration
class TestBookingRoutes:
    """Create, read, reschedule, cancel"""

    @pytest.mark.asyncio
    async def test_create_returns_tokens(self, client, host, event_type):
        response = await client.post("/bookings", json=booking_payload(event_type, at(10)))

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "CONFIRMED"
        assert body["user_id"] == host.id
        assert instant(body["end_time"]) == at(11)
        assert body["reschedule_token"] and body["cancel_token"]

        fetched = await client.get(f"/bookings/{body['id']}")
        assert fetched.status_code == 200
        assert "cancel_token" not in fetched.json()

    @pytest.mark.asyncio
    async def test_conflicts_map_to_409(self, client, event_type):
        await client.post("/bookings", json=booking_payload(event_type, at(10)))

        taken = await client.post("/bookings", json=booking_payload(event_type, at(10, 30)))
        buffered = await client.post("/bookings", json=booking_payload(event_type, at(11)))

        assert taken.status_code == 409
        assert taken.json()["error"] == "slot_unavailable"
        assert buffered.status_code == 409
        assert buffered.json()["error"] == "buffer_conflict"

    @pytest.mark.asyncio
    async def test_invalid_payload(self, client, event_type):
        response = await client.post("/bookings", json=booking_payload(event_type, at(10), guest_timezone="Nowhere/Land"))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_event_type(self, client, event_type):
        response = await client.post("/bookings", json=booking_payload(event_type, at(10), event_type_id="missing"))

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_reschedule_and_double_cancel(self, client, event_type):
        created = (await client.post("/bookings", json=booking_payload(event_type, at(10)))).json()

        moved = await client.post(f"/bookings/{created['id']}/reschedule", json={"start_time": at(14).isoformat()})
        assert moved.status_code == 200
        assert instant(moved.json()["start_time"]) == at(14)

        first = await client.post(f"/bookings/{created['id']}/cancel", json={"reason": "Sick"})
        second = await client.post(f"/bookings/{created['id']}/cancel", json={})

        assert first.status_code == 200
        assert first.json()["status"] == "CANCELLED"
        assert second.status_code == 409
        assert second.json()["error"] == "already_cancelled"

    @pytest.mark.asyncio
    async def test_guest_token_routes(self, client, event_type):
        created = (await client.post("/bookings", json=booking_payload(event_type, at(10)))).json()

        found = await client.get(f"/bookings/token/{created['cancel_token']}", params={"type": "cancel"})
        assert found.json()["id"] == created["id"]

        wrong = await client.get(f"/bookings/token/{created['cancel_token']}", params={"type": "reschedule"})
        assert wrong.status_code == 404

        moved = await client.post(
            f"/bookings/token/{created['reschedule_token']}/reschedule", json={"start_time": at(15).isoformat()}
        )
        assert instant(moved.json()["start_time"]) == at(15)

        cancelled = await client.post(f"/bookings/token/{created['cancel_token']}/cancel", json={})
        assert cancelled.json()["status"] == "CANCELLED"

    @pytest.mark.asyncio
    async def test_status_transitions(self, client, event_type):
        created = (await client.post("/bookings", json=booking_payload(event_type, at(10)))).json()

        done = await client.post(f"/bookings/{created['id']}/status/COMPLETED")
        back = await client.post(f"/bookings/{created['id']}/status/CONFIRMED")

        assert done.json()["status"] == "COMPLETED"
        assert back.status_code == 422

    @pytest.mark.asyncio
    async def test_list_for_host(self, client, host, event_type):
        await client.post("/bookings", json=booking_payload(event_type, at(14)))
        await client.post("/bookings", json=booking_payload(event_type, at(9)))

        response = await client.get("/bookings", params={"user_id": host.id, "status": "CONFIRMED"})
        assert [instant(b["start_time"]) for b in response.json()] == [at(9), at(14)]

    @pytest.mark.asyncio
    async def test_missing_booking(self, client):
        response = await client.get("/bookings/missing")
        assert response.status_code == 404


@pytest.mark.integration
class TestTeamRoutes:
    """Team availability, validation, load and round-robin booking"""

    @pytest.fixture
    async def team(self, seed, host):
        partner = await seed.user(name="Partner")
        await seed.weekly(partner, [(1, "12:00", "17:00")])
        return await seed.team([host, partner])

    @pytest.mark.asyncio
    async def test_collective_availability(self, client, team):
        response = await client.get(f"/teams/{team.id}/availability", params={"date": "2024-01-15", "duration": 30})

        body = response.json()
        assert body["mode"] == "COLLECTIVE"
        assert instant(body["slots"][0]["start_time"]) == at(12)
        assert len(body["members"]) == 2

    @pytest.mark.asyncio
    async def test_validate(self, client, team, host):
        response = await client.post(f"/teams/{team.id}/validate", json={
            "start_time": at(10).isoformat(), "duration": 30, "mode": "COLLECTIVE",
        })
        body = response.json()
        assert body["valid"] is False
        assert len(body["unavailable_members"]) == 1

        response = await client.post(f"/teams/{team.id}/validate", json={
            "start_time": at(10).isoformat(), "duration": 30, "mode": "ROUND_ROBIN",
        })
        assert response.json() == {"valid": True, "assigned_user_id": host.id, "unavailable_members": []}

    @pytest.mark.asyncio
    async def test_round_robin_booking_and_load(self, client, seed, team, host):
        event_type = await seed.event_type(host, team_id=team.id, scheduling_type="ROUND_ROBIN")

        response = await client.post(f"/teams/{team.id}/bookings", json=booking_payload(event_type, at(10)))
        assert response.status_code == 201
        assert response.json()["user_id"] == host.id

        load = (await client.get(f"/teams/{team.id}/load")).json()
        assert [(r["user_id"], r["bookings"]) for r in load][0] == (host.id, 1)

    @pytest.mark.asyncio
    async def test_unknown_team(self, client):
        response = await client.get("/teams/missing/availability", params={"date": "2024-01-15", "duration": 30})
        assert response.status_code == 404
