"""Trip API tests."""

from datetime import datetime, timedelta, timezone

from safetrip.models.trip import Trip

START = {"latitude": 12.9716, "longitude": 77.5946, "address": "MG Road"}
END = {"latitude": 12.9352, "longitude": 77.6245, "address": "Koramangala"}


def _register(client, email):
    client.post(
        "/auth/register",
        json={"email": email, "password": "secret123", "name": email.split("@")[0], "phone": "+15550002000"},
    )
    token = client.post("/auth/login", json={"email": email, "password": "secret123"}).json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


def _start(client, headers, duration=30, reminder_minutes=5):
    return client.post(
        "/trips/start",
        headers=headers,
        json={
            "start_location": START,
            "end_location": END,
            "duration": duration,
            "reminder_minutes": reminder_minutes,
        },
    )


def _ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def test_start_trip_sets_deadlines_and_arms_timers(client):
    h = _register(client, "trip_start@test.com")
    r = _start(client, h, duration=5, reminder_minutes=2)
    assert r.status_code == 201
    trip = r.json()
    assert trip["status"] == "active"
    assert trip["duration"] == {"planned": 5, "actual": None}
    assert trip["check_in_timer"]["interval"] == 30

    end = _ts(trip["trip_end_time"])
    reminder = _ts(trip["reminder_time"])
    created = _ts(trip["created_at"])
    assert reminder < end
    assert end - reminder == timedelta(minutes=2)
    assert end - created == timedelta(minutes=5)
    assert trip["current_location"]["latitude"] == START["latitude"]

    health = client.get("/health").json()
    assert health["armed_trips"] >= 1


def test_reminder_must_be_shorter_than_duration(client):
    h = _register(client, "trip_reminder_bad@test.com")
    r = _start(client, h, duration=5, reminder_minutes=5)
    assert r.status_code == 400
    assert "less than trip duration" in r.json()["detail"]


def test_start_trip_input_validation(client):
    h = _register(client, "trip_validation@test.com")
    assert _start(client, h, duration=0, reminder_minutes=1).status_code == 422
    assert _start(client, h, duration=1441, reminder_minutes=1).status_code == 422
    bad_coords = client.post(
        "/trips/start",
        headers=h,
        json={"start_location": {"latitude": 100, "longitude": 0}, "end_location": END, "duration": 10},
    )
    assert bad_coords.status_code == 422


def test_default_reminder_is_one_minute(client):
    h = _register(client, "trip_default_reminder@test.com")
    r = client.post("/trips/start", headers=h, json={"start_location": START, "end_location": END, "duration": 10})
    assert r.status_code == 201
    assert r.json()["reminder_minutes"] == 1


def test_checkin_resets_checkin_deadline_only(client):
    h = _register(client, "trip_checkin@test.com")
    trip = _start(client, h, duration=60, reminder_minutes=5).json()

    r = client.post(
        "/trips/checkin",
        headers=h,
        json={"trip_id": trip["id"], "location": {"latitude": 12.95, "longitude": 77.6}, "battery_level": 64},
    )
    assert r.status_code == 200
    assert r.json()["message"] == "Check-in successful"
    next_check_in = _ts(r.json()["next_check_in"])
    assert next_check_in - datetime.now(next_check_in.tzinfo) > timedelta(minutes=29)

    after = client.get("/trips/active", headers=h).json()
    assert after["id"] == trip["id"]
    assert after["status"] == "active"
    assert after["trip_end_time"] == trip["trip_end_time"]
    assert after["current_location"]["battery_level"] == 64

    me = client.get("/auth/me", headers=h).json()
    assert me["latitude"] == 12.95
    assert me["battery_level"] == 64


def test_location_ping_updates_current_location(client):
    h = _register(client, "trip_ping@test.com")
    trip = _start(client, h).json()
    r = client.post(
        "/trips/location",
        headers=h,
        json={"trip_id": trip["id"], "location": {"latitude": 12.96, "longitude": 77.61, "accuracy": 8.5}},
    )
    assert r.status_code == 200
    status = client.get(f"/trips/{trip['id']}/status", headers=h).json()
    assert status["current_location"]["latitude"] == 12.96


def test_end_trip_completes_and_disarms(client, db):
    h = _register(client, "trip_end@test.com")
    trip = _start(client, h, duration=10, reminder_minutes=2).json()

    r = client.post("/trips/end", headers=h, json={"trip_id": trip["id"]})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "completed"
    assert body["duration"]["actual"] == 0
    assert body["completed_at"] is not None

    # Ending twice is a state error, not a silent success
    again = client.post("/trips/end", headers=h, json={"trip_id": trip["id"]})
    assert again.status_code == 409

    timers = client.app.state.trip_timers
    client.get("/health")  # let queued loop callbacks run
    assert not timers.is_scheduled(trip["id"])

    stored = db.get(Trip, trip["id"])
    assert stored.status == "completed"


def test_end_unknown_trip_is_not_found(client):
    h = _register(client, "trip_unknown@test.com")
    assert client.post("/trips/end", headers=h, json={"trip_id": 999999}).status_code == 404


def test_trips_of_other_users_are_not_found(client):
    owner = _register(client, "trip_owner@test.com")
    intruder = _register(client, "trip_intruder@test.com")
    trip = _start(client, owner).json()

    assert client.get(f"/trips/{trip['id']}/status", headers=intruder).status_code == 404
    assert client.post("/trips/end", headers=intruder, json={"trip_id": trip["id"]}).status_code == 404
    checkin = client.post(
        "/trips/checkin",
        headers=intruder,
        json={"trip_id": trip["id"], "location": {"latitude": 1, "longitude": 1}},
    )
    assert checkin.status_code == 404


def test_cancel_trip(client):
    h = _register(client, "trip_cancel@test.com")
    trip = _start(client, h).json()
    r = client.post("/trips/cancel", headers=h, json={"trip_id": trip["id"]})
    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"
    assert client.get("/trips/active", headers=h).json() is None


def test_status_reports_whole_minutes_remaining(client, db):
    h = _register(client, "trip_status@test.com")
    trip = _start(client, h, duration=30, reminder_minutes=5).json()
    r = client.get(f"/trips/{trip['id']}/status", headers=h)
    assert r.status_code == 200
    assert r.json()["time_remaining"] in (29, 30)

    # Past deadline is clamped at zero
    stored = db.get(Trip, trip["id"])
    stored.trip_end_time = datetime.now(timezone.utc) - timedelta(minutes=3)
    db.commit()
    assert client.get(f"/trips/{trip['id']}/status", headers=h).json()["time_remaining"] == 0


def test_history_pagination_and_filter(client):
    h = _register(client, "trip_history@test.com")
    ids = [_start(client, h).json()["id"] for _ in range(3)]
    client.post("/trips/end", headers=h, json={"trip_id": ids[0]})

    page = client.get("/trips/history", headers=h, params={"page": 1, "limit": 2}).json()
    assert page["total"] == 3
    assert page["total_pages"] == 2
    assert page["current_page"] == 1
    assert [t["id"] for t in page["trips"]] == [ids[2], ids[1]]

    completed = client.get("/trips/history", headers=h, params={"status": "completed"}).json()
    assert [t["id"] for t in completed["trips"]] == [ids[0]]

    everything = client.get("/trips/history", headers=h, params={"status": "all"}).json()
    assert everything["total"] == 3

    assert client.get("/trips/history", headers=h, params={"status": "lost"}).status_code == 400


def test_trip_stats(client):
    h = _register(client, "trip_stats@test.com")
    a = _start(client, h).json()["id"]
    b = _start(client, h).json()["id"]
    _start(client, h)
    client.post("/trips/end", headers=h, json={"trip_id": a})
    client.post("/trips/cancel", headers=h, json={"trip_id": b})

    stats = client.get("/trips/stats", headers=h).json()
    assert stats["total_trips"] == 3
    assert stats["completed_trips"] == 1
    assert stats["cancelled_trips"] == 1
    assert stats["active_trips"] == 1
    assert stats["completion_rate"] == 33.3
    assert stats["average_duration"] == 0
    assert stats["alert_types"] == {}


def test_trip_export(client):
    h = _register(client, "trip_export@test.com")
    first = _start(client, h).json()["id"]
    client.post(
        "/trips/location",
        headers=h,
        json={"trip_id": first, "location": {"latitude": 12.96, "longitude": 77.61}},
    )
    client.post("/trips/end", headers=h, json={"trip_id": first})
    second = client.post(
        "/trips/start",
        headers=h,
        json={
            "start_location": {"latitude": 12.9716, "longitude": 77.5946},
            "end_location": {"latitude": 12.9352, "longitude": 77.6245},
            "duration": 45,
            "reminder_minutes": 5,
        },
    ).json()["id"]

    r = client.get("/trips/export", headers=h)
    assert r.status_code == 200
    body = r.json()
    assert body["format"] == "JSON"
    assert body["total"] == 2
    newest, oldest = body["data"]

    assert newest["trip_id"] == second
    assert newest["start_location"] == "Unknown"
    assert newest["end_location"] == "Unknown"
    assert newest["planned_duration_min"] == 45
    assert newest["actual_duration_min"] == 0
    assert newest["status"] == "active"
    assert newest["end_time"] == "N/A"
    assert newest["last_location"] == "N/A"
    assert newest["alerts_count"] == 0

    assert oldest["trip_id"] == first
    assert oldest["start_location"] == "MG Road"
    assert oldest["end_location"] == "Koramangala"
    assert oldest["status"] == "completed"
    assert oldest["end_time"] != "N/A"
    assert oldest["last_location"] == "12.96, 77.61"

    other = _register(client, "trip_export_other@test.com")
    assert client.get("/trips/export", headers=other).json() == {"data": [], "format": "JSON", "total": 0}
