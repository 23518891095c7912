"""Profile, settings and emergency contact tests."""


def _register(client, email, phone="+15550001000"):
    client.post(
        "/auth/register",
        json={"email": email, "password": "secret123", "name": email.split("@")[0], "phone": phone},
    )
    token = client.post("/auth/login", json={"email": email, "password": "secret123"}).json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


def test_settings_created_with_defaults(client):
    h = _register(client, "settings_default@test.com")
    r = client.get("/users/settings", headers=h)
    assert r.status_code == 200
    body = r.json()
    assert body["sms_fallback"] is True
    assert body["community_help"] is False
    assert body["shake_detection"] is True


def test_update_settings_partial(client):
    h = _register(client, "settings_update@test.com")
    r = client.put("/users/settings", headers=h, json={"community_help": True, "sms_fallback": False})
    assert r.status_code == 200
    assert r.json()["community_help"] is True
    assert r.json()["sms_fallback"] is False

    # Untouched fields keep their values
    r = client.put("/users/settings", headers=h, json={"voice_commands": False})
    assert r.json()["community_help"] is True
    assert r.json()["voice_commands"] is False


def test_update_profile_and_location(client):
    h = _register(client, "profile@test.com")
    r = client.put("/users/profile", headers=h, json={"name": "Renamed", "phone": "+15550009999"})
    assert r.status_code == 200
    assert r.json()["name"] == "Renamed"

    r = client.put("/users/location", headers=h, json={"latitude": 40.7, "longitude": -74.0, "battery_level": 55})
    assert r.status_code == 200
    assert r.json()["latitude"] == 40.7
    assert r.json()["battery_level"] == 55

    bad = client.put("/users/location", headers=h, json={"latitude": 91, "longitude": 0})
    assert bad.status_code == 422


def test_fcm_token_update(client):
    h = _register(client, "fcm@test.com")
    r = client.put("/users/fcm-token", headers=h, json={"fcm_token": "device-token-123"})
    assert r.status_code == 200


def test_new_primary_contact_clears_previous(client):
    h = _register(client, "contacts_primary@test.com")
    first = client.post(
        "/users/contacts",
        headers=h,
        json={"name": "Mum", "phone": "+15550100001", "relationship": "family", "is_primary": True},
    )
    assert first.status_code == 201
    second = client.post(
        "/users/contacts",
        headers=h,
        json={"name": "Sam", "phone": "+15550100002", "is_primary": True},
    )
    assert second.status_code == 201

    contacts = {c["name"]: c for c in client.get("/users/contacts", headers=h).json()}
    assert contacts["Sam"]["is_primary"] is True
    assert contacts["Mum"]["is_primary"] is False
    assert contacts["Sam"]["relationship"] == "friend"

    # Promote Mum again through update
    r = client.put(f"/users/contacts/{contacts['Mum']['id']}", headers=h, json={"is_primary": True})
    assert r.status_code == 200
    contacts = {c["name"]: c for c in client.get("/users/contacts", headers=h).json()}
    assert contacts["Mum"]["is_primary"] is True
    assert contacts["Sam"]["is_primary"] is False


def test_contact_validation_and_ownership(client):
    h = _register(client, "contacts_owner@test.com")
    other = _register(client, "contacts_other@test.com")

    bad_rel = client.post("/users/contacts", headers=h, json={"name": "X", "phone": "+15550100003", "relationship": "boss"})
    assert bad_rel.status_code == 422

    created = client.post("/users/contacts", headers=h, json={"name": "Kim", "phone": "+15550100004"}).json()
    assert client.put(f"/users/contacts/{created['id']}", headers=other, json={"name": "Hijack"}).status_code == 404
    assert client.delete(f"/users/contacts/{created['id']}", headers=other).status_code == 404

    assert client.delete(f"/users/contacts/{created['id']}", headers=h).status_code == 200
    assert client.get("/users/contacts", headers=h).json() == []
