"""Safe zone CRUD and location safety check tests."""


def _register(client, email, phone="+15550005000"):
    client.post(
        "/auth/register",
        json={"email": email, "password": "secret123", "name": email.split("@")[0], "phone": phone},
    )
    token = client.post("/auth/login", json={"email": email, "password": "secret123"}).json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


def _zone(client, headers, name, latitude, longitude, radius=200, **extra):
    r = client.post(
        "/safe-zones",
        headers=headers,
        json={"name": name, "latitude": latitude, "longitude": longitude, "radius": radius, **extra},
    )
    assert r.status_code == 201, r.text
    return r.json()


def test_create_list_update_delete(client):
    h = _register(client, "zones_crud@test.com")
    home = _zone(client, h, "Home", 12.9716, 77.5946, type="home")
    assert home["address"] == "Home Location"
    assert home["is_active"] is True
    assert home["type"] == "home"

    r = client.put(f"/safe-zones/{home['id']}", headers=h, json={"radius": 800, "address": "12 MG Road"})
    assert r.status_code == 200
    assert r.json()["radius"] == 800
    assert r.json()["address"] == "12 MG Road"
    assert r.json()["name"] == "Home"

    listed = client.get("/safe-zones", headers=h).json()
    assert [z["id"] for z in listed] == [home["id"]]

    r = client.delete(f"/safe-zones/{home['id']}", headers=h)
    assert r.status_code == 200
    assert r.json()["deleted"] == {"id": home["id"], "name": "Home"}
    assert client.get("/safe-zones", headers=h).json() == []


def test_duplicate_name_rejected(client):
    h = _register(client, "zones_dup@test.com")
    _zone(client, h, "Office", 12.97, 77.59)
    r = client.post("/safe-zones", headers=h, json={"name": "Office", "latitude": 1.0, "longitude": 1.0})
    assert r.status_code == 400

    gym = _zone(client, h, "Gym", 12.98, 77.60)
    r = client.put(f"/safe-zones/{gym['id']}", headers=h, json={"name": "Office"})
    assert r.status_code == 400

    # Another user may reuse the name
    other = _register(client, "zones_dup_other@test.com")
    _zone(client, other, "Office", 12.97, 77.59)


def test_radius_bounds(client):
    h = _register(client, "zones_radius@test.com")
    too_small = {"name": "Tiny", "latitude": 0.0, "longitude": 0.0, "radius": 49}
    too_large = {"name": "Huge", "latitude": 0.0, "longitude": 0.0, "radius": 5001}
    assert client.post("/safe-zones", headers=h, json=too_small).status_code == 422
    assert client.post("/safe-zones", headers=h, json=too_large).status_code == 422
    assert client.post("/safe-zones", headers=h, json={**too_small, "radius": 50}).status_code == 201
    assert client.post("/safe-zones", headers=h, json={**too_large, "radius": 5000}).status_code == 201


def test_check_safety_without_zones_is_not_safe(client):
    h = _register(client, "zones_none@test.com")
    r = client.post("/safe-zones/check-safety", headers=h, json={"latitude": 12.9716, "longitude": 77.5946})
    assert r.status_code == 200
    assert r.json() == {
        "is_safe": False,
        "total_zones_checked": 0,
        "in_safe_zones": 0,
        "nearest_safe_zone": None,
        "results": [],
    }


def test_check_safety_inside_and_nearest(client):
    h = _register(client, "zones_check@test.com")
    home = _zone(client, h, "Home", 12.9716, 77.5946, radius=200, type="home")
    _zone(client, h, "Work", 12.9352, 77.6245, radius=300, type="work")

    # About 55 m north of Home
    r = client.post("/safe-zones/check-safety", headers=h, json={"latitude": 12.9721, "longitude": 77.5946})
    body = r.json()
    assert body["is_safe"] is True
    assert body["total_zones_checked"] == 2
    assert body["in_safe_zones"] == 1
    assert body["nearest_safe_zone"]["name"] == "Home"
    assert 50 <= body["nearest_safe_zone"]["distance"] <= 60
    by_name = {res["safe_zone"]["name"]: res for res in body["results"]}
    assert by_name["Home"]["is_within"] is True
    assert by_name["Home"]["safety_status"] == "safe"
    assert by_name["Home"]["safe_zone"]["id"] == home["id"]
    assert by_name["Work"]["safety_status"] == "outside"

    # Between the zones but outside both
    r = client.post("/safe-zones/check-safety", headers=h, json={"latitude": 12.9600, "longitude": 77.6000})
    body = r.json()
    assert body["is_safe"] is False
    assert body["in_safe_zones"] == 0
    assert body["nearest_safe_zone"]["name"] == "Home"


def test_inactive_zones_are_ignored(client):
    h = _register(client, "zones_toggle@test.com")
    home = _zone(client, h, "Home", 12.9716, 77.5946)

    r = client.patch(f"/safe-zones/{home['id']}/toggle", headers=h)
    assert r.status_code == 200
    assert r.json()["is_active"] is False

    check = {"latitude": 12.9716, "longitude": 77.5946}
    body = client.post("/safe-zones/check-safety", headers=h, json=check).json()
    assert body["is_safe"] is False
    assert body["total_zones_checked"] == 0
    assert body["nearest_safe_zone"] is None

    client.patch(f"/safe-zones/{home['id']}/toggle", headers=h)
    assert client.post("/safe-zones/check-safety", headers=h, json=check).json()["is_safe"] is True


def test_zones_are_private_to_owner(client):
    owner = _register(client, "zones_owner@test.com")
    other = _register(client, "zones_intruder@test.com")
    zone = _zone(client, owner, "Home", 12.9716, 77.5946)

    assert client.put(f"/safe-zones/{zone['id']}", headers=other, json={"radius": 100}).status_code == 404
    assert client.patch(f"/safe-zones/{zone['id']}/toggle", headers=other).status_code == 404
    assert client.delete(f"/safe-zones/{zone['id']}", headers=other).status_code == 404
    assert client.get("/safe-zones", headers=other).json() == []

    body = client.post(
        "/safe-zones/check-safety", headers=other, json={"latitude": 12.9716, "longitude": 77.5946}
    ).json()
    assert body["is_safe"] is False


def test_safe_zones_require_auth(client):
    assert client.get("/safe-zones").status_code == 401
