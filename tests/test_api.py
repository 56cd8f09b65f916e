"""HTTP tests for auth, resources, requests and users."""


def test_register_login_me(client, register):
    alice = register("Alice")

    resp = client.get("/me", headers=alice.headers)
    assert resp.status_code == 200
    assert resp.json()["email"] == "alice@example.com"
    assert resp.json()["is_admin"] is False
    assert set(resp.json()) == {"id", "email", "name", "is_admin"}

    resp = client.post("/login", json={"email": "alice@example.com", "password": "s3cret"})
    assert resp.status_code == 200
    assert resp.json()["id"] == alice.id
    assert "session" in resp.cookies

    resp = client.post("/login", json={"email": "alice@example.com", "password": "wrong"})
    assert resp.status_code == 400


def test_duplicate_email_and_anonymous_access(client, register):
    register("Bob")
    resp = client.post(
        "/register", json={"email": "bob@example.com", "name": "Bob", "password": "x"}
    )
    assert resp.status_code == 400

    client.cookies.clear()
    assert client.get("/me").status_code == 401
    assert client.post("/resources/", json={"name": "x", "category": "y"}).status_code == 401


def test_donate_and_browse(client, register, donate_via_api):
    donor = register("Donor")
    resource = donate_via_api(donor, name="Tent", category="shelter")

    assert resource["owner_id"] == donor.id
    assert resource["status"] == "available"
    assert resource["images"] == ["/uploads/blanket.jpg"]

    resp = client.get(f"/resources/{resource['id']}")
    assert resp.status_code == 200
    assert resp.json()["name"] == "Tent"

    resp = client.get("/resources/", params={"category": "shelter"})
    assert [r["id"] for r in resp.json()] == [resource["id"]]
    assert client.get("/resources/", params={"category": "food"}).json() == []

    assert client.get("/resources/9999").json()["error"] == "ResourceNotFound"


def test_request_flow(client, register, donate_via_api):
    donor = register("Donor")
    requester = register("Requester")
    resource = donate_via_api(donor)

    resp = client.post("/requests/", json={"resource_id": resource["id"]}, headers=requester.headers)
    assert resp.status_code == 201
    body = resp.json()
    assert body["donor_id"] == donor.id
    assert body["requester_id"] == requester.id
    assert body["resource_name"] == "Blanket"

    # resource stays available for other requesters
    assert client.get(f"/resources/{resource['id']}").json()["status"] == "available"

    resp = client.post("/requests/", json={"resource_id": resource["id"]}, headers=requester.headers)
    assert resp.status_code == 409
    assert resp.json()["error"] == "DuplicateRequest"

    resp = client.post("/requests/", json={"resource_id": resource["id"]}, headers=donor.headers)
    assert resp.status_code == 403
    assert resp.json()["error"] == "SelfRequestDenied"

    resp = client.post("/requests/", json={"resource_id": 9999}, headers=requester.headers)
    assert resp.status_code == 404
    assert resp.json()["error"] == "ResourceNotFound"

    mine = client.get("/requests/mine", headers=requester.headers).json()
    assert [r["id"] for r in mine] == [body["id"]]

    for_resource = client.get(
        "/requests/", params={"resource_id": resource["id"]}, headers=donor.headers
    ).json()
    assert [r["id"] for r in for_resource] == [body["id"]]


def test_request_visibility(client, register, donate_via_api):
    donor = register("Donor")
    requester = register("Requester")
    outsider = register("Outsider")
    resource = donate_via_api(donor)
    req = client.post(
        "/requests/", json={"resource_id": resource["id"]}, headers=requester.headers
    ).json()

    assert client.get(f"/requests/{req['id']}", headers=donor.headers).status_code == 200
    assert client.get(f"/requests/{req['id']}", headers=outsider.headers).status_code == 403
    assert client.get(
        "/requests/", params={"resource_id": resource["id"]}, headers=outsider.headers
    ).json() == []


def test_removed_resource_cannot_be_requested(client, register, donate_via_api):
    donor = register("Donor")
    requester = register("Requester")
    resource = donate_via_api(donor)

    resp = client.patch(
        f"/resources/{resource['id']}/status", json={"status": "removed"}, headers=requester.headers
    )
    assert resp.status_code == 403

    resp = client.patch(
        f"/resources/{resource['id']}/status", json={"status": "removed"}, headers=donor.headers
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "removed"
    assert client.get("/resources/").json() == []

    resp = client.post("/requests/", json={"resource_id": resource["id"]}, headers=requester.headers)
    assert resp.status_code == 404


def test_deleting_resource_keeps_request_snapshot(client, register, donate_via_api):
    donor = register("Donor")
    requester = register("Requester")
    resource = donate_via_api(donor, name="Stove")
    req = client.post(
        "/requests/", json={"resource_id": resource["id"]}, headers=requester.headers
    ).json()

    assert client.delete(f"/resources/{resource['id']}", headers=requester.headers).status_code == 403
    assert client.delete(f"/resources/{resource['id']}", headers=donor.headers).status_code == 204
    assert client.get(f"/resources/{resource['id']}").status_code == 404

    kept = client.get(f"/requests/{req['id']}", headers=requester.headers).json()
    assert kept["resource_name"] == "Stove"
    assert kept["images"] == ["/uploads/blanket.jpg"]


def test_only_admin_deletes_requests(client, register, donate_via_api):
    admin = register("Admin", email="admin@example.com")
    donor = register("Donor")
    requester = register("Requester")
    resource = donate_via_api(donor)
    req = client.post(
        "/requests/", json={"resource_id": resource["id"]}, headers=requester.headers
    ).json()

    assert client.delete(f"/requests/{req['id']}", headers=requester.headers).status_code == 403
    assert client.delete(f"/requests/{req['id']}", headers=admin.headers).status_code == 204
    assert client.get(f"/requests/{req['id']}", headers=admin.headers).status_code == 404


def test_profile_and_account_deletion(client, register, donate_via_api):
    donor = register("Donor")
    requester = register("Requester")
    resource = donate_via_api(donor)
    client.post("/requests/", json={"resource_id": resource["id"]}, headers=requester.headers)

    profile = client.get(f"/users/{donor.id}/profile").json()
    assert profile["user"]["name"] == "Donor"
    assert [r["id"] for r in profile["donated_resources"]] == [resource["id"]]
    assert profile["requested_resources"] == []

    profile = client.get(f"/users/{requester.id}/profile").json()
    assert len(profile["requested_resources"]) == 1

    assert client.delete("/users/me", headers=donor.headers).status_code == 204
    assert client.get(f"/users/{donor.id}").status_code == 404
    assert client.get(f"/resources/{resource['id']}").status_code == 404

    # the requester's history is untouched
    mine = client.get("/requests/mine", headers=requester.headers).json()
    assert mine[0]["resource_name"] == "Blanket"


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["chat"] == {"rooms_total": 0, "memberships": 0}
