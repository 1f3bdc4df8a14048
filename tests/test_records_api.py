from decimal import Decimal

WRITE_HEADERS = {"X-Actor-Id": "actor-1", "X-Org-Id": "org-1"}


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.get_json() == {"status": "ok", "store_mode": "local"}


def test_write_without_identity_is_unauthorized(client):
    r = client.post("/api/v1/projects", json={"name": "Nope"})
    assert r.status_code == 401
    assert r.get_json()["error"] == "unauthorized"

    r = client.post("/api/v1/projects", json={"name": "Nope"}, headers={"X-Actor-Id": "actor-1"})
    assert r.status_code == 401
    assert client.get("/api/v1/projects").get_json() == []


def test_crud_round_trip(client):
    r = client.post("/api/v1/projects", json={"name": "API job"}, headers=WRITE_HEADERS)
    assert r.status_code == 201
    project = r.get_json()
    assert project["org_id"] == "org-1"
    assert project["status"] == "estimating"
    assert Decimal(project["estimate_total"]) == 0

    r = client.patch(f"/api/v1/projects/{project['id']}", json={"address": "1 Main St"}, headers=WRITE_HEADERS)
    assert r.status_code == 200
    assert r.get_json()["address"] == "1 Main St"

    rows = client.get("/api/v1/projects", query_string={"org_id": "org-1"}).get_json()
    assert [p["id"] for p in rows] == [project["id"]]

    r = client.delete(f"/api/v1/projects/{project['id']}", headers=WRITE_HEADERS)
    assert r.status_code == 204
    assert client.get(f"/api/v1/projects/{project['id']}").status_code == 404


def test_errors_are_json(client):
    r = client.get("/api/v1/widgets")
    assert r.status_code == 404
    assert r.get_json()["error"] == "not_found"

    r = client.get("/api/v1/projects/missing")
    assert r.status_code == 404
    assert r.get_json()["error"] == "not_found"

    r = client.post("/api/v1/projects", json={"name": "X", "colour": "red"}, headers=WRITE_HEADERS)
    assert r.status_code == 422
    assert r.get_json()["error"] == "validation_failure"

    r = client.get("/api/v1/trades", query_string={"name": "Roof"})
    assert r.status_code == 422

    r = client.post("/api/v1/estimates", json={"project_id": "missing"}, headers=WRITE_HEADERS)
    assert r.status_code == 404

    r = client.post("/api/v1/projects", data="not json", headers=WRITE_HEADERS, content_type="text/plain")
    assert r.status_code == 422


def test_category_key_conflict_carries_409(client):
    body = {"key": "decking", "label": "Decking"}
    assert client.post("/api/v1/categories", json=body, headers=WRITE_HEADERS).status_code == 201
    r = client.post("/api/v1/categories", json={"key": "DECKING", "label": "Dup"}, headers=WRITE_HEADERS)
    assert r.status_code == 409
    assert r.get_json()["error"] == "key_conflict"


def test_api_token_enforced_when_configured(client, app, monkeypatch):
    monkeypatch.setitem(app.config, "RECORDS_API_TOKEN", "s3cret")
    assert client.get("/api/v1/projects").status_code == 401
    assert client.get("/api/v1/projects", headers={"Authorization": "Bearer s3cret"}).status_code == 200
    # health probe is outside the API
    assert client.get("/healthz").status_code == 200
