def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["checks"]["fal_configured"] is True
    assert body["checks"]["provider"] == "fake"
    assert body["checks"]["kv_backend"] == "memory"
    assert r.headers["cache-control"] == "no-store, no-cache, must-revalidate"


def test_health_head(client):
    assert client.head("/api/health").status_code == 200


def test_unknown_route_uses_error_envelope(client):
    r = client.get("/api/nothing-here")
    assert r.status_code == 404
    assert "error" in r.json()


def test_malformed_body_is_400(client):
    r = client.post("/api/jobs/submit", json={"apiKey": "k", "garments": "not-a-list"})
    assert r.status_code == 400
    assert "garments" in r.json()["error"]
