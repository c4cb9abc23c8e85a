import pytest

from lms_app import create_app


@pytest.fixture()
def limited_app(app, monkeypatch):
    monkeypatch.setenv("RATELIMIT_ENABLED", "true")
    limited = create_app()
    limited.config["TESTING"] = True
    yield limited
    # Later apps re-initialise the shared limiter from their own config
    monkeypatch.setenv("RATELIMIT_ENABLED", "false")


def test_login_attempts_are_rate_limited(limited_app, student):
    client = limited_app.test_client()
    statuses = [
        client.post("/login", json={"email": "sam@example.com", "password": "wrong-password"}).status_code
        for _ in range(15)
    ]
    assert statuses[0] == 401
    assert 429 in statuses
    resp = client.post("/login", json={"email": "sam@example.com", "password": "wrong-password"})
    assert resp.status_code == 429
    assert resp.get_json()["error"]["code"] == "rate_limited"
