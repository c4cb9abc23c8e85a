from urllib.parse import parse_qs, urlparse

import pytest

from lms_app.main import routes as main_routes


@pytest.fixture()
def outbox(monkeypatch):
    sent = []

    def fake_send(to_address, template_name, subject=None, **context):
        sent.append({"to": to_address, "template": template_name, **context})
        return True

    monkeypatch.setattr(main_routes, "send_template_email", fake_send)
    return sent


def _token_from(message):
    return parse_qs(urlparse(message["link"]).query)["token"][0]


def test_forgot_password_sends_reset_link(client, student, outbox):
    resp = client.post("/api/auth/forgot-password", json={"email": "Sam@Example.com"})
    assert resp.status_code == 200
    assert len(outbox) == 1
    assert outbox[0]["to"] == "sam@example.com"
    assert outbox[0]["template"] == "password_reset"

    token = _token_from(outbox[0])
    resp = client.get(f"/api/auth/reset-password?token={token}")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["email"] == "sam@example.com"


def test_forgot_password_same_answer_for_unknown_email(client, student, outbox):
    known = client.post("/api/auth/forgot-password", json={"email": "sam@example.com"})
    unknown = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert unknown.status_code == 200
    assert unknown.get_json()["data"] == known.get_json()["data"]
    assert len(outbox) == 1


def test_forgot_password_skips_inactive_accounts(client, make_user, outbox):
    make_user("Gone", "gone@example.com", is_active=False)
    resp = client.post("/api/auth/forgot-password", json={"email": "gone@example.com"})
    assert resp.status_code == 200
    assert outbox == []


def test_forgot_password_rejects_malformed_email(client, outbox):
    resp = client.post("/api/auth/forgot-password", json={"email": "not-an-email"})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "validation_error"


def test_reset_password_changes_login_and_link_is_single_use(client, student, outbox):
    client.post("/api/auth/forgot-password", json={"email": "sam@example.com"})
    token = _token_from(outbox[0])

    short = client.post("/api/auth/reset-password", json={"token": token, "password": "short"})
    assert short.status_code == 400

    resp = client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new-pass"})
    assert resp.status_code == 200

    old = client.post("/login", json={"email": "sam@example.com", "password": "secret123"})
    assert old.status_code == 401
    new = client.post("/login", json={"email": "sam@example.com", "password": "brand-new-pass"})
    assert new.status_code == 200

    again = client.post("/api/auth/reset-password", json={"token": token, "password": "another-pass"})
    assert again.status_code == 400
    assert again.get_json()["error"]["code"] == "reset_token_invalid"


def test_reset_password_rejects_bad_and_expired_tokens(app, client, student, outbox):
    resp = client.post("/api/auth/reset-password", json={"token": "garbage", "password": "brand-new-pass"})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "reset_token_invalid"

    client.post("/api/auth/forgot-password", json={"email": "sam@example.com"})
    token = _token_from(outbox[0])
    app.config["PASSWORD_RESET_MAX_AGE"] = -1
    resp = client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new-pass"})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "reset_token_expired"
