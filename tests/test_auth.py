def test_register_creates_account(client):
    resp = client.post("/api/auth/register", json={
        "name": "Nia Park",
        "email": "Nia@Example.com",
        "password": "longenough",
        "role": "student",
    })
    assert resp.status_code == 201
    user = resp.get_json()["data"]["user"]
    assert user["email"] == "nia@example.com"
    assert user["role"] == "student"
    assert user["is_active"] is True


def test_register_rejects_duplicate_email(client, student):
    resp = client.post("/api/auth/register", json={
        "name": "Other Sam", "email": "sam@example.com", "password": "longenough",
    })
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "email_taken"


def test_register_validates_password_and_role(client):
    resp = client.post("/api/auth/register", json={
        "name": "Short", "email": "short@example.com", "password": "abc",
    })
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "validation_error"

    resp = client.post("/api/auth/register", json={
        "name": "Sneaky", "email": "sneaky@example.com", "password": "longenough", "role": "admin",
    })
    assert resp.status_code == 400


def test_json_login_returns_user_and_csrf_token(client, student):
    resp = client.post("/login", json={"email": "SAM@example.com", "password": "secret123"})
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["user"]["email"] == "sam@example.com"
    assert data["csrf_token"]


def test_login_rejects_bad_password(client, student):
    resp = client.post("/login", json={"email": "sam@example.com", "password": "nope-nope"})
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "invalid_credentials"


def test_login_rejects_deactivated_account(client, make_user):
    make_user("Gone", "gone@example.com", is_active=False)
    resp = client.post("/login", json={"email": "gone@example.com", "password": "secret123"})
    assert resp.status_code == 403
    assert resp.get_json()["error"]["code"] == "account_disabled"


def test_form_login_redirects_to_dashboard(client, student):
    resp = client.post("/login", data={"email": "sam@example.com", "password": "secret123"})
    assert resp.status_code == 302
    assert "/dashboard" in resp.headers["Location"]
    assert client.get("/dashboard").status_code == 200


def test_api_requires_authentication(client):
    resp = client.get("/api/classes")
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "auth_required"


def test_pages_redirect_to_login(client):
    resp = client.get("/dashboard")
    assert resp.status_code == 302
    assert "/login" in resp.headers["Location"]


def test_profile_update_and_password_change(client, student, login):
    login("sam@example.com")
    resp = client.put("/api/auth/profile", json={"bio": "Second year", "university": "State U"})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["user"]["university"] == "State U"

    resp = client.put("/api/auth/profile", json={"current_password": "wrong", "new_password": "brand-new-pass"})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "invalid_password"

    resp = client.put("/api/auth/profile", json={"current_password": "secret123", "new_password": "brand-new-pass"})
    assert resp.status_code == 200

    client.get("/logout")
    resp = client.post("/login", json={"email": "sam@example.com", "password": "brand-new-pass"})
    assert resp.status_code == 200


def test_profile_name_cannot_be_blank(client, student, login):
    login("sam@example.com")
    resp = client.put("/api/auth/profile", json={"name": "  "})
    assert resp.status_code == 400
    assert client.get("/api/auth/profile").get_json()["data"]["user"]["name"] == "Sam Carter"
