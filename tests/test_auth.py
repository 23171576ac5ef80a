from datetime import datetime, timedelta, timezone


def test_signup_login_logout(client):
    res = client.post("/api/auth/signup", json={"name": "Karthik", "email": "karthik@firesafety.in", "password": "pw123456"})
    assert res.status_code == 200
    user = res.json()["user"]
    assert user["role"] == "customer"
    assert "password_hash" not in user and "current_token" not in user

    res = client.post("/api/auth/login", json={"email": "karthik@firesafety.in", "password": "pw123456"})
    assert res.status_code == 200
    headers = {"Authorization": f"Bearer {res.json()['token']}"}
    assert client.get("/api/auth/state", headers=headers).json()["status"] == "authenticated"

    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    assert client.get("/api/auth/state", headers=headers).json()["status"] == "anonymous"


def test_duplicate_signup(client, auth_headers):
    res = client.post("/api/auth/signup", json={"name": "Again", "email": "admin@firesafety.in", "password": "x"})
    assert res.status_code == 400


def test_bad_credentials(client, auth_headers):
    res = client.post("/api/auth/login", json={"email": "admin@firesafety.in", "password": "wrong"})
    assert res.status_code == 401
    assert res.json()["detail"] == "Invalid email or password"


def test_admin_routes_need_a_signed_in_account(client):
    for path in ("/api/admin/dashboard", "/api/admin/products", "/api/admin/orders", "/api/admin/customers"):
        assert client.get(path).status_code == 401
    assert client.get("/api/admin/dashboard", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_any_customer_passes_the_gate(client, auth_headers):
    assert client.get("/api/admin/dashboard", headers=auth_headers).status_code == 200


def test_expired_token_is_anonymous(client, db, auth_headers):
    db["users"].update_one({}, {"$set": {"current_token.expires_at": datetime.now(timezone.utc) - timedelta(hours=1)}})
    assert client.get("/api/auth/state", headers=auth_headers).json()["status"] == "anonymous"
    assert client.get("/api/my-orders", headers=auth_headers).status_code == 401


def test_profile_update(client, auth_headers):
    res = client.put("/api/admin/profile", json={"new_password": "a", "confirm_password": "b"}, headers=auth_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Passwords do not match"

    res = client.put("/api/admin/profile", json={"display_name": "Store Owner", "new_password": "newpw", "confirm_password": "newpw"}, headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["name"] == "Store Owner"
    assert client.post("/api/auth/login", json={"email": "admin@firesafety.in", "password": "newpw"}).status_code == 200


def test_no_database_configured(monkeypatch):
    import database
    import main
    from fastapi.testclient import TestClient

    monkeypatch.setattr(database, "db", None)
    client = TestClient(main.app)
    assert client.get("/api/products").status_code == 503
    assert client.get("/test").json()["database"] == "❌ Not Connected"


def test_guest_can_sign_up_after_checkout(client, db, auth_headers):
    pid = client.post("/api/admin/products", json={"name": "Fire Blanket", "price": 250, "stock": 5}, headers=auth_headers).json()["id"]
    guest = {"X-Client-Id": "guest-browser"}
    client.post("/api/cart/items", json={"product_id": pid}, headers=guest)
    shipping = {"customer_name": "Priya", "email": "priya@firesafety.in", "phone": "98", "address": "1 Main Rd", "city": "Salem", "pincode": "636001"}
    assert client.post("/api/checkout", json={"shipping": shipping}, headers=guest).status_code == 200

    res = client.post("/api/auth/signup", json={"name": "Priya R", "email": "priya@firesafety.in", "password": "pw123"})
    assert res.status_code == 200
    assert res.json()["user"]["phone"] == "98"
    assert db["users"].count_documents({"email": "priya@firesafety.in"}) == 1
    assert client.post("/api/auth/login", json={"email": "priya@firesafety.in", "password": "pw123"}).status_code == 200
    assert client.post("/api/auth/signup", json={"name": "Again", "email": "priya@firesafety.in", "password": "x"}).status_code == 400
