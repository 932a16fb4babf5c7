from app import create_app
from conftest import TEST_SECRET
from utils import TokenService


def test_index_and_health(client):
    index = client.get("/")
    assert index.status_code == 200
    assert index.get_json()["data"]["endpoints"] == {"users": "/api/users", "recipes": "/api/recipes"}

    health = client.get("/health")
    assert health.status_code == 200
    assert health.get_json()["data"]["status"] == "OK"


def test_unknown_endpoint_returns_json_404(client):
    response = client.get("/api/nothing")

    assert response.status_code == 404
    body = response.get_json()
    assert body["success"] is False
    assert body["errors"] == {"path": "/api/nothing", "method": "GET"}


def test_register_and_login(client):
    response = client.post(
        "/api/users/register",
        json={"username": "alice", "email": "alice@example.com", "password": "secret1"},
    )
    assert response.status_code == 201
    user = response.get_json()["data"]["user"]
    assert user["username"] == "alice"
    assert "password" not in user

    response = client.post("/api/users/login", json={"username": "alice", "password": "secret1"})
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["user"]["id"] == user["id"]
    assert data["token"]


def test_register_errors_are_400(client):
    missing = client.post("/api/users/register", json={"username": "alice"})
    assert missing.status_code == 400
    assert missing.get_json()["message"] == "All fields are required"

    duplicate = client.post(
        "/api/users/register",
        json={"username": "john_doe", "email": "new@example.com", "password": "secret1"},
    )
    assert duplicate.status_code == 400
    assert duplicate.get_json()["message"] == "Username or email already exists"

    not_json = client.post("/api/users/register", data="nope", content_type="text/plain")
    assert not_json.status_code == 400


def test_bad_login_is_401_with_same_message(client):
    wrong = client.post("/api/users/login", json={"username": "john_doe", "password": "wrongpw"})
    unknown = client.post("/api/users/login", json={"username": "nobody", "password": "anything"})

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.get_json() == unknown.get_json()


def test_missing_token_is_403_and_bad_token_is_401(client):
    assert client.get("/api/users").status_code == 403

    bad = client.get("/api/users", headers={"Authorization": "Bearer not.a.token"})
    assert bad.status_code == 401
    assert bad.get_json()["message"] == "Invalid token"


def test_foreign_token_is_rejected(client):
    forged = TokenService("some-other-secret-that-is-long-enough-x").issue({"user_id": 1})

    response = client.get("/api/users", headers={"Authorization": f"Bearer {forged}"})

    assert response.status_code == 401


def test_raw_token_header_is_accepted(client, login):
    token = login()["Authorization"].split(" ", 1)[1]

    assert client.get("/api/users", headers={"Authorization": token}).status_code == 200


def test_list_users(client, login):
    response = client.get("/api/users", headers=login())

    data = response.get_json()["data"]
    assert data["count"] == 2
    assert all("password" not in u for u in data["users"])


def test_profile_is_owner_only(client, login):
    headers = login()

    own = client.get("/api/users/profile/1", headers=headers)
    assert own.status_code == 200
    assert own.get_json()["data"]["user"]["username"] == "john_doe"

    assert client.get("/api/users/profile/2", headers=headers).status_code == 403
    assert client.put("/api/users/profile/2", json={"username": "x"}, headers=headers).status_code == 403


def test_update_profile(client, login):
    headers = login()

    response = client.put("/api/users/profile/1", json={"username": "johnny"}, headers=headers)
    assert response.status_code == 200
    user = response.get_json()["data"]["user"]
    assert user["username"] == "johnny"
    assert user["email"] == "john@example.com"

    bad = client.put("/api/users/profile/1", json={"email": "broken"}, headers=headers)
    assert bad.status_code == 400


def test_token_for_vanished_user_profile_is_404(client, tokens):
    token = tokens.issue({"user_id": 77})

    response = client.get("/api/users/profile/77", headers={"Authorization": token})

    assert response.status_code == 404


def test_public_recipe_reads(client):
    listing = client.get("/api/recipes").get_json()["data"]
    assert listing["count"] == 2
    assert [r["title"] for r in listing["recipes"]] == ["Spaghetti Carbonara", "Chocolate Cake"]

    recipe = client.get("/api/recipes/2").get_json()["data"]["recipe"]
    assert recipe["createdBy"] == 2
    assert recipe["createdAt"].startswith("2025-01-02")

    assert client.get("/api/recipes/99").status_code == 404

    by_user = client.get("/api/recipes/user/1").get_json()["data"]
    assert [r["id"] for r in by_user["recipes"]] == [1]


def test_search(client):
    response = client.get("/api/recipes/search", query_string={"q": "EGGS"})
    assert response.status_code == 200
    assert response.get_json()["data"]["count"] == 2

    assert client.get("/api/recipes/search").status_code == 400
    assert client.get("/api/recipes/search", query_string={"q": "  "}).status_code == 400


def test_create_recipe(client, login):
    payload = {"title": "Toast", "ingredients": "bread", "instructions": "Toast it."}

    assert client.post("/api/recipes", json=payload).status_code == 403

    response = client.post("/api/recipes", json=payload, headers=login())
    assert response.status_code == 201
    recipe = response.get_json()["data"]["recipe"]
    assert recipe["id"] == 3
    assert recipe["ingredients"] == ["bread"]
    assert recipe["createdBy"] == 1
    assert recipe["description"] == ""

    invalid = client.post("/api/recipes", json={**payload, "ingredients": []}, headers=login())
    assert invalid.status_code == 400
    assert invalid.get_json()["message"] == "At least one ingredient is required"


def test_update_recipe_ownership(client, login):
    john = login()

    forbidden = client.put("/api/recipes/2", json={"title": "Mine"}, headers=john)
    assert forbidden.status_code == 403
    assert client.get("/api/recipes/2").get_json()["data"]["recipe"]["title"] == "Chocolate Cake"

    assert client.put("/api/recipes/99", json={"title": "x"}, headers=john).status_code == 404

    response = client.put("/api/recipes/1", json={"description": ""}, headers=john)
    assert response.status_code == 200
    assert response.get_json()["data"]["recipe"]["description"] == ""


def test_delete_recipe(client, login):
    jane = login("jane_smith", "password456")

    assert client.delete("/api/recipes/1", headers=jane).status_code == 403
    assert client.delete("/api/recipes/2", headers=jane).status_code == 200
    assert client.get("/api/recipes/2").status_code == 404
    assert client.delete("/api/recipes/2", headers=jane).status_code == 404


def test_unhandled_error_is_500(client, app, monkeypatch):
    catalog = app.config["RECIPE_CATALOG"]

    def boom():
        raise RuntimeError("store exploded")

    monkeypatch.setattr(catalog, "get_all", boom)

    response = client.get("/api/recipes")

    assert response.status_code == 500
    body = response.get_json()
    assert body["message"] == "Internal server error"
    assert body["errors"] is None


def test_default_app_seeds_demo_data():
    app = create_app(config={
        "TESTING": True,
        "JWT_SECRET_KEY": TEST_SECRET,
        "PASSWORD_HASH_ITERATIONS": 1000,
    })
    client = app.test_client()

    assert client.get("/api/recipes").get_json()["data"]["count"] == 2
    login = client.post("/api/users/login", json={"username": "jane_smith", "password": "password456"})
    assert login.status_code == 200


def test_app_without_secret_or_seed_still_issues_tokens():
    app = create_app(config={
        "TESTING": True,
        "JWT_SECRET_KEY": None,
        "SEED_DEMO_DATA": False,
        "PASSWORD_HASH_ITERATIONS": 1000,
    })
    client = app.test_client()
    assert app.config["JWT_SECRET_KEY"]
    assert client.get("/api/recipes").get_json()["data"]["count"] == 0

    client.post(
        "/api/users/register",
        json={"username": "alice", "email": "alice@example.com", "password": "secret1"},
    )
    token = client.post(
        "/api/users/login", json={"username": "alice", "password": "secret1"}
    ).get_json()["data"]["token"]

    assert client.get("/api/users", headers={"Authorization": f"Bearer {token}"}).status_code == 200
