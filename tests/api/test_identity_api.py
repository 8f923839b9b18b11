import uuid
from datetime import datetime, timedelta, timezone

import pytest

from services.identity.auth import hash_password
from services.identity.routes import get_api_key_verifier
from shared.auth_middleware import verify_token
from tests.conftest import dispatch

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


def _profile(user_id: str, **overrides):
    profile = {
        "user_id": uuid.UUID(user_id),
        "preferences": ["vegetarian"],
        "status": "active",
        "status_changed_at": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    profile.update(overrides)
    return profile


@pytest.fixture
def api_key_verifier():
    """Overrides provider key verification; flip `valid` to reject keys"""
    from services.identity.main import app

    state = {"valid": True, "checked": []}

    async def _verify(api_key: str) -> bool:
        state["checked"].append(api_key)
        return state["valid"]

    app.dependency_overrides[get_api_key_verifier] = lambda: _verify
    return state


# Auth
@pytest.mark.api
async def test_signup(identity_client, fake_db, test_user):
    user_id = uuid.uuid4()
    fake_db.conn.fetchrow.return_value = {"id": user_id, "email": test_user["email"], "created_at": NOW}

    response = await identity_client.post(
        "/auth/signup", json={"email": test_user["email"], "password": test_user["password"]}
    )

    assert response.status_code == 201
    body = response.json()
    assert body["user"]["id"] == str(user_id)
    assert body["session"]["token_type"] == "bearer"
    assert verify_token(body["session"]["access_token"]).user_id == str(user_id)

    # Password is stored hashed and an empty profile is created with the user
    stored_hash = fake_db.conn.fetchrow.call_args.args[3]
    assert stored_hash != test_user["password"]
    profile_insert = fake_db.conn.execute.call_args.args
    assert "INSERT INTO profiles" in profile_insert[0]
    assert profile_insert[2] == []


@pytest.mark.api
async def test_signup_duplicate_email(identity_client, fake_db, test_user):
    fake_db.fetch_one.return_value = {"id": uuid.uuid4()}

    response = await identity_client.post(
        "/auth/signup", json={"email": test_user["email"], "password": test_user["password"]}
    )

    assert response.status_code == 400
    assert response.json()["error"] == "User already registered"


@pytest.mark.api
@pytest.mark.parametrize(
    "payload", [{"email": "not-an-email", "password": "secret123"}, {"email": "a@b.pl", "password": "12345"}]
)
async def test_signup_validation(identity_client, payload):
    response = await identity_client.post("/auth/signup", json=payload)

    assert response.status_code == 400


@pytest.mark.api
async def test_signin(identity_client, fake_db, test_user):
    fake_db.fetch_one.return_value = {
        "id": uuid.UUID(test_user["id"]),
        "email": test_user["email"],
        "password_hash": hash_password(test_user["password"]),
        "created_at": NOW,
    }

    response = await identity_client.post(
        "/auth/signin", json={"email": test_user["email"], "password": test_user["password"]}
    )

    assert response.status_code == 200
    assert verify_token(response.json()["session"]["access_token"]).user_id == test_user["id"]


@pytest.mark.api
async def test_signin_wrong_password(identity_client, fake_db, test_user):
    fake_db.fetch_one.return_value = {
        "id": uuid.UUID(test_user["id"]),
        "email": test_user["email"],
        "password_hash": hash_password(test_user["password"]),
        "created_at": NOW,
    }

    response = await identity_client.post(
        "/auth/signin", json={"email": test_user["email"], "password": "definitely-wrong"}
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid login credentials"}


@pytest.mark.api
async def test_signin_unknown_user(identity_client, fake_db):
    response = await identity_client.post(
        "/auth/signin", json={"email": "nobody@example.com", "password": "whatever"}
    )

    assert response.status_code == 400


@pytest.mark.api
async def test_signout_revokes_token(identity_client, fake_redis, auth_headers):
    response = await identity_client.post("/auth/signout", headers=auth_headers)

    assert response.status_code == 200
    key, ttl, _ = fake_redis.setex.call_args.args
    assert key == f"revoked_token:{auth_headers['Authorization'].split()[1]}"
    assert 0 < ttl <= 3600


# Profiles
@pytest.mark.api
async def test_get_profile(identity_client, fake_db, test_user, auth_headers):
    fake_db.fetch_one.return_value = _profile(test_user["id"])

    response = await identity_client.get("/profiles/me", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["preferences"] == ["vegetarian"]
    assert not fake_db.execute.called


@pytest.mark.api
async def test_get_profile_creates_it_lazily(identity_client, fake_db, test_user, auth_headers):
    fake_db.fetch_one.side_effect = [None, _profile(test_user["id"], preferences=[])]

    response = await identity_client.get("/profiles/me", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["status"] == "active"
    assert response.json()["preferences"] == []
    assert "INSERT INTO profiles" in fake_db.queries("execute")[0]


@pytest.mark.api
async def test_update_preferences_overwrites(identity_client, fake_db, test_user, auth_headers):
    fake_db.fetch_one.side_effect = lambda query, user_id, prefs: {
        "user_id": user_id,
        "preferences": prefs,
        "status": "active",
        "updated_at": NOW,
    }

    response = await identity_client.put(
        "/profiles/me",
        json={"preferences": [" vegan ", "keto", "vegan", "", "italian"]},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["preferences"] == ["vegan", "keto", "italian"]


@pytest.mark.api
async def test_update_preferences_empty_list_clears_all(identity_client, fake_db, auth_headers):
    fake_db.fetch_one.side_effect = lambda query, user_id, prefs: {
        "user_id": user_id,
        "preferences": prefs,
        "status": "active",
        "updated_at": NOW,
    }

    response = await identity_client.put(
        "/profiles/me", json={"preferences": ["  ", ""]}, headers=auth_headers
    )

    assert response.status_code == 200
    assert response.json()["preferences"] == []
    assert fake_db.fetch_one.call_args.args[2] == []


@pytest.mark.api
async def test_update_preferences_accepts_twenty(identity_client, fake_db, test_user, auth_headers):
    tags = [f"tag-{i}" for i in range(20)]
    fake_db.fetch_one.return_value = {
        "user_id": uuid.UUID(test_user["id"]),
        "preferences": tags,
        "status": "active",
        "updated_at": NOW,
    }

    response = await identity_client.put(
        "/profiles/me", json={"preferences": tags}, headers=auth_headers
    )

    assert response.status_code == 200
    assert len(response.json()["preferences"]) == 20


@pytest.mark.api
async def test_update_preferences_rejects_twenty_one(identity_client, fake_db, auth_headers):
    response = await identity_client.put(
        "/profiles/me", json={"preferences": [f"tag-{i}" for i in range(21)]}, headers=auth_headers
    )

    assert response.status_code == 400
    assert not fake_db.fetch_one.called


@pytest.mark.api
async def test_update_preferences_counts_unique_tags(identity_client, fake_db, test_user, auth_headers):
    tags = [f"tag-{i}" for i in range(20)] * 2
    fake_db.fetch_one.return_value = {
        "user_id": uuid.UUID(test_user["id"]),
        "preferences": tags[:20],
        "status": "active",
        "updated_at": NOW,
    }

    response = await identity_client.put(
        "/profiles/me", json={"preferences": tags}, headers=auth_headers
    )

    assert response.status_code == 200


@pytest.mark.api
async def test_delete_profile_schedules_deletion(identity_client, fake_db, auth_headers):
    fake_db.fetch_one.return_value = {"status": "pending_deletion", "status_changed_at": NOW}

    response = await identity_client.delete("/profiles/me", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Profile scheduled for deletion"
    assert body["status"] == "pending_deletion"
    assert body["deletion_scheduled_at"]


@pytest.mark.api
async def test_delete_missing_profile(identity_client, fake_db, auth_headers):
    response = await identity_client.delete("/profiles/me", headers=auth_headers)

    assert response.status_code == 404


@pytest.mark.api
async def test_profile_requires_token(identity_client):
    response = await identity_client.get("/profiles/me")

    assert response.status_code == 401


# Personal API keys
@pytest.mark.api
async def test_set_api_key(identity_client, fake_db, api_key_verifier, auth_headers):
    fake_db.fetch_one.return_value = {"provider": "openai", "created_at": NOW, "updated_at": NOW}
    api_key = "sk-" + "a" * 40

    response = await identity_client.put(
        "/profiles/api-key", json={"api_key": api_key}, headers=auth_headers
    )

    assert response.status_code == 200
    assert response.json()["has_key"] is True
    assert "api_key" not in response.json()
    assert api_key_verifier["checked"] == [api_key]


@pytest.mark.api
async def test_set_api_key_rejected_by_provider(identity_client, fake_db, api_key_verifier, auth_headers):
    api_key_verifier["valid"] = False

    response = await identity_client.put(
        "/profiles/api-key", json={"api_key": "sk-" + "b" * 40}, headers=auth_headers
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid API key"
    assert not fake_db.fetch_one.called


@pytest.mark.api
@pytest.mark.parametrize("api_key", ["sk-short", "pk-" + "c" * 40])
async def test_set_api_key_validation(identity_client, api_key_verifier, auth_headers, api_key):
    response = await identity_client.put(
        "/profiles/api-key", json={"api_key": api_key}, headers=auth_headers
    )

    assert response.status_code == 400
    assert api_key_verifier["checked"] == []


@pytest.mark.api
async def test_get_api_key_status_without_key(identity_client, auth_headers):
    response = await identity_client.get("/profiles/api-key", headers=auth_headers)

    assert response.json() == {"has_key": False, "provider": None, "created_at": None, "updated_at": None}


@pytest.mark.api
async def test_delete_missing_api_key(identity_client, auth_headers):
    response = await identity_client.delete("/profiles/api-key", headers=auth_headers)

    assert response.status_code == 404


@pytest.mark.api
async def test_generation_allowance(identity_client, fake_db, auth_headers):
    oldest = datetime.now(timezone.utc) - timedelta(minutes=20)
    fake_db.fetch_one.side_effect = dispatch(
        {
            "usage_count": {"usage_count": 3},
            "MIN(created_at) AS oldest": {"oldest": oldest},
            "FROM user_api_keys": {"has_key": 1},
        }
    )

    response = await identity_client.get("/profiles/api-usage", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["limit"] == 10
    assert body["current_usage"] == 3
    assert body["remaining_usage"] == 7
    assert body["has_personal_key"] is True
    assert body["reset_time"] is not None


@pytest.mark.api
async def test_generation_allowance_fails_open(identity_client, fake_db, auth_headers):
    async def _answer(query, *args):
        if "ai_usage" in query:
            raise ConnectionError("database unavailable")
        return None

    fake_db.fetch_one.side_effect = _answer

    response = await identity_client.get("/profiles/api-usage", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["remaining_usage"] == 10
    assert response.json()["reset_time"] is None
