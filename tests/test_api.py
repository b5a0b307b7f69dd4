"""
Tests for the REST endpoints: auth, users, books and health.

Every response, success or error, must use the {success, message, data}
envelope.
"""
import pytest

from bookapi.services import SAMPLE_BOOKS

from conftest import PASSWORD

NEW_BOOK = {
    "title": "Brave New World",
    "author": "Aldous Huxley",
    "isbn": "978-0-06-085052-4",
    "publication_year": 1932,
    "genre": "Dystopian Fiction",
}


def register(client, username="alice", email="alice@example.com", password=PASSWORD, **extra):
    return client.post(
        "/api/auth/register",
        json={"username": username, "email": email, "password": password, **extra},
    )


def login(client, username_or_email="alice", password=PASSWORD, mfa_code=None):
    payload = {"username_or_email": username_or_email, "password": password}
    if mfa_code is not None:
        payload["mfa_code"] = mfa_code
    return client.post("/api/auth/login", json=payload)


# ============================================
# Authentication Endpoint Tests
# ============================================

class TestAuthEndpoints:
    """Test register, login, logout and /me."""

    def test_register(self, client):
        response = register(client, first_name="Alice")

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "User registered successfully"
        assert body["data"]["username"] == "alice"
        assert body["data"]["first_name"] == "Alice"
        assert body["data"]["mfa_enabled"] is False
        assert "password" not in body["data"]
        assert "password_hash" not in body["data"]

    def test_register_duplicate_username(self, client):
        register(client)

        response = register(client, email="other@example.com")

        assert response.status_code == 409
        assert response.json() == {"success": False, "message": "Username already exists", "data": None}

    def test_register_duplicate_email(self, client):
        register(client)

        response = register(client, username="alice2", email="ALICE@example.com")

        assert response.status_code == 409
        assert response.json()["message"] == "Email already exists"

    def test_register_validation_error(self, client):
        response = register(client, username="al", email="not-an-email", password="short")

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["data"] is None
        assert "username" in body["message"]
        assert "email" in body["message"]
        assert "password" in body["message"]

    @pytest.mark.parametrize("password", ["y" * 100, "é" * 40, "密码" * 13])
    def test_register_password_over_72_bytes(self, client, password):
        response = register(client, password=password)

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert "password" in response.json()["message"]
        assert client.get("/api/users").json()["data"] == []

    def test_register_password_of_exactly_72_bytes(self, client):
        password = "é" * 36

        assert register(client, password=password).status_code == 201
        assert login(client, password=password).status_code == 200

    def test_login_with_overlong_password(self, client):
        register(client)

        response = login(client, password="x" * 100)

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid credentials or MFA code"

    def test_login_and_me(self, client):
        register(client)

        response = login(client, "alice@example.com")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["token_type"] == "bearer"
        assert data["user"]["username"] == "alice"

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
        assert me.status_code == 200
        assert me.json()["data"]["email"] == "alice@example.com"

    def test_login_failures_share_one_message(self, client):
        register(client)

        wrong_password = login(client, password="wrong-password")
        unknown_user = login(client, username_or_email="nobody")

        assert wrong_password.status_code == unknown_user.status_code == 401
        assert wrong_password.json() == unknown_user.json() == {
            "success": False,
            "message": "Invalid credentials or MFA code",
            "data": None,
        }

    def test_me_requires_token(self, client):
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.json()["success"] is False
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_me_rejects_unknown_token(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid or expired token"


# ============================================
# User Endpoint Tests
# ============================================

class TestUserEndpoints:

    def test_list_and_stats(self, client):
        register(client)
        register(client, username="bob", email="bob@example.com")

        users = client.get("/api/users").json()
        stats = client.get("/api/users/stats").json()

        assert [u["username"] for u in users["data"]] == ["alice", "bob"]
        assert stats == {"success": True, "message": "Total users count", "data": 2}

    def test_get_user(self, client):
        user_id = register(client).json()["data"]["user_id"]

        response = client.get(f"/api/users/{user_id}")

        assert response.status_code == 200
        assert response.json()["message"] == "User found"

    def test_get_missing_user(self, client):
        response = client.get("/api/users/99")

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "User not found with id: 99", "data": None}

    def test_update_user(self, client):
        user_id = register(client).json()["data"]["user_id"]

        response = client.put(
            f"/api/users/{user_id}",
            json={"username": "alicia", "email": "alicia@example.com", "email_verified": True},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["username"] == "alicia"
        assert data["email_verified"] is True
        # Password unchanged
        assert login(client, "alicia").status_code == 200

    def test_update_user_new_password(self, client):
        user_id = register(client).json()["data"]["user_id"]

        client.put(
            f"/api/users/{user_id}",
            json={"username": "alice", "email": "alice@example.com", "password": "new-password-1"},
        )

        assert login(client).status_code == 401
        assert login(client, password="new-password-1").status_code == 200

    def test_update_user_password_over_72_bytes(self, client):
        user_id = register(client).json()["data"]["user_id"]

        response = client.put(
            f"/api/users/{user_id}",
            json={"username": "alice", "email": "alice@example.com", "password": "é" * 40},
        )

        assert response.status_code == 400
        assert login(client).status_code == 200

    def test_update_user_conflict(self, client):
        register(client)
        bob_id = register(client, username="bob", email="bob@example.com").json()["data"]["user_id"]

        response = client.put(f"/api/users/{bob_id}", json={"username": "alice", "email": "bob@example.com"})

        assert response.status_code == 409

    def test_update_missing_user(self, client):
        response = client.put("/api/users/99", json={"username": "ghost", "email": "ghost@example.com"})

        assert response.status_code == 404

    def test_delete_user_ends_sessions(self, client):
        user_id = register(client).json()["data"]["user_id"]
        token = login(client).json()["data"]["access_token"]

        response = client.delete(f"/api/users/{user_id}")

        assert response.status_code == 200
        assert response.json()["data"] is None
        assert client.get(f"/api/users/{user_id}").status_code == 404
        assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).status_code == 401
        assert client.delete(f"/api/users/{user_id}").status_code == 404


# ============================================
# Book Endpoint Tests
# ============================================

class TestBookEndpoints:

    def test_sample_catalog(self, seeded_client):
        response = seeded_client.get("/api/books")

        assert response.status_code == 200
        assert [b["title"] for b in response.json()["data"]] == [b["title"] for b in SAMPLE_BOOKS]
        assert seeded_client.get("/api/books/stats").json()["data"] == 3

    def test_filter_by_author(self, seeded_client):
        response = seeded_client.get("/api/books", params={"author": "LEE"})

        assert [b["author"] for b in response.json()["data"]] == ["Harper Lee"]

    def test_filter_by_genre(self, seeded_client):
        response = seeded_client.get("/api/books", params={"genre": "dystopian"})

        assert [b["title"] for b in response.json()["data"]] == ["1984"]

    def test_author_filter_wins_over_genre(self, seeded_client):
        response = seeded_client.get("/api/books", params={"author": "Orwell", "genre": "Romance"})

        assert [b["title"] for b in response.json()["data"]] == ["1984"]

    def test_crud(self, client):
        created = client.post("/api/books", json=NEW_BOOK)
        assert created.status_code == 201
        book_id = created.json()["data"]["book_id"]

        fetched = client.get(f"/api/books/{book_id}")
        assert fetched.json()["message"] == "Book found"

        updated = client.put(f"/api/books/{book_id}", json={**NEW_BOOK, "publication_year": 1946})
        assert updated.json()["data"]["publication_year"] == 1946

        deleted = client.delete(f"/api/books/{book_id}")
        assert deleted.json() == {"success": True, "message": "Book deleted successfully", "data": None}
        assert client.get(f"/api/books/{book_id}").status_code == 404

    def test_duplicate_isbn(self, client):
        client.post("/api/books", json=NEW_BOOK)

        response = client.post("/api/books", json={**NEW_BOOK, "title": "Copy"})

        assert response.status_code == 409
        assert response.json()["message"] == "Book with this ISBN already exists"

    def test_invalid_year(self, client):
        response = client.post("/api/books", json={**NEW_BOOK, "publication_year": 0})

        assert response.status_code == 400
        assert "publication_year" in response.json()["message"]

    def test_missing_book(self, client):
        assert client.put("/api/books/7", json=NEW_BOOK).status_code == 404
        assert client.delete("/api/books/7").json()["message"] == "Book not found with id: 7"


# ============================================
# Health Endpoint Tests
# ============================================

class TestHealth:

    def test_health(self, seeded_client):
        response = seeded_client.get("/health")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "healthy"
        assert data["services"]["user_db"] == "healthy (1 users)"
        assert data["services"]["book_db"] == "healthy (3 books)"
        assert data["services"]["redis"].startswith("fallback_mode")

    def test_liveness(self, client):
        assert client.get("/health/live").json()["success"] is True

    def test_unknown_route_uses_envelope(self, client):
        response = client.get("/api/nothing-here")

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Not Found", "data": None}


# ============================================
# Email Verification & Password Reset Tests
# ============================================

class TestEmailVerificationEndpoints:
    """Test /api/auth/verify-email."""

    def test_register_issues_verification_token(self, client, services):
        register(client)

        assert services.tokens.count_tokens() == 1

    def test_verify_email(self, client, services):
        user_id = register(client).json()["data"]["user_id"]
        token = services.authenticator.request_email_verification(user_id)

        response = client.post("/api/auth/verify-email", params={"user_id": user_id, "token": token})

        assert response.status_code == 200
        assert response.json()["message"] == "Email verified successfully"
        assert response.json()["data"]["email_verified"] is True
        reused = client.post("/api/auth/verify-email", params={"user_id": user_id, "token": token})
        assert reused.status_code == 400

    def test_invalid_token(self, client):
        user_id = register(client).json()["data"]["user_id"]

        response = client.post("/api/auth/verify-email", params={"user_id": user_id, "token": "guess"})

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Invalid verification token", "data": None}
        assert client.get(f"/api/users/{user_id}").json()["data"]["email_verified"] is False

    def test_unknown_user(self, client):
        response = client.post("/api/auth/verify-email", params={"user_id": 99, "token": "guess"})

        assert response.status_code == 404
        assert response.json()["message"] == "User not found"

    def test_request_requires_login(self, client):
        assert client.post("/api/auth/verify-email/request").status_code == 401

    def test_request_new_token(self, client, services):
        user_id = register(client).json()["data"]["user_id"]
        old = services.authenticator.request_email_verification(user_id)
        access_token = login(client).json()["data"]["access_token"]

        response = client.post(
            "/api/auth/verify-email/request",
            headers={"Authorization": f"Bearer {access_token}"},
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Verification email sent"
        stale = client.post("/api/auth/verify-email", params={"user_id": user_id, "token": old})
        assert stale.status_code == 400


class TestPasswordResetEndpoints:
    """Test /api/auth/reset-password."""

    def test_same_response_for_known_and_unknown_email(self, client, services):
        register(client)

        known = client.post("/api/auth/reset-password", params={"email": "alice@example.com"})
        unknown = client.post("/api/auth/reset-password", params={"email": "ghost@example.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert known.json()["success"] is True

    def test_reset_password(self, client, services):
        register(client)
        session = login(client).json()["data"]["access_token"]
        token = services.authenticator.request_password_reset("alice@example.com")

        response = client.post(
            "/api/auth/reset-password/confirm",
            json={"token": token, "new_password": "brand-new-password"},
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Password reset successfully"
        assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {session}"}).status_code == 401
        assert login(client).status_code == 401
        assert login(client, password="brand-new-password").status_code == 200

    def test_reused_token_rejected(self, client, services):
        register(client)
        token = services.authenticator.request_password_reset("alice@example.com")
        payload = {"token": token, "new_password": "brand-new-password"}

        client.post("/api/auth/reset-password/confirm", json=payload)
        response = client.post("/api/auth/reset-password/confirm", json=payload)

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Invalid or expired reset token", "data": None}

    def test_new_password_over_72_bytes(self, client, services):
        register(client)
        token = services.authenticator.request_password_reset("alice@example.com")

        response = client.post(
            "/api/auth/reset-password/confirm",
            json={"token": token, "new_password": "é" * 40},
        )

        assert response.status_code == 400
        assert login(client).status_code == 200

    def test_reset_request_rate_limited(self, client, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_ENABLED", "true")

        statuses = [
            client.post("/api/auth/reset-password", params={"email": "ghost@example.com"}).status_code
            for _ in range(6)
        ]

        assert statuses == [200] * 5 + [429]
