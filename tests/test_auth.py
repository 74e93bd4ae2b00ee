"""
Tests for login, token verification and user endpoints.
"""

import pytest

from namaste_fhir.security.auth import extract_token_from_header


class TestExtractToken:
    @pytest.mark.parametrize("header,expected", [
        ("Bearer abc", "abc"),
        ("bearer abc ", "abc"),
        ("Basic abc", None),
        ("Bearer", None),
        (None, None),
    ])
    def test_extract_token_from_header(self, header, expected):
        assert extract_token_from_header(header) == expected


class TestAuthEndpoints:
    """Test authentication endpoints."""

    def test_login_with_demo_token(self, client, audit):
        response = client.post("/auth/login", json={"token": "Bearer demo-token-12345"})

        assert response.status_code == 200
        data = response.json()
        assert data["verification"] == "demo"
        assert data["user"]["abha_id"] == "12345678901234"
        assert data["user"]["name"] == "Demo ABHA User"
        assert data["profile"]["abha_address"] == "demo@abha"
        assert audit.entries[-1]["action"] == "login"

    def test_login_with_invalid_token(self, client, audit):
        response = client.post("/auth/login", json={"token": "garbage"})

        assert response.status_code == 401
        assert response.json()["issue"][0]["diagnostics"] == "ABHA_TOKEN_MALFORMED"
        assert audit.entries == []

    def test_verify_valid_token(self, client):
        data = client.post("/token/verify", json={"token": "demo-token-12345"}).json()

        assert data["valid"] is True
        assert data["verification"] == "demo"
        assert data["profile"]["abha_id"] == "12345678901234"

    def test_verify_invalid_token(self, client):
        response = client.post("/token/verify", json={"token": "garbage"})

        assert response.status_code == 200
        assert response.json() == {
            "valid": False,
            "error": "ABHA_TOKEN_MALFORMED",
            "message": response.json()["message"],
        }

    def test_current_user_after_login(self, client, auth_headers):
        client.post("/auth/login", json={"token": "demo-token-12345"})

        response = client.get("/users/me", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["abha_number"] == "12345678901234"

    def test_current_user_before_login(self, client, auth_headers):
        response = client.get("/users/me", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["issue"][0]["diagnostics"] == "USER_NOT_FOUND"

    def test_current_user_requires_token(self, client):
        assert client.get("/users/me").status_code == 401

    def test_update_contact_details(self, client, auth_headers, audit):
        client.post("/auth/login", json={"token": "demo-token-12345"})

        response = client.put(
            "/users/me", json={"email": "vaidya@example.in", "mobile": "9876543210"}, headers=auth_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "vaidya@example.in"
        assert data["mobile"] == "9876543210"
        assert client.get("/users/me", headers=auth_headers).json()["email"] == "vaidya@example.in"
        entry = audit.entries[-1]
        assert entry["action"] == "update"
        assert entry["resource_type"] == "User"

    def test_update_rejects_bad_mobile(self, client, auth_headers):
        client.post("/auth/login", json={"token": "demo-token-12345"})

        response = client.put("/users/me", json={"mobile": "12345"}, headers=auth_headers)

        assert response.status_code == 400

    def test_update_requires_a_field(self, client, auth_headers):
        client.post("/auth/login", json={"token": "demo-token-12345"})

        response = client.put("/users/me", json={}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["issue"][0]["diagnostics"] == "VALIDATION_FAILED"

    def test_update_before_login(self, client, auth_headers):
        response = client.put("/users/me", json={"email": "a@b.in"}, headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["issue"][0]["diagnostics"] == "USER_NOT_FOUND"
