"""Tests for credential verification and the HTTP bearer dependency."""
import time
from unittest.mock import MagicMock

import jwt
import pytest

from studysync.auth import CredentialVerifier, Identity, get_verifier
from studysync.errors import AuthenticationError, PersistenceError

from conftest import TEST_SECRET, make_token


@pytest.fixture
def verifier():
    return CredentialVerifier(secret_key=TEST_SECRET)


class TestCredentialVerifier:
    """Tests for CredentialVerifier.verify."""

    def test_valid_credential_with_name(self, verifier):
        identity = verifier.verify(make_token(1, "Alice"))
        assert identity == Identity(user_id=1, display_name="Alice")

    def test_name_is_trimmed(self, verifier):
        assert verifier.verify(make_token(1, "  Alice ")).display_name == "Alice"

    def test_name_from_lookup(self):
        lookup = MagicMock(return_value="Bob")
        verifier = CredentialVerifier(secret_key=TEST_SECRET, name_lookup=lookup)

        identity = verifier.verify(make_token(2))

        assert identity.display_name == "Bob"
        lookup.assert_called_once_with(2)

    def test_blank_name_claim_uses_lookup(self):
        verifier = CredentialVerifier(
            secret_key=TEST_SECRET, name_lookup=lambda user_id: "Bob"
        )
        assert verifier.verify(make_token(2, "   ")).display_name == "Bob"

    def test_default_name_when_unknown(self):
        verifier = CredentialVerifier(
            secret_key=TEST_SECRET,
            name_lookup=lambda user_id: None,
            default_display_name="Anonymous",
        )
        assert verifier.verify(make_token(9)).display_name == "Anonymous"

    def test_lookup_failure_falls_back_to_default(self):
        lookup = MagicMock(side_effect=PersistenceError("Storage error"))
        verifier = CredentialVerifier(secret_key=TEST_SECRET, name_lookup=lookup)
        assert verifier.verify(make_token(9)).display_name == "Unknown"

    @pytest.mark.parametrize("credential", [None, ""])
    def test_missing_credential(self, verifier, credential):
        with pytest.raises(AuthenticationError) as exc_info:
            verifier.verify(credential)
        assert exc_info.value.message == "Missing credential"
        assert exc_info.value.status_code == 401

    def test_wrong_signature(self, verifier):
        with pytest.raises(AuthenticationError, match="Invalid credential"):
            verifier.verify(make_token(1, "Alice", secret="another-secret"))

    def test_garbage(self, verifier):
        with pytest.raises(AuthenticationError, match="Invalid credential"):
            verifier.verify("definitely.not.ajwt")

    def test_expired(self, verifier):
        token = make_token(1, "Alice", exp=int(time.time()) - 60)
        with pytest.raises(AuthenticationError, match="Invalid credential"):
            verifier.verify(token)

    def test_wrong_algorithm_is_rejected(self, verifier):
        token = jwt.encode({"id": 1}, TEST_SECRET, algorithm="HS512")
        with pytest.raises(AuthenticationError):
            verifier.verify(token)

    @pytest.mark.parametrize("user_id", [None, "1", 1.5, True])
    def test_unusable_user_id(self, verifier, user_id):
        claims = {} if user_id is None else {"id": user_id}
        token = jwt.encode(claims, TEST_SECRET, algorithm="HS256")
        with pytest.raises(AuthenticationError, match="no user id"):
            verifier.verify(token)

    def test_identity_is_frozen(self, verifier):
        identity = verifier.verify(make_token(1, "Alice"))
        with pytest.raises(Exception):
            identity.user_id = 2


class TestGetVerifier:
    """Tests for the process-wide verifier."""

    def test_built_from_config(self, store, group7):
        verifier = get_verifier()
        assert get_verifier() is verifier
        # Secret comes from config, name lookup from the users table
        assert verifier.verify(make_token(3)).display_name == "Carol"


class TestBearerDependency:
    """HTTP endpoints reject requests without a valid bearer credential."""

    @pytest.mark.parametrize("headers", [
        {},
        {"Authorization": ""},
        {"Authorization": "Token abc"},
        {"Authorization": "Bearer "},
        {"Authorization": "Bearer not-a-jwt"},
    ])
    def test_unauthenticated_requests_get_401(self, client, group7, headers):
        response = client.get("/api/notes/7", headers=headers)
        assert response.status_code == 401
        assert "detail" in response.json()

    def test_missing_header_message(self, client):
        response = client.get("/api/groups/7/messages")
        assert response.status_code == 401
        assert response.json()["detail"] == "Access denied. No token provided."

    def test_valid_bearer(self, client, group7):
        response = client.get(
            "/api/notes/7", headers={"Authorization": f"Bearer {make_token(1)}"}
        )
        assert response.status_code == 200
