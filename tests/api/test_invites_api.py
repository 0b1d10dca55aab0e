"""Tests for invite endpoints."""
import pytest


@pytest.fixture
def alice_token(gateway):
    gateway.provider.add("code-a", "alice@x.com")
    return gateway.exchange("code-a", register=True).json()["access_token"]


class TestInvitesAPI:
    """Tests for invite endpoints."""

    def test_create_invite(self, gateway, alice_token):
        """Test creating an invite without expiry."""
        response = gateway.client.post("/invites", headers=gateway.auth(alice_token))

        assert response.status_code == 201
        data = response.json()
        assert data["is_active"] is True
        assert data["used_by"] is None
        assert data["expires_at"] is None

    def test_create_with_expiry(self, gateway, alice_token):
        """Test creating an invite with an explicit TTL."""
        response = gateway.client.post("/invites", json={"expires_in_hours": 2},
                                       headers=gateway.auth(alice_token))
        assert response.status_code == 201
        assert response.json()["expires_at"] is not None

    def test_list_invites(self, gateway, alice_token):
        """Test listing invites."""
        for _ in range(3):
            gateway.client.post("/invites", headers=gateway.auth(alice_token))

        response = gateway.client.get("/invites", headers=gateway.auth(alice_token))
        assert response.status_code == 200
        assert len(response.json()) == 3

    def test_invited_user_cannot_invite(self, gateway, alice_token):
        """Test a user without invite permission is refused."""
        code = gateway.client.post("/invites", headers=gateway.auth(alice_token)).json()["code"]
        gateway.provider.add("code-b", "bob@x.com")
        bob_token = gateway.exchange("code-b", register=True, invite=code).json()["access_token"]

        assert gateway.client.post("/invites", headers=gateway.auth(bob_token)).status_code == 403
        assert gateway.client.get("/invites", headers=gateway.auth(bob_token)).status_code == 403

    def test_consumed_invite_cannot_be_reused(self, gateway, alice_token):
        """Test an invite admits exactly one registration."""
        code = gateway.client.post("/invites", headers=gateway.auth(alice_token)).json()["code"]
        gateway.provider.add("code-b", "bob@x.com")
        gateway.provider.add("code-c", "carol@x.com")

        assert gateway.exchange("code-b", register=True, invite=code).status_code == 200
        assert gateway.exchange("code-c", register=True, invite=code).status_code == 400

        invites = gateway.client.get("/invites", headers=gateway.auth(alice_token)).json()
        assert invites[0]["used_by"] is not None

    def test_delete_invite(self, gateway, alice_token):
        """Test deleting an invite."""
        invite = gateway.client.post("/invites", headers=gateway.auth(alice_token)).json()

        response = gateway.client.delete(f"/invites/{invite['id']}", headers=gateway.auth(alice_token))
        assert response.status_code == 200
        assert gateway.client.get("/invites", headers=gateway.auth(alice_token)).json() == []

    def test_deleted_invite_cannot_register(self, gateway, alice_token):
        """Test a deleted invite code no longer admits a registration."""
        invite = gateway.client.post("/invites", headers=gateway.auth(alice_token)).json()
        gateway.client.delete(f"/invites/{invite['id']}", headers=gateway.auth(alice_token))
        gateway.provider.add("code-b", "bob@x.com")

        response = gateway.exchange("code-b", register=True, invite=invite["code"])

        assert response.status_code == 400
        assert "invalid" in response.json()["detail"]
        assert gateway.client.get("/system/status").json()["users_registered"] == 1

    def test_delete_unknown_invite(self, gateway, alice_token):
        """Test deleting an unknown invite returns 404."""
        response = gateway.client.delete("/invites/999", headers=gateway.auth(alice_token))
        assert response.status_code == 404

    def test_requires_authentication(self, gateway):
        """Test invite endpoints require a credential."""
        assert gateway.client.post("/invites").status_code == 401
