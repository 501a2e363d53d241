"""
Tests for the HTTP API.

The app runs against an injected platform built from fixed keys, so the
owner and the claim signer are known accounts.
"""

import pytest
from fastapi.testclient import TestClient

from astroforge.config import PlatformConfig
from astroforge.core import ClaimSigner, Role
from astroforge.main import create_app
from astroforge.platform import create_platform

API = "/api/v1"


@pytest.fixture
def platform(keys):
    return create_platform(
        PlatformConfig(owner_private_key=keys["owner"], claim_signer_key=keys["signer"])
    )


@pytest.fixture
def client(platform):
    with TestClient(create_app(platform)) as client:
        yield client


class TestSystemEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_detailed_health(self, client):
        response = client.get("/health/detailed")
        assert response.status_code == 200
        body = response.json()
        assert body["checks"]["chain_integrity"]["valid"] is True
        assert body["checks"]["fee_bridge"]["status"] == "healthy"

    def test_metrics(self, client):
        body = client.get("/metrics").json()
        assert "operations_committed" in body
        assert "claims_redeemed" in body

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"


class TestPlatformWiring:

    def test_platform_is_wired(self, platform, accounts):
        assert platform.owner == accounts["owner"]
        assert platform.assets.fee_ledger == platform.token.address
        assert platform.token.is_signer(accounts["signer"])
        assert platform.claim_signer.address == accounts["signer"]
        assert not platform.claim_signer.is_ephemeral

    def test_unknown_ledger_name(self, platform):
        with pytest.raises(KeyError):
            platform.ledger("bank")

    def test_production_requires_signer_key(self, keys):
        config = PlatformConfig(owner_private_key=keys["owner"], production=True)
        with pytest.raises(RuntimeError, match="ASTROFORGE_CLAIM_SIGNER_KEY"):
            create_platform(config)


class TestTokenEndpoints:

    def test_token_info(self, client, accounts):
        body = client.get(f"{API}/token").json()
        assert body["name"] == "Velox"
        assert body["symbol"] == "VLX"
        assert body["total_supply"] == 0
        assert body["signers"] == [accounts["signer"]]

    def test_mint_and_transfer(self, client, keys, accounts):
        response = client.post(f"{API}/token/mint", json={
            "caller_private_key": keys["owner"],
            "to": accounts["alice"],
            "amount": 500_000,
        })
        assert response.status_code == 201
        assert response.json()["balance"] == 500_000

        response = client.post(f"{API}/token/transfer", json={
            "caller_private_key": keys["alice"],
            "to": accounts["bob"],
            "amount": 100_050,
        })
        assert response.status_code == 201
        assert response.json()["balance"] == 399_950

        body = client.get(f"{API}/token/balances/{accounts['bob']}").json()
        assert body["balance"] == 100_050

    def test_mint_without_role_is_forbidden(self, client, keys, accounts):
        response = client.post(f"{API}/token/mint", json={
            "caller_private_key": keys["alice"],
            "to": accounts["alice"],
            "amount": 1,
        })
        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "AccessDenied"

    def test_transfer_to_zero_address(self, client, keys):
        response = client.post(f"{API}/token/transfer", json={
            "caller_private_key": keys["owner"],
            "to": "0x0000000000000000000000000000000000000000",
            "amount": 0,
        })
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "ZeroAddress"

    def test_bad_private_key(self, client, accounts):
        response = client.post(f"{API}/token/burn", json={
            "caller_private_key": "0xnope",
            "amount": 1,
        })
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "ValidationError"

    def test_claim_redeems_once(self, client, platform, accounts):
        alice = accounts["alice"]
        signature = platform.claim_signer.issue_claim(alice, "order-17", 500)
        body = {
            "claimer": alice,
            "tx_id": "order-17",
            "amount": 500,
            "signature": signature.to_hex(),
        }

        response = client.post(f"{API}/token/claim", json=body)
        assert response.status_code == 201
        assert response.json()["signer"] == accounts["signer"]
        assert response.json()["balance"] == 500

        response = client.post(f"{API}/token/claim", json=body)
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "AlreadyClaimed"

        status = client.get(f"{API}/token/claims/order-17").json()
        assert status["claimed"] is True
        assert status["amount"] == 500

    def test_claim_by_unlisted_signer(self, client, keys, accounts):
        alice = accounts["alice"]
        signature = ClaimSigner.sign_claim(keys["bob"], alice, "tx", 5)
        response = client.post(f"{API}/token/claim", json={
            "claimer": alice,
            "tx_id": "tx",
            "amount": 5,
            "signature": signature.to_hex(),
        })
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "InvalidSigner"

        status = client.get(f"{API}/token/claims/tx").json()
        assert status["claimed"] is False

    def test_signer_management(self, client, keys, accounts):
        response = client.post(f"{API}/token/signers/add", json={
            "caller_private_key": keys["owner"],
            "account": accounts["carol"],
        })
        assert response.status_code == 201
        assert response.json() == {
            "account": accounts["carol"],
            "is_signer": True,
            "changed": True,
        }


class TestRoleEndpoints:

    def test_role_lookup(self, client, accounts):
        response = client.get(f"{API}/assets/roles/OWNER_ROLE/{accounts['owner']}")
        assert response.status_code == 200
        body = response.json()
        assert body["has_role"] is True
        assert body["role_id"] == Role.OWNER.role_id
        assert body["admin_role"] == "OWNER_ROLE"

    def test_unknown_role(self, client, accounts):
        response = client.get(f"{API}/assets/roles/ADMIN/{accounts['owner']}")
        assert response.status_code == 400

    def test_grant_role(self, client, keys, accounts):
        response = client.post(f"{API}/assets/roles/grant", json={
            "caller_private_key": keys["owner"],
            "role": "MINTER_ROLE",
            "account": accounts["owner"],
        })
        assert response.status_code == 201
        assert response.json()["changed"] is True

    def test_grant_without_admin_role(self, client, keys, accounts):
        response = client.post(f"{API}/token/roles/grant", json={
            "caller_private_key": keys["alice"],
            "role": "MINTER_BURNER_ROLE",
            "account": accounts["alice"],
        })
        assert response.status_code == 403


class TestAssetEndpoints:

    @pytest.fixture
    def operated(self, client, keys, accounts):
        """Owner can mint; blacksmith can forge alice's assets; alice holds VLX."""
        for role, account in (
            ("MINTER_ROLE", accounts["owner"]),
            ("ASTRO_BLACKSMITH_ROLE", accounts["blacksmith"]),
        ):
            client.post(f"{API}/assets/roles/grant", json={
                "caller_private_key": keys["owner"],
                "role": role,
                "account": account,
            })
        client.post(f"{API}/token/mint", json={
            "caller_private_key": keys["owner"],
            "to": accounts["alice"],
            "amount": 1000,
        })
        for metadata in ("a", "b"):
            client.post(f"{API}/assets/mint", json={
                "caller_private_key": keys["owner"],
                "to": accounts["alice"],
                "metadata": metadata,
            })
        client.post(f"{API}/assets/approval-for-all", json={
            "caller_private_key": keys["alice"],
            "operator": accounts["blacksmith"],
            "approved": True,
        })
        return client

    def test_mint_and_lookup(self, operated, accounts):
        body = operated.get(f"{API}/assets/1").json()
        assert body["owner"] == accounts["alice"]
        assert body["token_uri"] == "https://gateway.io/ipfs/a"

        owned = operated.get(f"{API}/assets/owners/{accounts['alice']}").json()
        assert owned["token_ids"] == [1, 2]

    def test_unknown_asset(self, operated):
        response = operated.get(f"{API}/assets/99")
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "TokenNotFound"

    def test_forge_with_fee(self, operated, keys, accounts):
        alice = accounts["alice"]
        response = operated.post(f"{API}/assets/forge", json={
            "caller_private_key": keys["blacksmith"],
            "token_a": 1,
            "token_b": 2,
            "owner": alice,
            "metadata": "X",
            "fee_amount": 256,
        })
        assert response.status_code == 201
        assert response.json()["result_token_id"] == 3

        assert operated.get(f"{API}/token/balances/{alice}").json()["balance"] == 744
        assert operated.get(f"{API}/assets/3").json()["token_uri"].endswith("X")

        forged = operated.get(f"{API}/events", params={"event_type": "ASSET_FORGED"}).json()
        assert len(forged) == 1
        assert forged[0]["payload"]["fee_amount"] == 256

    def test_forge_with_unpayable_fee(self, operated, keys, accounts):
        alice = accounts["alice"]
        response = operated.post(f"{API}/assets/forge", json={
            "caller_private_key": keys["blacksmith"],
            "token_a": 1,
            "token_b": 2,
            "owner": alice,
            "metadata": "X",
            "fee_amount": 5000,
        })
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "InsufficientBalance"

        owned = operated.get(f"{API}/assets/owners/{alice}").json()
        assert owned["token_ids"] == [1, 2]

    def test_forge_by_non_blacksmith(self, operated, keys, accounts):
        response = operated.post(f"{API}/assets/forge", json={
            "caller_private_key": keys["alice"],
            "token_a": 1,
            "token_b": 2,
            "owner": accounts["alice"],
            "metadata": "X",
        })
        assert response.status_code == 403

    def test_pause_requires_role(self, operated, keys):
        response = operated.post(f"{API}/assets/pause", json={
            "caller_private_key": keys["owner"],
        })
        assert response.status_code == 403

    def test_events_filter_and_paging(self, operated, platform):
        events = operated.get(f"{API}/events", params={"source": platform.assets.address}).json()
        assert events
        assert all(e["source"] == platform.assets.address for e in events)

        page = operated.get(f"{API}/events", params={"offset": 1, "limit": 2}).json()
        assert [e["sequence_number"] for e in page] == [1, 2]
