"""
Tests for the asset registry: mint, upgrade, burn, transfers, approvals
and pausing.
"""

import pytest

from astroforge.core import (
    ZERO_ADDRESS,
    AccessDenied,
    AssetRegistry,
    NotOwnerOrApproved,
    OwnerMismatch,
    RegistryPaused,
    Role,
    TokenNotFound,
    ValidationError,
    ZeroAddress,
)
from astroforge.schemas import EventType


class TestDeployment:

    def test_defaults(self, store, accounts):
        registry = AssetRegistry(store, accounts["owner"])
        assert registry.name == "Holo-V"
        assert registry.symbol == "HOLOV"
        assert registry.gateway_base == "https://gateway.io/ipfs/"
        assert registry.get_gateway_base() == "https://gateway.io/ipfs/"
        assert registry.total_supply == 0
        assert registry.next_token_id() == 1
        assert not registry.paused
        assert registry.fee_ledger is None

    def test_deployer_holds_only_owner_role(self, store, accounts):
        registry = AssetRegistry(store, accounts["owner"])
        owner = accounts["owner"]
        assert registry.roles.has_role(Role.OWNER, owner)
        for role in (Role.MINTER, Role.PAUSER, Role.UPGRADE_OPERATOR, Role.FORGE_OPERATOR):
            assert not registry.roles.has_role(role, owner)

        with pytest.raises(AccessDenied, match=Role.MINTER.role_id):
            registry.mint(owner, owner, "QmHash")


class TestMint:

    def test_identifiers_are_sequential(self, registry, accounts):
        owner = accounts["owner"]
        recipients = [accounts[name] for name in ("alice", "bob", "alice", "carol", "bob")]

        ids = [registry.mint(owner, to, f"meta-{i}") for i, to in enumerate(recipients)]

        assert ids == [1, 2, 3, 4, 5]
        assert registry.total_supply == 5
        assert registry.balance_of(accounts["alice"]) == 2
        assert registry.tokens_of_owner(accounts["bob"]) == [2, 5]
        assert registry.all_tokens() == [1, 2, 3, 4, 5]

    def test_next_token_id_predicts_mint(self, registry, accounts):
        owner = accounts["owner"]
        registry.mint(owner, accounts["alice"], "a")
        expected = registry.next_token_id()
        assert registry.mint(owner, accounts["alice"], "b") == expected

    def test_mint_requires_minter(self, registry, accounts):
        with pytest.raises(AccessDenied):
            registry.mint(accounts["alice"], accounts["alice"], "x")
        assert registry.next_token_id() == 1

    def test_mint_to_zero_address(self, registry, accounts):
        with pytest.raises(ZeroAddress):
            registry.mint(accounts["owner"], ZERO_ADDRESS, "x")
        assert registry.next_token_id() == 1

    def test_mint_emits_transfer_from_null(self, registry, accounts):
        registry.mint(accounts["owner"], accounts["alice"], "x")
        event = registry.store.journal.list_all()[-1]
        assert event.event_type == EventType.ASSET_TRANSFER
        assert event.source == registry.address
        assert event.payload["sender"] == ZERO_ADDRESS
        assert event.payload["recipient"] == accounts["alice"]
        assert event.payload["token_id"] == 1

    def test_identifiers_never_reused(self, registry, accounts):
        owner, alice = accounts["owner"], accounts["alice"]
        first = registry.mint(owner, alice, "x")
        registry.burn(alice, first)
        assert registry.mint(owner, alice, "y") == 2

    def test_token_uri(self, registry, accounts):
        token_id = registry.mint(accounts["owner"], accounts["alice"], "QmHash")
        assert registry.token_uri(token_id) == "https://gateway.io/ipfs/QmHash"
        assert registry.metadata_of(token_id) == "QmHash"

    def test_token_uri_without_metadata(self, registry, accounts):
        token_id = registry.mint(accounts["owner"], accounts["alice"], "")
        assert registry.token_uri(token_id) == f"https://gateway.io/ipfs/{token_id}"

    def test_token_uri_without_gateway(self, store, accounts):
        owner = accounts["owner"]
        registry = AssetRegistry(store, owner, gateway_base="")
        registry.roles.grant_role(owner, Role.MINTER, owner)
        token_id = registry.mint(owner, owner, "ipfs://QmHash")
        assert registry.token_uri(token_id) == "ipfs://QmHash"

    def test_unknown_token(self, registry):
        with pytest.raises(TokenNotFound, match="invalid token ID 9"):
            registry.owner_of(9)
        with pytest.raises(TokenNotFound):
            registry.token_uri(9)
        assert not registry.exists(9)

    def test_balance_of_zero_address(self, registry):
        with pytest.raises(ZeroAddress):
            registry.balance_of(ZERO_ADDRESS)


class TestUpgrade:

    @pytest.fixture
    def token_id(self, registry, accounts):
        return registry.mint(accounts["owner"], accounts["alice"], "v1")

    def test_upgrade_replaces_metadata_in_place(self, registry, token_id, accounts):
        registry.upgrade(accounts["mechanic"], accounts["alice"], token_id, "v2")

        assert registry.metadata_of(token_id) == "v2"
        assert registry.owner_of(token_id) == accounts["alice"]
        assert registry.total_supply == 1

        event = registry.store.journal.list_all()[-1]
        assert event.event_type == EventType.METADATA_UPGRADED
        assert event.payload["previous_metadata"] == "v1"
        assert event.payload["metadata"] == "v2"

    def test_upgrade_requires_role(self, registry, token_id, accounts):
        with pytest.raises(AccessDenied, match=Role.UPGRADE_OPERATOR.role_id):
            registry.upgrade(accounts["alice"], accounts["alice"], token_id, "v2")
        assert registry.metadata_of(token_id) == "v1"

    def test_upgrade_checks_owner(self, registry, token_id, accounts):
        with pytest.raises(OwnerMismatch):
            registry.upgrade(accounts["mechanic"], accounts["bob"], token_id, "v2")

    def test_upgrade_missing_token(self, registry, accounts):
        with pytest.raises(TokenNotFound):
            registry.upgrade(accounts["mechanic"], accounts["alice"], 42, "v2")

    def test_upgrade_allowed_while_paused(self, registry, token_id, accounts):
        registry.pause(accounts["owner"])
        registry.upgrade(accounts["mechanic"], accounts["alice"], token_id, "v2")
        assert registry.metadata_of(token_id) == "v2"


class TestBurn:

    @pytest.fixture
    def token_id(self, registry, accounts):
        return registry.mint(accounts["owner"], accounts["alice"], "x")

    def test_owner_burns(self, registry, token_id, accounts):
        registry.burn(accounts["alice"], token_id)

        assert not registry.exists(token_id)
        assert registry.balance_of(accounts["alice"]) == 0
        assert registry.total_supply == 0
        with pytest.raises(TokenNotFound):
            registry.owner_of(token_id)

    def test_approved_spender_burns(self, registry, token_id, accounts):
        registry.approve(accounts["alice"], accounts["bob"], token_id)
        registry.burn(accounts["bob"], token_id)
        assert not registry.exists(token_id)

    def test_operator_cannot_burn(self, registry, token_id, accounts):
        registry.set_approval_for_all(accounts["alice"], accounts["bob"], True)
        with pytest.raises(NotOwnerOrApproved):
            registry.burn(accounts["bob"], token_id)
        assert registry.exists(token_id)

    def test_stranger_cannot_burn(self, registry, token_id, accounts):
        with pytest.raises(NotOwnerOrApproved):
            registry.burn(accounts["carol"], token_id)

    def test_burn_missing_token(self, registry, accounts):
        with pytest.raises(TokenNotFound):
            registry.burn(accounts["alice"], 7)


class TestTransfers:

    @pytest.fixture
    def token_id(self, registry, accounts):
        return registry.mint(accounts["owner"], accounts["alice"], "x")

    def test_owner_transfers(self, registry, token_id, accounts):
        registry.transfer_from(accounts["alice"], accounts["alice"], accounts["bob"], token_id)

        assert registry.owner_of(token_id) == accounts["bob"]
        assert registry.balance_of(accounts["alice"]) == 0
        assert registry.balance_of(accounts["bob"]) == 1

    def test_approved_spender_transfers_once(self, registry, token_id, accounts):
        alice, bob, carol = accounts["alice"], accounts["bob"], accounts["carol"]
        registry.approve(alice, bob, token_id)
        assert registry.get_approved(token_id) == bob

        registry.transfer_from(bob, alice, carol, token_id)

        assert registry.owner_of(token_id) == carol
        assert registry.get_approved(token_id) == ZERO_ADDRESS

    def test_operator_transfers(self, registry, token_id, accounts):
        alice, bob = accounts["alice"], accounts["bob"]
        registry.set_approval_for_all(alice, bob, True)
        assert registry.is_approved_for_all(alice, bob)

        registry.safe_transfer_from(bob, alice, bob, token_id)
        assert registry.owner_of(token_id) == bob

    def test_operator_approval_revoked(self, registry, token_id, accounts):
        alice, bob = accounts["alice"], accounts["bob"]
        registry.set_approval_for_all(alice, bob, True)
        registry.set_approval_for_all(alice, bob, False)

        with pytest.raises(NotOwnerOrApproved):
            registry.transfer_from(bob, alice, bob, token_id)

    def test_stranger_cannot_transfer(self, registry, token_id, accounts):
        with pytest.raises(NotOwnerOrApproved):
            registry.transfer_from(accounts["carol"], accounts["alice"], accounts["carol"], token_id)

    def test_wrong_sender(self, registry, token_id, accounts):
        with pytest.raises(OwnerMismatch):
            registry.transfer_from(accounts["alice"], accounts["bob"], accounts["carol"], token_id)

    def test_transfer_to_zero_address(self, registry, token_id, accounts):
        with pytest.raises(ZeroAddress):
            registry.transfer_from(accounts["alice"], accounts["alice"], ZERO_ADDRESS, token_id)
        assert registry.owner_of(token_id) == accounts["alice"]

    def test_approve_rules(self, registry, token_id, accounts):
        alice, bob = accounts["alice"], accounts["bob"]

        with pytest.raises(ValidationError, match="approval to current owner"):
            registry.approve(alice, alice, token_id)
        with pytest.raises(NotOwnerOrApproved):
            registry.approve(bob, bob, token_id)

        registry.set_approval_for_all(alice, bob, True)
        registry.approve(bob, accounts["carol"], token_id)
        assert registry.get_approved(token_id) == accounts["carol"]

        registry.approve(alice, ZERO_ADDRESS, token_id)
        assert registry.get_approved(token_id) == ZERO_ADDRESS

    def test_cannot_approve_self_as_operator(self, registry, accounts):
        with pytest.raises(ValidationError, match="approve to caller"):
            registry.set_approval_for_all(accounts["alice"], accounts["alice"], True)


class TestPause:

    @pytest.fixture
    def token_id(self, registry, accounts):
        return registry.mint(accounts["owner"], accounts["alice"], "x")

    def test_pause_blocks_movement(self, registry, token_id, accounts):
        owner, alice, bob = accounts["owner"], accounts["alice"], accounts["bob"]
        registry.pause(owner)
        assert registry.paused

        with pytest.raises(RegistryPaused):
            registry.mint(owner, alice, "y")
        with pytest.raises(RegistryPaused):
            registry.transfer_from(alice, alice, bob, token_id)
        with pytest.raises(RegistryPaused):
            registry.burn(alice, token_id)

        registry.unpause(owner)
        registry.transfer_from(alice, alice, bob, token_id)
        assert registry.owner_of(token_id) == bob

    def test_pause_requires_role(self, registry, accounts):
        with pytest.raises(AccessDenied, match=Role.PAUSER.role_id):
            registry.pause(accounts["alice"])

    def test_pause_twice(self, registry, accounts):
        registry.pause(accounts["owner"])
        with pytest.raises(RegistryPaused, match="already paused"):
            registry.pause(accounts["owner"])

    def test_unpause_when_running(self, registry, accounts):
        with pytest.raises(ValidationError, match="not paused"):
            registry.unpause(accounts["owner"])

    def test_pause_facts(self, registry, accounts):
        registry.pause(accounts["owner"])
        registry.unpause(accounts["owner"])
        paused, unpaused = registry.store.journal.list_all()[-2:]
        assert paused.event_type == EventType.PAUSED
        assert unpaused.event_type == EventType.UNPAUSED
        assert unpaused.payload["sender"] == accounts["owner"]
