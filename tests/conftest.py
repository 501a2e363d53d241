"""
Shared fixtures.

Accounts use fixed secp256k1 keys so addresses are stable across runs.
"""

import pytest
from eth_account import Account

from astroforge.core import AssetRegistry, FungibleLedger, Role, wire_fee_bridge
from astroforge.db import StateStore

_NAMES = ("owner", "alice", "bob", "carol", "signer", "blacksmith", "mechanic")

KEYS = {name: "0x" + f"{i:064x}" for i, name in enumerate(_NAMES, start=1)}
ADDRESSES = {name: Account.from_key(key).address for name, key in KEYS.items()}


@pytest.fixture
def keys():
    return dict(KEYS)


@pytest.fixture
def accounts():
    return dict(ADDRESSES)


@pytest.fixture
def store():
    return StateStore()


@pytest.fixture
def token(store, accounts):
    """Velox ledger deployed by owner."""
    return FungibleLedger(store, accounts["owner"])


@pytest.fixture
def registry(store, accounts):
    """Holo-V registry deployed by owner, with operating roles handed out."""
    registry = AssetRegistry(store, accounts["owner"])
    owner = accounts["owner"]
    registry.roles.grant_role(owner, Role.MINTER, owner)
    registry.roles.grant_role(owner, Role.PAUSER, owner)
    registry.roles.grant_role(owner, Role.UPGRADE_OPERATOR, accounts["mechanic"])
    registry.roles.grant_role(owner, Role.FORGE_OPERATOR, accounts["blacksmith"])
    return registry


@pytest.fixture
def wired(token, registry, accounts):
    """Token and registry linked through the forge fee bridge."""
    wire_fee_bridge(registry, token, accounts["owner"])
    return token, registry
