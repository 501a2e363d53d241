"""
Forge Fee Bridge

The narrow call the asset registry makes into a fungible ledger when a
forge carries a fee. Both sides reference each other, so the link is made
after construction:

    ledger.roles.grant_role(owner, Role.MINTER_BURNER, registry.address)
    registry.set_fee_ledger(owner, ledger)

wire_fee_bridge() does both.
"""

from typing import Protocol, TYPE_CHECKING

from .roles import Role

if TYPE_CHECKING:
    from ..db.store import StateStore
    from .assets import AssetRegistry
    from .token import FungibleLedger

FORGE_FEE_REASON = "forge"


class FeeLedger(Protocol):
    """What the asset registry needs from a fee ledger."""
    address: str
    store: "StateStore"

    def util_burn_for(self, caller: str, account: str, amount: int, reason: str) -> None:
        ...


def charge_forge_fee(ledger: FeeLedger, registry_address: str, owner: str, amount: int) -> None:
    """
    Burn a forge fee from owner's balance, acting as the registry.

    Runs inside the forge's transaction when the ledger shares its store.
    """
    ledger.util_burn_for(registry_address, owner, amount, FORGE_FEE_REASON)


def wire_fee_bridge(registry: "AssetRegistry", ledger: "FungibleLedger", owner: str) -> None:
    """Grant the registry the burn role on ledger and link ledger to registry."""
    ledger.roles.grant_role(owner, Role.MINTER_BURNER, registry.address)
    registry.set_fee_ledger(owner, ledger)
