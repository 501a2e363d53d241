"""
Asset Registry

Ownership, approvals and metadata pointers of unique assets, with the
mint / upgrade / forge / burn lifecycle.

Asset lifecycle:
    nonexistent -> owned        (mint, forge output)
    owned       -> owned        (upgrade: metadata replaced in place; transfer)
    owned       -> nonexistent  (burn, forge input)

Identifiers start at 1, increase by one per mint and are never reused, so
no asset ever returns to "owned" under an old identifier. next_token_id()
tells a caller the identifier its next mint will get.

Rules (enforced in code):
- mint requires MINTER_ROLE
- upgrade requires ASTRO_MECHANIC_ROLE
- forge requires ASTRO_BLACKSMITH_ROLE plus the owner's approval-for-all
- pause / unpause require PAUSER_ROLE; while paused no asset moves
- set_fee_ledger requires OWNER_ROLE
- a fee-bearing forge burns the fee in the same transaction as the forge
"""

from typing import Optional, TYPE_CHECKING

from ..observability import get_logger
from ..schemas import (
    AssetApprovalPayload,
    AssetForgedPayload,
    AssetTransferPayload,
    EventType,
    FeeLedgerSetPayload,
    MetadataUpgradedPayload,
    OperatorApprovalPayload,
    PauseChangedPayload,
)
from .accounts import ZERO_ADDRESS, check_amount, normalize_address
from .bridge import FeeLedger, charge_forge_fee
from .errors import (
    LedgerNotConfigured,
    NotOwnerOrApproved,
    OwnerMismatch,
    RegistryPaused,
    TokenNotFound,
    ValidationError,
    ZeroAddress,
)
from .roles import Role, RoleRegistry

if TYPE_CHECKING:
    from ..db.store import StateStore, TransactionContext

logger = get_logger(__name__)

DEFAULT_GATEWAY_BASE = "https://gateway.io/ipfs/"


def _check_token_id(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Token ID must be an integer, got {type(value).__name__}")
    return value


def _check_metadata(value) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"Metadata must be a string, got {type(value).__name__}")
    return value


class AssetRegistry:
    """
    A registry of unique, owned assets.

    Tables:
    - owners:    token_id -> owner (presence is existence)
    - metadata:  token_id -> metadata pointer
    - approvals: token_id -> single approved spender
    - operators: (owner, operator) -> True
    - balances:  owner -> number of assets held
    - state:     next_token_id, paused, fee_ledger
    """

    def __init__(
        self,
        store: "StateStore",
        deployer: str,
        name: str = "Holo-V",
        symbol: str = "HOLOV",
        gateway_base: str = DEFAULT_GATEWAY_BASE,
    ):
        self.store = store
        self.name = name
        self.symbol = symbol
        self._gateway_base = gateway_base
        self.address = store.deploy_address(f"assets:{symbol}")

        self._owners = store.table(f"{self.address}.owners")
        self._metadata = store.table(f"{self.address}.metadata")
        self._approvals = store.table(f"{self.address}.approvals")
        self._operators = store.table(f"{self.address}.operators")
        self._balances = store.table(f"{self.address}.balances")
        self._state = store.table(f"{self.address}.state")

        # Ledger objects by address; which one is linked lives in _state
        self._ledgers = store.table(f"{self.address}.ledgers")

        self.roles = RoleRegistry(store, self.address)
        self.roles.bootstrap(deployer, (Role.OWNER,))

        logger.info(
            "Asset registry deployed",
            registry=self.address,
            symbol=symbol,
            deployer=normalize_address(deployer),
        )

    # ============================================================
    # Reads
    # ============================================================

    @property
    def total_supply(self) -> int:
        return len(self._owners)

    @property
    def paused(self) -> bool:
        return bool(self._state.get("paused", False))

    @property
    def fee_ledger(self) -> Optional[str]:
        """Address of the linked fee ledger, or None."""
        return self._state.get("fee_ledger")

    @property
    def gateway_base(self) -> str:
        return self._gateway_base

    def get_gateway_base(self) -> str:
        return self._gateway_base

    def next_token_id(self) -> int:
        """Identifier the next mint (or meta forge) will allocate."""
        return self._state.get("next_token_id", 1)

    def exists(self, token_id: int) -> bool:
        return _check_token_id(token_id) in self._owners

    def owner_of(self, token_id: int) -> str:
        token_id = _check_token_id(token_id)
        owner = self._owners.get(token_id)
        if owner is None:
            raise TokenNotFound(token_id)
        return owner

    def balance_of(self, account: str) -> int:
        account = normalize_address(account)
        if account == ZERO_ADDRESS:
            raise ZeroAddress("the zero address is not a valid owner")
        return self._balances.get(account, 0)

    def metadata_of(self, token_id: int) -> str:
        with self.store.reading():
            self.owner_of(token_id)
            return self._metadata.get(token_id, "")

    def token_uri(self, token_id: int) -> str:
        """
        Gateway base joined with the metadata pointer.

        An asset with an empty pointer resolves to base + identifier.
        """
        metadata = self.metadata_of(token_id)
        if not self._gateway_base:
            return metadata
        if metadata:
            return self._gateway_base + metadata
        return f"{self._gateway_base}{token_id}"

    def get_approved(self, token_id: int) -> str:
        with self.store.reading():
            self.owner_of(token_id)
            return self._approvals.get(token_id, ZERO_ADDRESS)

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return (normalize_address(owner), normalize_address(operator)) in self._operators

    def tokens_of_owner(self, account: str) -> list[int]:
        account = normalize_address(account)
        with self.store.reading():
            return sorted(
                token_id for token_id, owner in self._owners.items() if owner == account
            )

    def all_tokens(self) -> list[int]:
        with self.store.reading():
            return sorted(self._owners)

    # ============================================================
    # Lifecycle
    # ============================================================

    def mint(self, caller: str, to: str, metadata: str) -> int:
        """
        Create a new asset for `to`. Requires MINTER_ROLE.

        Returns:
            The new identifier (equal to next_token_id() before the call)
        """
        with self.store.begin("assets.mint") as ctx:
            caller = normalize_address(caller)
            to = normalize_address(to)
            metadata = _check_metadata(metadata)
            self.roles.require(Role.MINTER, caller)
            self._require_not_paused()
            if to == ZERO_ADDRESS:
                raise ZeroAddress("mint to the zero address")
            token_id = self._mint(ctx, to, metadata)
        logger.info("Asset minted", registry=self.address, token_id=token_id, owner=to)
        return token_id

    def upgrade(self, caller: str, owner: str, token_id: int, metadata: str) -> None:
        """Replace an asset's metadata pointer. Requires ASTRO_MECHANIC_ROLE."""
        with self.store.begin("assets.upgrade") as ctx:
            caller = normalize_address(caller)
            owner = normalize_address(owner)
            metadata = _check_metadata(metadata)
            self.roles.require(Role.UPGRADE_OPERATOR, caller)
            actual = self.owner_of(token_id)
            if actual != owner:
                raise OwnerMismatch(token_id, owner, actual)
            previous = self._metadata.get(token_id, "")
            self._metadata.set(token_id, metadata)
            ctx.emit(
                EventType.METADATA_UPGRADED,
                self.address,
                MetadataUpgradedPayload(
                    token_id=token_id,
                    owner=owner,
                    previous_metadata=previous,
                    metadata=metadata,
                    operator=caller,
                ),
            )
        logger.info("Asset upgraded", registry=self.address, token_id=token_id, owner=owner)

    def forge(
        self,
        caller: str,
        token_a: int,
        token_b: int,
        owner: str,
        metadata: str,
        fee_amount: int = 0,
    ) -> Optional[int]:
        """
        Combine two of owner's assets into one new asset, or into nothing.

        Both inputs are burned. A non-empty `metadata` mints one new asset
        to owner; an empty one mints nothing. A nonzero fee is burned from
        owner's balance on the linked fee ledger. Burns, mint and fee
        commit together or not at all.

        Requires ASTRO_BLACKSMITH_ROLE, and owner must have approved the
        caller for all of its assets.

        Returns:
            The new identifier, or None when nothing was minted

        Raises:
            TokenNotFound: an input does not exist, or token_a == token_b
            OwnerMismatch: an input is not owned by owner
            NotOwnerOrApproved: caller is not owner's operator
            LedgerNotConfigured: fee_amount > 0 with no fee ledger linked
            InsufficientBalance: owner cannot pay fee_amount
        """
        with self.store.begin("assets.forge") as ctx:
            caller = normalize_address(caller)
            owner = normalize_address(owner)
            metadata = _check_metadata(metadata)
            fee_amount = check_amount(fee_amount)
            token_a = _check_token_id(token_a)
            token_b = _check_token_id(token_b)
            self.roles.require(Role.FORGE_OPERATOR, caller)
            self._require_not_paused()

            for token_id in (token_a, token_b):
                if token_id not in self._owners:
                    raise TokenNotFound(token_id)
            if token_a == token_b:
                raise TokenNotFound(token_b, f"cannot forge token {token_a} with itself")
            for token_id in (token_a, token_b):
                actual = self._owners.get(token_id)
                if actual != owner:
                    raise OwnerMismatch(token_id, owner, actual)
            if not self.is_approved_for_all(owner, caller):
                raise NotOwnerOrApproved(
                    f"{caller} is not an approved operator of {owner}"
                )

            self._burn(ctx, token_a)
            self._burn(ctx, token_b)

            result = self._mint(ctx, owner, metadata) if metadata else None

            if fee_amount:
                charge_forge_fee(self._require_fee_ledger(), self.address, owner, fee_amount)

            ctx.emit(
                EventType.ASSET_FORGED,
                self.address,
                AssetForgedPayload(
                    owner=owner,
                    input_token_ids=[token_a, token_b],
                    result_token_id=result or 0,
                    metadata=metadata,
                    fee_amount=fee_amount,
                    operator=caller,
                ),
            )

        logger.info(
            "Assets forged",
            registry=self.address,
            owner=owner,
            inputs=[token_a, token_b],
            result=result,
            fee_amount=fee_amount,
        )
        return result

    def burn(self, caller: str, token_id: int) -> None:
        """Destroy an asset. The caller must own it or be its approved spender."""
        with self.store.begin("assets.burn") as ctx:
            caller = normalize_address(caller)
            self._require_not_paused()
            owner = self.owner_of(token_id)
            if caller != owner and self._approvals.get(token_id) != caller:
                raise NotOwnerOrApproved(
                    f"{caller} is not the owner or approved for token {token_id}"
                )
            self._burn(ctx, token_id)
        logger.info("Asset burned", registry=self.address, token_id=token_id, owner=owner)

    # ============================================================
    # Transfers and approvals
    # ============================================================

    def transfer_from(self, caller: str, sender: str, recipient: str, token_id: int) -> None:
        self._transfer_checked("assets.transfer", caller, sender, recipient, token_id)

    def safe_transfer_from(self, caller: str, sender: str, recipient: str, token_id: int) -> None:
        # Recipients are plain accounts in-process; no receiver hook to call
        self._transfer_checked("assets.safe_transfer", caller, sender, recipient, token_id)

    def approve(self, caller: str, spender: str, token_id: int) -> None:
        """Set the single approved spender of an asset (null clears it)."""
        with self.store.begin("assets.approve") as ctx:
            caller = normalize_address(caller)
            spender = normalize_address(spender)
            owner = self.owner_of(token_id)
            if spender == owner:
                raise ValidationError("approval to current owner")
            if caller != owner and not self.is_approved_for_all(owner, caller):
                raise NotOwnerOrApproved(
                    f"{caller} is not the owner nor approved for all of {owner}"
                )
            self._approve(ctx, owner, spender, token_id)

    def set_approval_for_all(self, caller: str, operator: str, approved: bool) -> None:
        """Let operator act on all of the caller's assets (or stop it)."""
        with self.store.begin("assets.approval_for_all") as ctx:
            caller = normalize_address(caller)
            operator = normalize_address(operator)
            if not isinstance(approved, bool):
                raise ValidationError("approved must be a boolean")
            if operator == caller:
                raise ValidationError("approve to caller")
            key = (caller, operator)
            if approved:
                self._operators.set(key, True)
            else:
                self._operators.delete(key)
            ctx.emit(
                EventType.APPROVAL_FOR_ALL,
                self.address,
                OperatorApprovalPayload(owner=caller, operator=operator, approved=approved),
            )
        logger.info(
            "Operator approval set",
            registry=self.address,
            owner=caller,
            operator=operator,
            approved=approved,
        )

    # ============================================================
    # Administration
    # ============================================================

    def set_fee_ledger(self, caller: str, ledger: FeeLedger) -> None:
        """Link the fungible ledger forge fees are burned on. Requires OWNER_ROLE."""
        with self.store.begin("assets.set_fee_ledger") as ctx:
            caller = normalize_address(caller)
            self.roles.require(Role.OWNER, caller)
            if getattr(ledger, "store", None) is not self.store:
                raise ValidationError(
                    "Fee ledger must share the registry's state store"
                )
            address = normalize_address(ledger.address)
            self._ledgers.set(address, ledger)
            self._state.set("fee_ledger", address)
            ctx.emit(
                EventType.FEE_LEDGER_SET,
                self.address,
                FeeLedgerSetPayload(fee_ledger=address, sender=caller),
            )
        logger.info("Fee ledger linked", registry=self.address, fee_ledger=address)

    def pause(self, caller: str) -> None:
        with self.store.begin("assets.pause") as ctx:
            caller = normalize_address(caller)
            self.roles.require(Role.PAUSER, caller)
            if self.paused:
                raise RegistryPaused("registry is already paused")
            self._state.set("paused", True)
            ctx.emit(EventType.PAUSED, self.address, PauseChangedPayload(sender=caller))
        logger.warning("Asset registry paused", registry=self.address, sender=caller)

    def unpause(self, caller: str) -> None:
        with self.store.begin("assets.unpause") as ctx:
            caller = normalize_address(caller)
            self.roles.require(Role.PAUSER, caller)
            if not self.paused:
                raise ValidationError("registry is not paused")
            self._state.set("paused", False)
            ctx.emit(EventType.UNPAUSED, self.address, PauseChangedPayload(sender=caller))
        logger.info("Asset registry unpaused", registry=self.address, sender=caller)

    # ============================================================
    # Internal transitions (run inside a transaction)
    # ============================================================

    def _require_not_paused(self) -> None:
        if self.paused:
            raise RegistryPaused("token movement while paused")

    def _require_fee_ledger(self) -> FeeLedger:
        address = self.fee_ledger
        if address is None:
            raise LedgerNotConfigured("no fee ledger linked to the asset registry")
        return self._ledgers.get(address)

    def _transfer_checked(
        self, operation: str, caller: str, sender: str, recipient: str, token_id: int
    ) -> None:
        with self.store.begin(operation) as ctx:
            caller = normalize_address(caller)
            sender = normalize_address(sender)
            recipient = normalize_address(recipient)
            self._require_not_paused()
            owner = self.owner_of(token_id)
            if not (
                caller == owner
                or self._approvals.get(token_id) == caller
                or self.is_approved_for_all(owner, caller)
            ):
                raise NotOwnerOrApproved(
                    f"{caller} is not the owner or approved for token {token_id}"
                )
            if sender != owner:
                raise OwnerMismatch(token_id, sender, owner)
            if recipient == ZERO_ADDRESS:
                raise ZeroAddress("transfer to the zero address")

            self._approvals.delete(token_id)
            self._balances.set(owner, self._balances.get(owner, 0) - 1)
            self._balances.set(recipient, self._balances.get(recipient, 0) + 1)
            self._owners.set(token_id, recipient)
            ctx.emit(
                EventType.ASSET_TRANSFER,
                self.address,
                AssetTransferPayload(sender=owner, recipient=recipient, token_id=token_id),
            )
        logger.info(
            "Asset transferred",
            registry=self.address,
            token_id=token_id,
            sender=sender,
            recipient=recipient,
        )

    def _approve(self, ctx: "TransactionContext", owner: str, spender: str, token_id: int) -> None:
        if spender == ZERO_ADDRESS:
            self._approvals.delete(token_id)
        else:
            self._approvals.set(token_id, spender)
        ctx.emit(
            EventType.ASSET_APPROVAL,
            self.address,
            AssetApprovalPayload(owner=owner, approved=spender, token_id=token_id),
        )

    def _mint(self, ctx: "TransactionContext", to: str, metadata: str) -> int:
        token_id = self.next_token_id()
        self._state.set("next_token_id", token_id + 1)
        self._owners.set(token_id, to)
        self._metadata.set(token_id, metadata)
        self._balances.set(to, self._balances.get(to, 0) + 1)
        ctx.emit(
            EventType.ASSET_TRANSFER,
            self.address,
            AssetTransferPayload(sender=ZERO_ADDRESS, recipient=to, token_id=token_id),
        )
        return token_id

    def _burn(self, ctx: "TransactionContext", token_id: int) -> None:
        owner = self._owners.get(token_id)
        self._approvals.delete(token_id)
        self._metadata.delete(token_id)
        self._owners.delete(token_id)
        self._balances.set(owner, self._balances.get(owner, 0) - 1)
        ctx.emit(
            EventType.ASSET_TRANSFER,
            self.address,
            AssetTransferPayload(sender=owner, recipient=ZERO_ADDRESS, token_id=token_id),
        )
