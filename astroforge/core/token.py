"""
Fungible Ledger

Balances, allowances and total supply of a role-gated fungible token,
plus the signer whitelist and the replay-protected claim path.

Rules (enforced in code):
- total supply equals the sum of balances after every operation
- mint and util_burn_for require MINTER_BURNER_ROLE
- add_signer / remove_signer require OWNER_ROLE
- burn only ever debits the caller
- a claim transaction identifier redeems at most once
- every operation commits fully or leaves all state unchanged

Claim checks run in a fixed order: claimer, amount, signer, replay.
"""

from typing import Any, Optional, Union, TYPE_CHECKING

from ..observability import get_logger, get_metrics
from ..schemas import (
    ApprovalPayload,
    ClaimRedeemedPayload,
    EventType,
    SignerChangedPayload,
    TransferPayload,
    UtilBurnPayload,
)
from .accounts import MAX_UINT256, ZERO_ADDRESS, check_amount, normalize_address
from .errors import (
    AlreadyClaimed,
    ArithmeticOverflow,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidAmount,
    InvalidClaimer,
    InvalidSigner,
    ValidationError,
    ZeroAddress,
)
from .roles import Role, RoleRegistry
from .signer import ClaimSignature, ClaimSigner, EthereumRecoverer, SignatureRecoverer

if TYPE_CHECKING:
    from ..db.store import StateStore, TransactionContext

logger = get_logger(__name__)

_SUPPLY_KEY = "total_supply"


class FungibleLedger:
    """
    A fungible token ledger.

    All tables live in the given StateStore. Ledgers and registries that
    share one store can take part in the same atomic operation.
    """

    def __init__(
        self,
        store: "StateStore",
        deployer: str,
        name: str = "Velox",
        symbol: str = "VLX",
        decimals: int = 0,
        recoverer: Optional[SignatureRecoverer] = None,
    ):
        self.store = store
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.address = store.deploy_address(f"fungible:{symbol}")
        self._recoverer = recoverer or EthereumRecoverer()

        self._balances = store.table(f"{self.address}.balances")
        self._allowances = store.table(f"{self.address}.allowances")
        self._supply = store.table(f"{self.address}.supply")
        self._signers = store.table(f"{self.address}.signers")
        self._claims = store.table(f"{self.address}.claims")

        self.roles = RoleRegistry(store, self.address)
        self.roles.bootstrap(deployer, (Role.OWNER, Role.MINTER_BURNER))

        logger.info(
            "Fungible ledger deployed",
            ledger=self.address,
            symbol=symbol,
            deployer=normalize_address(deployer),
        )

    # ============================================================
    # Reads
    # ============================================================

    @property
    def total_supply(self) -> int:
        return self._supply.get(_SUPPLY_KEY, 0)

    def balance_of(self, account: str) -> int:
        return self._balances.get(normalize_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((normalize_address(owner), normalize_address(spender)), 0)

    def is_signer(self, account: str) -> bool:
        return normalize_address(account) in self._signers

    def signers(self) -> list[str]:
        return list(self._signers)

    def is_claimed(self, tx_id: str) -> bool:
        return tx_id in self._claims

    def claim_record(self, tx_id: str) -> Optional[dict[str, Any]]:
        """Who redeemed tx_id, for how much, vouched by which signer."""
        record = self._claims.get(tx_id)
        return dict(record) if record is not None else None

    def balances(self) -> dict[str, int]:
        with self.store.reading():
            return {account: amount for account, amount in self._balances.items() if amount}

    # ============================================================
    # Supply
    # ============================================================

    def mint(self, caller: str, to: str, amount: int) -> None:
        """Create amount units for `to`. Requires MINTER_BURNER_ROLE."""
        with self.store.begin("token.mint") as ctx:
            caller = normalize_address(caller)
            to = normalize_address(to)
            amount = check_amount(amount)
            self.roles.require(Role.MINTER_BURNER, caller)
            if to == ZERO_ADDRESS:
                raise ZeroAddress("mint to the zero address")
            self._mint(ctx, to, amount)
        logger.info("Minted", ledger=self.address, to=to, amount=amount)

    def burn(self, caller: str, amount: int) -> None:
        """Destroy amount units of the caller's own balance."""
        with self.store.begin("token.burn") as ctx:
            caller = normalize_address(caller)
            amount = check_amount(amount)
            if caller == ZERO_ADDRESS:
                raise ZeroAddress("burn from the zero address")
            self._burn(ctx, caller, amount)
        logger.info("Burned", ledger=self.address, account=caller, amount=amount)

    def util_burn_for(self, caller: str, account: str, amount: int, reason: str) -> None:
        """
        Burn from any account for a utility cost (a forge fee, for instance).

        Requires MINTER_BURNER_ROLE. `reason` is only recorded in the
        emitted fact.
        """
        with self.store.begin("token.util_burn") as ctx:
            caller = normalize_address(caller)
            account = normalize_address(account)
            amount = check_amount(amount)
            if not isinstance(reason, str):
                raise ValidationError("reason must be a string")
            self.roles.require(Role.MINTER_BURNER, caller)
            if account == ZERO_ADDRESS:
                raise ZeroAddress("burn from the zero address")
            self._burn(ctx, account, amount)
            ctx.emit(
                EventType.UTIL_BURN,
                self.address,
                UtilBurnPayload(account=account, amount=amount, reason=reason, operator=caller),
            )
        logger.info(
            "Utility burn",
            ledger=self.address,
            account=account,
            amount=amount,
            reason=reason,
            operator=caller,
        )

    # ============================================================
    # Transfers and allowances
    # ============================================================

    def transfer(self, caller: str, to: str, amount: int) -> None:
        with self.store.begin("token.transfer") as ctx:
            caller = normalize_address(caller)
            to = normalize_address(to)
            amount = check_amount(amount)
            self._transfer(ctx, caller, to, amount)
        logger.info("Transferred", ledger=self.address, sender=caller, to=to, amount=amount)

    def approve(self, caller: str, spender: str, amount: int) -> None:
        with self.store.begin("token.approve") as ctx:
            caller = normalize_address(caller)
            spender = normalize_address(spender)
            amount = check_amount(amount)
            self._approve(ctx, caller, spender, amount)

    def transfer_from(self, caller: str, sender: str, recipient: str, amount: int) -> None:
        """Move amount from sender to recipient, spending the caller's allowance."""
        with self.store.begin("token.transfer_from") as ctx:
            caller = normalize_address(caller)
            sender = normalize_address(sender)
            recipient = normalize_address(recipient)
            amount = check_amount(amount)
            self._spend_allowance(ctx, sender, caller, amount)
            self._transfer(ctx, sender, recipient, amount)
        logger.info(
            "Transferred",
            ledger=self.address,
            sender=sender,
            to=recipient,
            amount=amount,
            spender=caller,
        )

    def increase_allowance(self, caller: str, spender: str, added: int) -> None:
        with self.store.begin("token.increase_allowance") as ctx:
            caller = normalize_address(caller)
            spender = normalize_address(spender)
            added = check_amount(added)
            current = self.allowance(caller, spender)
            if current + added > MAX_UINT256:
                raise ArithmeticOverflow("allowance would exceed uint256")
            self._approve(ctx, caller, spender, current + added)

    def decrease_allowance(self, caller: str, spender: str, subtracted: int) -> None:
        with self.store.begin("token.decrease_allowance") as ctx:
            caller = normalize_address(caller)
            spender = normalize_address(spender)
            subtracted = check_amount(subtracted)
            current = self.allowance(caller, spender)
            if current < subtracted:
                raise InsufficientAllowance(caller, spender, current, subtracted)
            self._approve(ctx, caller, spender, current - subtracted)

    # ============================================================
    # Signer whitelist
    # ============================================================

    def add_signer(self, caller: str, account: str) -> bool:
        """Whitelist a claim co-signer. Requires OWNER_ROLE."""
        with self.store.begin("token.add_signer") as ctx:
            caller = normalize_address(caller)
            account = normalize_address(account)
            self.roles.require(Role.OWNER, caller)
            if account == ZERO_ADDRESS:
                raise ZeroAddress("signer cannot be the zero address")
            added = self._signers.insert_if_absent(account, True)
            if added:
                ctx.emit(
                    EventType.SIGNER_ADDED,
                    self.address,
                    SignerChangedPayload(signer=account, sender=caller),
                )
        if added:
            logger.info("Signer added", ledger=self.address, signer=account)
        return added

    def remove_signer(self, caller: str, account: str) -> bool:
        """Drop a claim co-signer. Requires OWNER_ROLE."""
        with self.store.begin("token.remove_signer") as ctx:
            caller = normalize_address(caller)
            account = normalize_address(account)
            self.roles.require(Role.OWNER, caller)
            removed = account in self._signers
            if removed:
                self._signers.delete(account)
                ctx.emit(
                    EventType.SIGNER_REMOVED,
                    self.address,
                    SignerChangedPayload(signer=account, sender=caller),
                )
        if removed:
            logger.info("Signer removed", ledger=self.address, signer=account)
        return removed

    # ============================================================
    # Claims
    # ============================================================

    def claim(
        self,
        caller: str,
        claimer: str,
        tx_id: str,
        amount: int,
        signature: Union[ClaimSignature, str, bytes],
    ) -> str:
        """
        Mint `amount` to `claimer` against a whitelisted signer's signature.

        Anyone may submit a claim; the signature, not the caller, authorizes
        it. The replay check and the mint happen in the same transaction.

        Returns:
            The signer account the signature recovered to

        Raises:
            InvalidClaimer: claimer is the null account
            InvalidAmount: amount is zero or not a uint256
            ValidationError: signature is not 65 bytes of hex or raw bytes
            InvalidSigner: signature does not recover to a whitelisted signer
            AlreadyClaimed: tx_id was already redeemed
        """
        with self.store.begin("token.claim") as ctx:
            caller = normalize_address(caller)
            claimer = normalize_address(claimer)
            if claimer == ZERO_ADDRESS:
                raise InvalidClaimer("claimer is the zero address")
            amount = check_amount(amount)
            if amount == 0:
                raise InvalidAmount("claim amount must be greater than zero")
            if not isinstance(tx_id, str):
                raise ValidationError("tx_id must be a string")
            signature = ClaimSignature.coerce(signature)

            message_hash = ClaimSigner.message_hash(claimer, tx_id, amount)
            signer = self._recoverer.recover(message_hash, signature)
            if not self.is_signer(signer):
                raise InvalidSigner(f"signer {signer} is not valid")

            record = {"claimer": claimer, "amount": amount, "signer": signer}
            if not self._claims.insert_if_absent(tx_id, record):
                raise AlreadyClaimed(tx_id)

            self._mint(ctx, claimer, amount)
            ctx.emit(
                EventType.CLAIM_REDEEMED,
                self.address,
                ClaimRedeemedPayload(tx_id=tx_id, claimer=claimer, amount=amount, signer=signer),
            )

        get_metrics().record_claim()
        logger.info(
            "Claim redeemed",
            ledger=self.address,
            tx_id=tx_id,
            claimer=claimer,
            amount=amount,
            signer=signer,
            submitted_by=caller,
        )
        return signer

    # ============================================================
    # Internal transitions (run inside a transaction)
    # ============================================================

    def _mint(self, ctx: "TransactionContext", to: str, amount: int) -> None:
        supply = self.total_supply
        if supply + amount > MAX_UINT256:
            raise ArithmeticOverflow("total supply would exceed uint256")
        self._supply.set(_SUPPLY_KEY, supply + amount)
        self._balances.set(to, self._balances.get(to, 0) + amount)
        ctx.emit(
            EventType.TRANSFER,
            self.address,
            TransferPayload(sender=ZERO_ADDRESS, recipient=to, amount=amount),
        )

    def _burn(self, ctx: "TransactionContext", account: str, amount: int) -> None:
        balance = self._balances.get(account, 0)
        if balance < amount:
            raise InsufficientBalance(account, balance, amount)
        self._balances.set(account, balance - amount)
        self._supply.set(_SUPPLY_KEY, self.total_supply - amount)
        ctx.emit(
            EventType.TRANSFER,
            self.address,
            TransferPayload(sender=account, recipient=ZERO_ADDRESS, amount=amount),
        )

    def _transfer(self, ctx: "TransactionContext", sender: str, to: str, amount: int) -> None:
        if sender == ZERO_ADDRESS:
            raise ZeroAddress("transfer from the zero address")
        if to == ZERO_ADDRESS:
            raise ZeroAddress("transfer to the zero address")
        balance = self._balances.get(sender, 0)
        if balance < amount:
            raise InsufficientBalance(sender, balance, amount)
        self._balances.set(sender, balance - amount)
        self._balances.set(to, self._balances.get(to, 0) + amount)
        ctx.emit(
            EventType.TRANSFER,
            self.address,
            TransferPayload(sender=sender, recipient=to, amount=amount),
        )

    def _approve(self, ctx: "TransactionContext", owner: str, spender: str, amount: int) -> None:
        if owner == ZERO_ADDRESS:
            raise ZeroAddress("approve from the zero address")
        if spender == ZERO_ADDRESS:
            raise ZeroAddress("approve to the zero address")
        self._allowances.set((owner, spender), amount)
        ctx.emit(
            EventType.APPROVAL,
            self.address,
            ApprovalPayload(owner=owner, spender=spender, amount=amount),
        )

    def _spend_allowance(self, ctx: "TransactionContext", owner: str, spender: str, amount: int) -> None:
        current = self.allowance(owner, spender)
        if current == MAX_UINT256:
            return
        if current < amount:
            raise InsufficientAllowance(owner, spender, current, amount)
        self._approve(ctx, owner, spender, current - amount)
