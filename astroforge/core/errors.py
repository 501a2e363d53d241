"""
Ledger Error Taxonomy

Every precondition violation aborts the whole operation with one of these.
Nothing is retried or recovered inside the core; callers receive the
specific error kind and decide what to do with it.
"""

from typing import Any, Optional


class LedgerError(Exception):
    """Base exception for ledger errors."""
    pass


class ValidationError(LedgerError):
    """Raised when an argument is malformed (bad address, wrong type)."""
    pass


class AccessDenied(LedgerError):
    """Raised when the caller lacks the role an operation requires."""

    def __init__(self, role: Any, account: str, message: Optional[str] = None):
        self.role = role
        self.account = account
        super().__init__(
            message
            or f"account {account} is missing role {role.role_id} ({role.value})"
        )


class ZeroAddress(LedgerError):
    """Raised when the null account is used where a real one is required."""
    pass


class InsufficientBalance(LedgerError):
    """Raised when an account's fungible balance cannot cover an amount."""

    def __init__(self, account: str, balance: int, required: int):
        self.account = account
        self.balance = balance
        self.required = required
        super().__init__(
            f"amount {required} exceeds balance {balance} of {account}"
        )


class InsufficientAllowance(LedgerError):
    """Raised when a spender's allowance cannot cover an amount."""

    def __init__(self, owner: str, spender: str, allowance: int, required: int):
        self.owner = owner
        self.spender = spender
        self.allowance = allowance
        self.required = required
        super().__init__(
            f"insufficient allowance: {spender} may spend {allowance} "
            f"of {owner}, needs {required}"
        )


class ArithmeticOverflow(LedgerError):
    """Raised when a supply or balance would leave the uint256 range."""
    pass


class TokenNotFound(LedgerError):
    """Raised when an asset identifier does not (or no longer) exist."""

    def __init__(self, token_id: Any, reason: Optional[str] = None):
        self.token_id = token_id
        super().__init__(reason or f"invalid token ID {token_id}")


class OwnerMismatch(LedgerError):
    """Raised when an asset is not owned by the account the caller named."""

    def __init__(self, token_id: int, expected: str, actual: str):
        self.token_id = token_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"token {token_id} is owned by {actual}, not {expected}"
        )


class NotOwnerOrApproved(LedgerError):
    """Raised when the caller may not act on an asset."""
    pass


class RegistryPaused(LedgerError):
    """Raised when assets are moved while the registry is paused."""
    pass


class InvalidClaimer(LedgerError):
    """Raised when a claim names the null account as claimer."""
    pass


class InvalidAmount(LedgerError):
    """Raised when an amount is zero (for claims) or not a uint256."""
    pass


class InvalidSigner(LedgerError):
    """Raised when a claim signature does not recover to a whitelisted signer."""
    pass


class AlreadyClaimed(LedgerError):
    """Raised when a claim transaction identifier was already redeemed."""

    def __init__(self, tx_id: str):
        self.tx_id = tx_id
        super().__init__(f"transaction {tx_id!r} has already been claimed")


class LedgerNotConfigured(LedgerError):
    """Raised when a fee-bearing forge runs before a fee ledger is linked."""
    pass
