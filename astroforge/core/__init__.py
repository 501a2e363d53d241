# Core ledger services
from .hasher import Hasher, CanonicalSerializationError
from .accounts import ZERO_ADDRESS, MAX_UINT256, normalize_address, check_amount
from .errors import (
    LedgerError,
    ValidationError,
    AccessDenied,
    ZeroAddress,
    InsufficientBalance,
    InsufficientAllowance,
    ArithmeticOverflow,
    TokenNotFound,
    OwnerMismatch,
    NotOwnerOrApproved,
    RegistryPaused,
    InvalidClaimer,
    InvalidAmount,
    InvalidSigner,
    AlreadyClaimed,
    LedgerNotConfigured,
)
from .roles import Role, RoleRegistry
from .signer import ClaimSignature, ClaimSigner, SignatureRecoverer, EthereumRecoverer
from .signing_service import ClaimSigningService
from .token import FungibleLedger
from .assets import AssetRegistry
from .bridge import FeeLedger, FORGE_FEE_REASON, charge_forge_fee, wire_fee_bridge

__all__ = [
    "Hasher",
    "CanonicalSerializationError",
    "ZERO_ADDRESS",
    "MAX_UINT256",
    "normalize_address",
    "check_amount",
    "LedgerError",
    "ValidationError",
    "AccessDenied",
    "ZeroAddress",
    "InsufficientBalance",
    "InsufficientAllowance",
    "ArithmeticOverflow",
    "TokenNotFound",
    "OwnerMismatch",
    "NotOwnerOrApproved",
    "RegistryPaused",
    "InvalidClaimer",
    "InvalidAmount",
    "InvalidSigner",
    "AlreadyClaimed",
    "LedgerNotConfigured",
    "Role",
    "RoleRegistry",
    "ClaimSignature",
    "ClaimSigner",
    "SignatureRecoverer",
    "EthereumRecoverer",
    "ClaimSigningService",
    "FungibleLedger",
    "AssetRegistry",
    "FeeLedger",
    "FORGE_FEE_REASON",
    "charge_forge_fee",
    "wire_fee_bridge",
]
