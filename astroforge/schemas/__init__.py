# Canonical schemas for the facts the ledgers publish.

from .events import (
    LedgerEvent,
    EventType,
    RoleChangedPayload,
    TransferPayload,
    ApprovalPayload,
    SignerChangedPayload,
    ClaimRedeemedPayload,
    UtilBurnPayload,
    AssetTransferPayload,
    AssetApprovalPayload,
    OperatorApprovalPayload,
    MetadataUpgradedPayload,
    AssetForgedPayload,
    FeeLedgerSetPayload,
    PauseChangedPayload,
)

__all__ = [
    "LedgerEvent",
    "EventType",
    # Access control
    "RoleChangedPayload",
    # Fungible ledger
    "TransferPayload",
    "ApprovalPayload",
    "SignerChangedPayload",
    "ClaimRedeemedPayload",
    "UtilBurnPayload",
    # Asset registry
    "AssetTransferPayload",
    "AssetApprovalPayload",
    "OperatorApprovalPayload",
    "MetadataUpgradedPayload",
    "AssetForgedPayload",
    "FeeLedgerSetPayload",
    "PauseChangedPayload",
]
