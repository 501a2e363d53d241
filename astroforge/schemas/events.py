"""
Canonical Event Schema

Every committed state change leaves a fact behind.
Facts are append-only: they are never revised, and facts of an aborted
operation are never published.

Each event:
- Is emitted by exactly one ledger (its source address)
- Gets a global sequence number across every ledger sharing a store
- Is hashed and chained to the previous fact
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """
    All possible event types.
    You can add more later, never remove.
    """
    # Access control
    ROLE_GRANTED = "ROLE_GRANTED"
    ROLE_REVOKED = "ROLE_REVOKED"

    # Fungible ledger
    TRANSFER = "TRANSFER"
    APPROVAL = "APPROVAL"
    SIGNER_ADDED = "SIGNER_ADDED"
    SIGNER_REMOVED = "SIGNER_REMOVED"
    CLAIM_REDEEMED = "CLAIM_REDEEMED"
    UTIL_BURN = "UTIL_BURN"

    # Asset registry
    ASSET_TRANSFER = "ASSET_TRANSFER"
    ASSET_APPROVAL = "ASSET_APPROVAL"
    APPROVAL_FOR_ALL = "APPROVAL_FOR_ALL"
    METADATA_UPGRADED = "METADATA_UPGRADED"
    ASSET_FORGED = "ASSET_FORGED"
    FEE_LEDGER_SET = "FEE_LEDGER_SET"
    PAUSED = "PAUSED"
    UNPAUSED = "UNPAUSED"


# ============================================================
# Event Payloads
# ============================================================

class RoleChangedPayload(BaseModel):
    """Payload for ROLE_GRANTED and ROLE_REVOKED."""
    role: str
    role_id: str
    account: str
    sender: str
    schema_version: int = 1


class TransferPayload(BaseModel):
    """
    Payload for TRANSFER.

    Mints come from the null account, burns go to it.
    """
    sender: str = Field(..., description="Account debited (null for mint)")
    recipient: str = Field(..., description="Account credited (null for burn)")
    amount: int = Field(..., ge=0)
    schema_version: int = 1


class ApprovalPayload(BaseModel):
    """Payload for APPROVAL (fungible allowance set)."""
    owner: str
    spender: str
    amount: int = Field(..., ge=0)
    schema_version: int = 1


class SignerChangedPayload(BaseModel):
    """Payload for SIGNER_ADDED and SIGNER_REMOVED."""
    signer: str
    sender: str
    schema_version: int = 1


class ClaimRedeemedPayload(BaseModel):
    """
    Payload for CLAIM_REDEEMED.

    Records which whitelisted signer vouched for the claim.
    """
    tx_id: str
    claimer: str
    amount: int = Field(..., gt=0)
    signer: str
    schema_version: int = 1


class UtilBurnPayload(BaseModel):
    """Payload for UTIL_BURN (privileged burn for a utility cost)."""
    account: str
    amount: int = Field(..., ge=0)
    reason: str
    operator: str
    schema_version: int = 1


class AssetTransferPayload(BaseModel):
    """Payload for ASSET_TRANSFER. Mint/burn use the null account."""
    sender: str
    recipient: str
    token_id: int = Field(..., gt=0)
    schema_version: int = 1


class AssetApprovalPayload(BaseModel):
    """Payload for ASSET_APPROVAL (single-spender approval)."""
    owner: str
    approved: str
    token_id: int = Field(..., gt=0)
    schema_version: int = 1


class OperatorApprovalPayload(BaseModel):
    """Payload for APPROVAL_FOR_ALL."""
    owner: str
    operator: str
    approved: bool
    schema_version: int = 1


class MetadataUpgradedPayload(BaseModel):
    """Payload for METADATA_UPGRADED."""
    token_id: int = Field(..., gt=0)
    owner: str
    previous_metadata: str
    metadata: str
    operator: str
    schema_version: int = 1


class AssetForgedPayload(BaseModel):
    """
    Payload for ASSET_FORGED.

    result_token_id is 0 for a non-meta forge (nothing minted);
    identifiers start at 1 so 0 never names a real asset.
    """
    owner: str
    input_token_ids: list[int]
    result_token_id: int = Field(..., ge=0)
    metadata: str
    fee_amount: int = Field(..., ge=0)
    operator: str
    schema_version: int = 1


class FeeLedgerSetPayload(BaseModel):
    """Payload for FEE_LEDGER_SET."""
    fee_ledger: str
    sender: str
    schema_version: int = 1


class PauseChangedPayload(BaseModel):
    """Payload for PAUSED and UNPAUSED."""
    sender: str
    schema_version: int = 1


# ============================================================
# Ledger Event (the envelope)
# ============================================================

class LedgerEvent(BaseModel):
    """
    A committed, chained fact.

    CHAIN RULES:
    - sequence_number 0 is genesis and has no previous_event_hash
    - every other event links to the hash of the event before it
    """
    event_id: UUID
    sequence_number: int = Field(..., ge=0)
    event_type: EventType
    source: str = Field(..., description="Address of the emitting ledger")
    payload: dict[str, Any]
    previous_event_hash: Optional[str] = None
    event_hash: str
    created_at: datetime

    def hash_body(self) -> dict[str, Any]:
        """The part of the event covered by event_hash."""
        return {
            "sequence_number": self.sequence_number,
            "event_type": self.event_type,
            "source": self.source,
            "payload": self.payload,
        }

    def validate_chain_rules(self) -> None:
        """Raise ValueError if genesis/linkage rules are broken."""
        if self.sequence_number == 0 and self.previous_event_hash is not None:
            raise ValueError(
                "Genesis event (sequence 0) must have previous_event_hash=None"
            )
        if self.sequence_number > 0 and self.previous_event_hash is None:
            raise ValueError(
                f"Event {self.sequence_number} must have previous_event_hash set"
            )
