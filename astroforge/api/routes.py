"""
API Routes for the AstroForge ledgers

Command-style endpoints (each one is a single atomic ledger operation).
The acting account is derived from `caller_private_key` in the body.

Roles (ledger = token | assets):
- GET  /{ledger}/roles/{role}/{account}  - Membership and admin role
- POST /{ledger}/roles/grant|revoke|renounce

Fungible ledger:
- GET  /token, /token/balances/{account}, /token/allowances/{owner}/{spender}
- POST /token/mint|burn|transfer|approve|transfer-from|claim
- POST /token/signers/add|remove
- GET  /token/claims/{tx_id}

Asset registry:
- GET  /assets, /assets/{token_id}, /assets/owners/{account}
- POST /assets/mint|upgrade|forge|burn|transfer|approve|approval-for-all
- POST /assets/pause|unpause

Journal:
- GET  /events
"""

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from ..core.errors import (
    AccessDenied,
    AlreadyClaimed,
    LedgerError,
    NotOwnerOrApproved,
    TokenNotFound,
)
from ..core.roles import Role
from ..core.signer import ClaimSigner
from ..platform import Platform
from ..schemas import EventType, LedgerEvent


router = APIRouter()

LedgerName = Literal["token", "assets"]


# ============================================================
# Dependency Injection
# ============================================================

def get_platform(request: Request) -> Platform:
    return request.app.state.platform


def _http_error(error: LedgerError) -> HTTPException:
    """Map a ledger error kind to an HTTP status."""
    if isinstance(error, (AccessDenied, NotOwnerOrApproved)):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(error, TokenNotFound):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, AlreadyClaimed):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(
        status_code=code,
        detail={"error": type(error).__name__, "message": str(error)},
    )


def _caller(private_key: str) -> str:
    try:
        return ClaimSigner.address_of(private_key)
    except LedgerError as e:
        raise _http_error(e)


# ============================================================
# Request/Response Models
# ============================================================

class CommandRequest(BaseModel):
    """Base of every command: who is acting."""
    caller_private_key: str  # In production, use proper auth


class RoleChangeRequest(CommandRequest):
    role: str
    account: str


class RoleResponse(BaseModel):
    ledger: str
    role: str
    role_id: str
    account: str
    has_role: bool
    admin_role: str


class RoleChangeResponse(BaseModel):
    role: str
    account: str
    changed: bool


class TokenMintRequest(CommandRequest):
    to: str
    amount: int = Field(..., ge=0)


class TokenBurnRequest(CommandRequest):
    amount: int = Field(..., ge=0)


class TokenTransferRequest(CommandRequest):
    to: str
    amount: int = Field(..., ge=0)


class TokenApproveRequest(CommandRequest):
    spender: str
    amount: int = Field(..., ge=0)


class TokenTransferFromRequest(CommandRequest):
    sender: str
    recipient: str
    amount: int = Field(..., ge=0)


class ClaimRequest(BaseModel):
    """
    Redeem a signed claim.

    The signature authorizes the mint; the submitting caller is optional
    and defaults to the claimer.
    """
    claimer: str
    tx_id: str
    amount: int
    signature: str = Field(..., description="0x-hex r || s || v")
    caller_private_key: Optional[str] = None


class SignerRequest(CommandRequest):
    account: str


class TokenInfoResponse(BaseModel):
    address: str
    name: str
    symbol: str
    decimals: int
    total_supply: int
    signers: list[str]


class BalanceResponse(BaseModel):
    account: str
    balance: int


class AllowanceResponse(BaseModel):
    owner: str
    spender: str
    allowance: int


class ClaimResponse(BaseModel):
    tx_id: str
    claimer: str
    amount: int
    signer: str
    balance: int


class ClaimStatusResponse(BaseModel):
    tx_id: str
    claimed: bool
    claimer: Optional[str] = None
    amount: Optional[int] = None
    signer: Optional[str] = None


class SignerResponse(BaseModel):
    account: str
    is_signer: bool
    changed: bool


class AssetMintRequest(CommandRequest):
    to: str
    metadata: str


class AssetUpgradeRequest(CommandRequest):
    owner: str
    token_id: int
    metadata: str


class ForgeRequest(CommandRequest):
    token_a: int
    token_b: int
    owner: str
    metadata: str = ""
    fee_amount: int = Field(0, ge=0)


class AssetBurnRequest(CommandRequest):
    token_id: int


class AssetTransferRequest(CommandRequest):
    sender: str
    recipient: str
    token_id: int
    safe: bool = False


class AssetApproveRequest(CommandRequest):
    spender: str
    token_id: int


class ApprovalForAllRequest(CommandRequest):
    operator: str
    approved: bool


class RegistryInfoResponse(BaseModel):
    address: str
    name: str
    symbol: str
    gateway_base: str
    total_supply: int
    next_token_id: int
    paused: bool
    fee_ledger: Optional[str] = None


class AssetResponse(BaseModel):
    token_id: int
    owner: str
    metadata: str
    token_uri: str
    approved: str


class OwnerAssetsResponse(BaseModel):
    account: str
    balance: int
    token_ids: list[int]


class ForgeResponse(BaseModel):
    owner: str
    input_token_ids: list[int]
    result_token_id: Optional[int] = None
    fee_amount: int


class EventResponse(BaseModel):
    """A committed journal fact."""
    event_id: UUID
    sequence_number: int
    event_type: str
    source: str
    payload: dict
    event_hash: str
    previous_event_hash: Optional[str] = None
    created_at: datetime


def _event_response(event: LedgerEvent) -> EventResponse:
    return EventResponse(
        event_id=event.event_id,
        sequence_number=event.sequence_number,
        event_type=event.event_type.value,
        source=event.source,
        payload=event.payload,
        event_hash=event.event_hash,
        previous_event_hash=event.previous_event_hash,
        created_at=event.created_at,
    )


# ============================================================
# Roles
# ============================================================

@router.get(
    "/{ledger}/roles/{role}/{account}",
    response_model=RoleResponse,
    tags=["Roles"],
    summary="Check role membership",
)
async def get_role(
    ledger: LedgerName,
    role: str,
    account: str,
    platform: Platform = Depends(get_platform),
):
    registry = platform.ledger(ledger).roles
    try:
        parsed = Role.parse(role)
        return RoleResponse(
            ledger=ledger,
            role=parsed.value,
            role_id=parsed.role_id,
            account=account,
            has_role=registry.has_role(parsed, account),
            admin_role=registry.get_role_admin(parsed).value,
        )
    except LedgerError as e:
        raise _http_error(e)


@router.post(
    "/{ledger}/roles/{action}",
    response_model=RoleChangeResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Roles"],
    summary="Grant, revoke or renounce a role",
)
async def change_role(
    ledger: LedgerName,
    action: Literal["grant", "revoke", "renounce"],
    request: RoleChangeRequest,
    platform: Platform = Depends(get_platform),
):
    """
    Grant and revoke require the admin role of the target role.
    Renounce only works on the caller's own membership.
    """
    registry = platform.ledger(ledger).roles
    caller = _caller(request.caller_private_key)
    operations = {
        "grant": registry.grant_role,
        "revoke": registry.revoke_role,
        "renounce": registry.renounce_role,
    }
    try:
        changed = operations[action](caller, request.role, request.account)
    except LedgerError as e:
        raise _http_error(e)
    return RoleChangeResponse(role=request.role, account=request.account, changed=changed)


# ============================================================
# Fungible ledger
# ============================================================

@router.get("/token", response_model=TokenInfoResponse, tags=["Token"])
async def token_info(platform: Platform = Depends(get_platform)):
    token = platform.token
    return TokenInfoResponse(
        address=token.address,
        name=token.name,
        symbol=token.symbol,
        decimals=token.decimals,
        total_supply=token.total_supply,
        signers=token.signers(),
    )


@router.get("/token/balances/{account}", response_model=BalanceResponse, tags=["Token"])
async def token_balance(account: str, platform: Platform = Depends(get_platform)):
    try:
        return BalanceResponse(account=account, balance=platform.token.balance_of(account))
    except LedgerError as e:
        raise _http_error(e)


@router.get(
    "/token/allowances/{owner}/{spender}",
    response_model=AllowanceResponse,
    tags=["Token"],
)
async def token_allowance(owner: str, spender: str, platform: Platform = Depends(get_platform)):
    try:
        return AllowanceResponse(
            owner=owner,
            spender=spender,
            allowance=platform.token.allowance(owner, spender),
        )
    except LedgerError as e:
        raise _http_error(e)


@router.post(
    "/token/mint",
    response_model=BalanceResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Token"],
    summary="Mint fungible units (MINTER_BURNER_ROLE)",
)
async def token_mint(request: TokenMintRequest, platform: Platform = Depends(get_platform)):
    caller = _caller(request.caller_private_key)
    try:
        platform.token.mint(caller, request.to, request.amount)
        return BalanceResponse(account=request.to, balance=platform.token.balance_of(request.to))
    except LedgerError as e:
        raise _http_error(e)


@router.post(
    "/token/burn",
    response_model=BalanceResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Token"],
)
async def token_burn(request: TokenBurnRequest, platform: Platform = Depends(get_platform)):
    caller = _caller(request.caller_private_key)
    try:
        platform.token.burn(caller, request.amount)
    except LedgerError as e:
        raise _http_error(e)
    return BalanceResponse(account=caller, balance=platform.token.balance_of(caller))


@router.post(
    "/token/transfer",
    response_model=BalanceResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Token"],
)
async def token_transfer(request: TokenTransferRequest, platform: Platform = Depends(get_platform)):
    caller = _caller(request.caller_private_key)
    try:
        platform.token.transfer(caller, request.to, request.amount)
    except LedgerError as e:
        raise _http_error(e)
    return BalanceResponse(account=caller, balance=platform.token.balance_of(caller))


@router.post(
    "/token/approve",
    response_model=AllowanceResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Token"],
)
async def token_approve(request: TokenApproveRequest, platform: Platform = Depends(get_platform)):
    caller = _caller(request.caller_private_key)
    try:
        platform.token.approve(caller, request.spender, request.amount)
        return AllowanceResponse(
            owner=caller,
            spender=request.spender,
            allowance=platform.token.allowance(caller, request.spender),
        )
    except LedgerError as e:
        raise _http_error(e)


@router.post(
    "/token/transfer-from",
    response_model=BalanceResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Token"],
)
async def token_transfer_from(
    request: TokenTransferFromRequest,
    platform: Platform = Depends(get_platform),
):
    caller = _caller(request.caller_private_key)
    try:
        platform.token.transfer_from(caller, request.sender, request.recipient, request.amount)
        return BalanceResponse(
            account=request.sender,
            balance=platform.token.balance_of(request.sender),
        )
    except LedgerError as e:
        raise _http_error(e)


@router.post(
    "/token/claim",
    response_model=ClaimResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Token"],
    summary="Redeem a signed claim",
)
async def token_claim(request: ClaimRequest, platform: Platform = Depends(get_platform)):
    """
    Mint against a whitelisted signer's signature over (claimer, tx_id, amount).

    Each tx_id redeems once; a second attempt returns 409.
    """
    caller = _caller(request.caller_private_key) if request.caller_private_key else request.claimer
    try:
        signer = platform.token.claim(
            caller, request.claimer, request.tx_id, request.amount, request.signature
        )
        return ClaimResponse(
            tx_id=request.tx_id,
            claimer=request.claimer,
            amount=request.amount,
            signer=signer,
            balance=platform.token.balance_of(request.claimer),
        )
    except LedgerError as e:
        raise _http_error(e)


@router.get("/token/claims/{tx_id}", response_model=ClaimStatusResponse, tags=["Token"])
async def token_claim_status(tx_id: str, platform: Platform = Depends(get_platform)):
    record = platform.token.claim_record(tx_id)
    if record is None:
        return ClaimStatusResponse(tx_id=tx_id, claimed=False)
    return ClaimStatusResponse(tx_id=tx_id, claimed=True, **record)


@router.post(
    "/token/signers/{action}",
    response_model=SignerResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Token"],
    summary="Add or remove a claim signer (OWNER_ROLE)",
)
async def token_signer(
    action: Literal["add", "remove"],
    request: SignerRequest,
    platform: Platform = Depends(get_platform),
):
    caller = _caller(request.caller_private_key)
    token = platform.token
    try:
        if action == "add":
            changed = token.add_signer(caller, request.account)
        else:
            changed = token.remove_signer(caller, request.account)
        return SignerResponse(
            account=request.account,
            is_signer=token.is_signer(request.account),
            changed=changed,
        )
    except LedgerError as e:
        raise _http_error(e)


# ============================================================
# Asset registry
# ============================================================

@router.get("/assets", response_model=RegistryInfoResponse, tags=["Assets"])
async def registry_info(platform: Platform = Depends(get_platform)):
    assets = platform.assets
    return RegistryInfoResponse(
        address=assets.address,
        name=assets.name,
        symbol=assets.symbol,
        gateway_base=assets.get_gateway_base(),
        total_supply=assets.total_supply,
        next_token_id=assets.next_token_id(),
        paused=assets.paused,
        fee_ledger=assets.fee_ledger,
    )


@router.get("/assets/owners/{account}", response_model=OwnerAssetsResponse, tags=["Assets"])
async def owner_assets(account: str, platform: Platform = Depends(get_platform)):
    try:
        return OwnerAssetsResponse(
            account=account,
            balance=platform.assets.balance_of(account),
            token_ids=platform.assets.tokens_of_owner(account),
        )
    except LedgerError as e:
        raise _http_error(e)


@router.get("/assets/{token_id}", response_model=AssetResponse, tags=["Assets"])
async def get_asset(token_id: int, platform: Platform = Depends(get_platform)):
    assets = platform.assets
    try:
        return AssetResponse(
            token_id=token_id,
            owner=assets.owner_of(token_id),
            metadata=assets.metadata_of(token_id),
            token_uri=assets.token_uri(token_id),
            approved=assets.get_approved(token_id),
        )
    except LedgerError as e:
        raise _http_error(e)


@router.post(
    "/assets/mint",
    response_model=AssetResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Assets"],
    summary="Mint an asset (MINTER_ROLE)",
)
async def asset_mint(request: AssetMintRequest, platform: Platform = Depends(get_platform)):
    caller = _caller(request.caller_private_key)
    assets = platform.assets
    try:
        token_id = assets.mint(caller, request.to, request.metadata)
        return AssetResponse(
            token_id=token_id,
            owner=assets.owner_of(token_id),
            metadata=request.metadata,
            token_uri=assets.token_uri(token_id),
            approved=assets.get_approved(token_id),
        )
    except LedgerError as e:
        raise _http_error(e)


@router.post(
    "/assets/upgrade",
    response_model=AssetResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Assets"],
    summary="Replace an asset's metadata (ASTRO_MECHANIC_ROLE)",
)
async def asset_upgrade(request: AssetUpgradeRequest, platform: Platform = Depends(get_platform)):
    caller = _caller(request.caller_private_key)
    assets = platform.assets
    try:
        assets.upgrade(caller, request.owner, request.token_id, request.metadata)
        return AssetResponse(
            token_id=request.token_id,
            owner=assets.owner_of(request.token_id),
            metadata=request.metadata,
            token_uri=assets.token_uri(request.token_id),
            approved=assets.get_approved(request.token_id),
        )
    except LedgerError as e:
        raise _http_error(e)


@router.post(
    "/assets/forge",
    response_model=ForgeResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Assets"],
    summary="Forge two assets (ASTRO_BLACKSMITH_ROLE + owner approval)",
)
async def asset_forge(request: ForgeRequest, platform: Platform = Depends(get_platform)):
    """
    Burn both inputs, mint one new asset when metadata is given, and
    burn the fee from the owner's fungible balance, all atomically.
    """
    caller = _caller(request.caller_private_key)
    try:
        result = platform.assets.forge(
            caller,
            request.token_a,
            request.token_b,
            request.owner,
            request.metadata,
            request.fee_amount,
        )
    except LedgerError as e:
        raise _http_error(e)
    return ForgeResponse(
        owner=request.owner,
        input_token_ids=[request.token_a, request.token_b],
        result_token_id=result,
        fee_amount=request.fee_amount,
    )


@router.post(
    "/assets/burn",
    response_model=OwnerAssetsResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Assets"],
)
async def asset_burn(request: AssetBurnRequest, platform: Platform = Depends(get_platform)):
    caller = _caller(request.caller_private_key)
    assets = platform.assets
    try:
        owner = assets.owner_of(request.token_id)
        assets.burn(caller, request.token_id)
        return OwnerAssetsResponse(
            account=owner,
            balance=assets.balance_of(owner),
            token_ids=assets.tokens_of_owner(owner),
        )
    except LedgerError as e:
        raise _http_error(e)


@router.post(
    "/assets/transfer",
    response_model=AssetResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Assets"],
)
async def asset_transfer(request: AssetTransferRequest, platform: Platform = Depends(get_platform)):
    caller = _caller(request.caller_private_key)
    assets = platform.assets
    transfer = assets.safe_transfer_from if request.safe else assets.transfer_from
    try:
        transfer(caller, request.sender, request.recipient, request.token_id)
        return AssetResponse(
            token_id=request.token_id,
            owner=assets.owner_of(request.token_id),
            metadata=assets.metadata_of(request.token_id),
            token_uri=assets.token_uri(request.token_id),
            approved=assets.get_approved(request.token_id),
        )
    except LedgerError as e:
        raise _http_error(e)


@router.post(
    "/assets/approve",
    response_model=AssetResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Assets"],
)
async def asset_approve(request: AssetApproveRequest, platform: Platform = Depends(get_platform)):
    caller = _caller(request.caller_private_key)
    assets = platform.assets
    try:
        assets.approve(caller, request.spender, request.token_id)
        return AssetResponse(
            token_id=request.token_id,
            owner=assets.owner_of(request.token_id),
            metadata=assets.metadata_of(request.token_id),
            token_uri=assets.token_uri(request.token_id),
            approved=assets.get_approved(request.token_id),
        )
    except LedgerError as e:
        raise _http_error(e)


@router.post(
    "/assets/approval-for-all",
    status_code=status.HTTP_201_CREATED,
    tags=["Assets"],
)
async def asset_approval_for_all(
    request: ApprovalForAllRequest,
    platform: Platform = Depends(get_platform),
):
    caller = _caller(request.caller_private_key)
    try:
        platform.assets.set_approval_for_all(caller, request.operator, request.approved)
        return {
            "owner": caller,
            "operator": request.operator,
            "approved": platform.assets.is_approved_for_all(caller, request.operator),
        }
    except LedgerError as e:
        raise _http_error(e)


@router.post(
    "/assets/{action}",
    response_model=RegistryInfoResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Assets"],
    summary="Pause or unpause asset movement (PAUSER_ROLE)",
)
async def asset_pause(
    action: Literal["pause", "unpause"],
    request: CommandRequest,
    platform: Platform = Depends(get_platform),
):
    caller = _caller(request.caller_private_key)
    try:
        if action == "pause":
            platform.assets.pause(caller)
        else:
            platform.assets.unpause(caller)
    except LedgerError as e:
        raise _http_error(e)
    return await registry_info(platform)


# ============================================================
# Journal
# ============================================================

@router.get("/events", response_model=list[EventResponse], tags=["Journal"])
async def list_events(
    event_type: Optional[EventType] = None,
    source: Optional[str] = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    platform: Platform = Depends(get_platform),
):
    """Committed facts in sequence order, optionally filtered."""
    journal = platform.store.journal
    if event_type is not None:
        events = journal.list_by_type(event_type)
    else:
        events = journal.list_all()
    if source is not None:
        events = [e for e in events if e.source.lower() == source.lower()]
    return [_event_response(e) for e in events[offset:offset + limit]]
