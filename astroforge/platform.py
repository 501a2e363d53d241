"""
Platform wiring.

Deploys the fungible ledger and the asset registry on one StateStore,
links them through the forge fee bridge, and whitelists the backend claim
signer. This is the object the HTTP app and the CLI work against.
"""

from dataclasses import dataclass
from typing import Optional

from .config import PlatformConfig
from .core import AssetRegistry, ClaimSigningService, FungibleLedger, wire_fee_bridge
from .db import StateStore
from .observability import get_logger

logger = get_logger(__name__)


@dataclass
class Platform:
    """A deployed ledger pair sharing one state store."""
    config: PlatformConfig
    store: StateStore
    owner: str
    token: FungibleLedger
    assets: AssetRegistry
    claim_signer: ClaimSigningService

    def ledger(self, name: str):
        """Resolve a ledger by route name ("token" or "assets")."""
        if name == "token":
            return self.token
        if name == "assets":
            return self.assets
        raise KeyError(name)


def create_platform(config: Optional[PlatformConfig] = None) -> Platform:
    """
    Deploy and wire a platform.

    Order:
    1. Fungible ledger (owner gets OWNER_ROLE and MINTER_BURNER_ROLE)
    2. Asset registry (owner gets OWNER_ROLE)
    3. Fee bridge: registry may burn on the ledger, ledger linked to registry
    4. Claim signer whitelisted on the ledger
    """
    config = config or PlatformConfig.from_env()
    if config.production and not config.claim_signer_key:
        raise RuntimeError("ASTROFORGE_CLAIM_SIGNER_KEY must be set in production")

    owner = config.owner_address
    store = StateStore()

    token = FungibleLedger(
        store,
        owner,
        name=config.token_name,
        symbol=config.token_symbol,
        decimals=config.token_decimals,
    )
    assets = AssetRegistry(
        store,
        owner,
        name=config.asset_name,
        symbol=config.asset_symbol,
        gateway_base=config.gateway_base,
    )
    wire_fee_bridge(assets, token, owner)

    claim_signer = ClaimSigningService(config.claim_signer_key)
    token.add_signer(owner, claim_signer.address)

    logger.info(
        "Platform deployed",
        owner=owner,
        token=token.address,
        assets=assets.address,
        claim_signer=claim_signer.address,
    )
    return Platform(
        config=config,
        store=store,
        owner=owner,
        token=token,
        assets=assets,
        claim_signer=claim_signer,
    )
