"""
Platform Configuration

Environment Variables:
    ASTROFORGE_TOKEN_NAME: Fungible token name (default Velox)
    ASTROFORGE_TOKEN_SYMBOL: Fungible token symbol (default VLX)
    ASTROFORGE_TOKEN_DECIMALS: Fungible token decimals (default 0)
    ASTROFORGE_ASSET_NAME: Asset registry name (default Holo-V)
    ASTROFORGE_ASSET_SYMBOL: Asset registry symbol (default HOLOV)
    ASTROFORGE_GATEWAY_BASE: Metadata gateway prefix (default https://gateway.io/ipfs/)
    ASTROFORGE_OWNER_PRIVATE_KEY: Deployer / root account key (0x-hex secp256k1)
    ASTROFORGE_CLAIM_SIGNER_KEY: Backend claim co-signer key (0x-hex secp256k1)
    ASTROFORGE_PRODUCTION: Refuse to start without explicit keys
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from .core.assets import DEFAULT_GATEWAY_BASE
from .core.signer import ClaimSigner
from .core.signing_service import load_or_generate_key
from .observability import is_production


@dataclass
class PlatformConfig:
    """Deployment settings for one token ledger + asset registry pair."""
    token_name: str = "Velox"
    token_symbol: str = "VLX"
    token_decimals: int = 0

    asset_name: str = "Holo-V"
    asset_symbol: str = "HOLOV"
    gateway_base: str = DEFAULT_GATEWAY_BASE

    owner_private_key: Optional[str] = field(default=None, repr=False)
    claim_signer_key: Optional[str] = field(default=None, repr=False)

    production: bool = False

    @classmethod
    def from_env(cls) -> "PlatformConfig":
        """Load configuration from ASTROFORGE_* environment variables."""
        return cls(
            token_name=os.getenv("ASTROFORGE_TOKEN_NAME", "Velox"),
            token_symbol=os.getenv("ASTROFORGE_TOKEN_SYMBOL", "VLX"),
            token_decimals=int(os.getenv("ASTROFORGE_TOKEN_DECIMALS", "0")),
            asset_name=os.getenv("ASTROFORGE_ASSET_NAME", "Holo-V"),
            asset_symbol=os.getenv("ASTROFORGE_ASSET_SYMBOL", "HOLOV"),
            gateway_base=os.getenv("ASTROFORGE_GATEWAY_BASE", DEFAULT_GATEWAY_BASE),
            owner_private_key=os.getenv("ASTROFORGE_OWNER_PRIVATE_KEY") or None,
            claim_signer_key=os.getenv("ASTROFORGE_CLAIM_SIGNER_KEY") or None,
            production=is_production(),
        )

    def resolve_owner_key(self) -> str:
        """
        The owner key, generating an ephemeral one outside production.

        The generated key is kept so later calls return the same account.
        """
        if self.production and not self.owner_private_key:
            raise RuntimeError("ASTROFORGE_OWNER_PRIVATE_KEY must be set in production")
        key, _ = load_or_generate_key(
            self.owner_private_key, "ASTROFORGE_OWNER_PRIVATE_KEY", "Owner"
        )
        self.owner_private_key = key
        return key

    @property
    def owner_address(self) -> str:
        return ClaimSigner.address_of(self.resolve_owner_key())
