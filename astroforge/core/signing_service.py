"""
Claim Signing Service - Secure Key Management

Holds the backend key that co-signs claim requests. The key's account must
be on the fungible ledger's signer whitelist for its claims to redeem.

KEY SOURCES:
1. ASTROFORGE_CLAIM_SIGNER_KEY: 0x-hex secp256k1 private key
2. Otherwise an ephemeral key is generated (development only, warning issued)

PRODUCTION REQUIREMENTS:
- Set ASTROFORGE_CLAIM_SIGNER_KEY (and ASTROFORGE_OWNER_PRIVATE_KEY)
- Generate with: python -m tools.manage generate-key

DEVELOPMENT MODE:
- Keys are different on each restart - fine for dev, NOT for prod
"""

import os
import warnings
from typing import Optional

from ..observability import get_logger, is_production
from .signer import ClaimSignature, ClaimSigner

logger = get_logger(__name__)


def load_or_generate_key(private_key: Optional[str], env_var: str, purpose: str) -> tuple[str, bool]:
    """
    Resolve a private key from an explicit value or the environment.

    Returns:
        Tuple of (private_key, is_ephemeral)

    Raises:
        RuntimeError: If no key is configured in production
    """
    private_key = private_key or os.environ.get(env_var, "")
    if private_key:
        ClaimSigner.address_of(private_key)
        return private_key, False

    if is_production():
        raise RuntimeError(
            f"{env_var} must be set in production. Generate with:\n"
            "python -m tools.manage generate-key"
        )

    warnings.warn(
        f"{purpose} key not configured. Generating ephemeral key for development. "
        "This key changes on each restart - NOT suitable for production!",
        stacklevel=2,
    )
    private_key, _ = ClaimSigner.generate_key()
    return private_key, True


class ClaimSigningService:
    """
    Issues claim signatures with the backend signer key.

    SECURITY NOTES:
    - The private key is never logged or exposed
    - Production mode requires explicit key configuration
    """

    def __init__(self, private_key: Optional[str] = None):
        self._private_key, self._is_ephemeral = load_or_generate_key(
            private_key, "ASTROFORGE_CLAIM_SIGNER_KEY", "Claim signer"
        )
        self._address = ClaimSigner.address_of(self._private_key)
        logger.info(
            "Claim signer key loaded",
            address=self._address,
            ephemeral=self._is_ephemeral,
        )

    @property
    def address(self) -> str:
        """Signer account (safe to expose)."""
        return self._address

    @property
    def is_ephemeral(self) -> bool:
        return self._is_ephemeral

    def issue_claim(self, claimer: str, tx_id: str, amount: int) -> ClaimSignature:
        """Sign a claim the ledger will accept once this signer is whitelisted."""
        signature = ClaimSigner.sign_claim(self._private_key, claimer, tx_id, amount)
        logger.info("Claim issued", claimer=claimer, tx_id=tx_id, amount=amount)
        return signature
