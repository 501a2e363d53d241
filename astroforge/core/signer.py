"""
Claim Signatures

secp256k1 signatures over claim requests, recoverable to the signing account.

A backend signer vouches for a claim by signing a hash that binds
exactly (claimer, tx_id, amount):

    message_hash = keccak256(abi.encodePacked(address claimer, string txId, uint256 amount))

The hash is signed as an EIP-191 personal message, so any standard wallet
can produce claim signatures. The fungible ledger recovers the signer from
the (v, r, s) triple and checks it against its signer whitelist.
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol, Tuple

from eth_abi.packed import encode_packed
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature, ValidationError as KeyValidationError
from eth_utils import keccak

from .errors import InvalidSigner, ValidationError

_VALID_V = (0, 1, 27, 28)


@dataclass(frozen=True)
class ClaimSignature:
    """A (v, r, s) signature triple."""
    v: int
    r: int
    s: int

    @classmethod
    def from_hex(cls, signature: str) -> "ClaimSignature":
        """Parse a 65-byte r || s || v hex signature."""
        raw = signature[2:] if signature.startswith(("0x", "0X")) else signature
        if len(raw) != 130:
            raise ValidationError("Signature must be 65 bytes of hex (r || s || v)")
        try:
            data = bytes.fromhex(raw)
        except ValueError as e:
            raise ValidationError(f"Signature is not valid hex: {e}") from e
        return cls.from_bytes(data)

    @classmethod
    def from_bytes(cls, data: bytes) -> "ClaimSignature":
        """Parse a raw 65-byte r || s || v signature."""
        if len(data) != 65:
            raise ValidationError("Signature must be 65 bytes (r || s || v)")
        return cls(
            v=data[64],
            r=int.from_bytes(data[:32], "big"),
            s=int.from_bytes(data[32:64], "big"),
        )

    @classmethod
    def coerce(cls, signature: Any) -> "ClaimSignature":
        """Accept a ClaimSignature, a hex string or raw bytes."""
        if isinstance(signature, cls):
            return signature
        if isinstance(signature, str):
            return cls.from_hex(signature)
        if isinstance(signature, (bytes, bytearray)):
            return cls.from_bytes(bytes(signature))
        raise ValidationError(
            f"Signature must be hex, bytes or ClaimSignature, not {type(signature).__name__}"
        )

    def to_hex(self) -> str:
        return "0x" + (
            self.r.to_bytes(32, "big") + self.s.to_bytes(32, "big") + bytes([self.v])
        ).hex()


class SignatureRecoverer(Protocol):
    """Recover the signing account from a message hash and a signature."""

    def recover(self, message_hash: bytes, signature: ClaimSignature) -> str:
        ...


class EthereumRecoverer:
    """EIP-191 personal-message recovery via eth-account."""

    def recover(self, message_hash: bytes, signature: ClaimSignature) -> str:
        if signature.v not in _VALID_V:
            raise InvalidSigner(f"signature has invalid recovery id v={signature.v}")
        try:
            return Account.recover_message(
                encode_defunct(primitive=message_hash),
                vrs=(signature.v, signature.r, signature.s),
            )
        except (BadSignature, KeyValidationError, ValueError) as e:
            raise InvalidSigner(f"no signer can be recovered: {e}") from e


class ClaimSigner:
    """
    Produces and checks claim signatures.

    Private keys are 0x-hex secp256k1 keys; accounts are checksum addresses.
    """

    @staticmethod
    def message_hash(claimer: str, tx_id: str, amount: int) -> bytes:
        """The 32-byte hash a signer signs for one claim."""
        return keccak(encode_packed(["address", "string", "uint256"], [claimer, tx_id, amount]))

    @staticmethod
    def generate_key() -> Tuple[str, str]:
        """
        Generate a new secp256k1 keypair.

        Returns:
            Tuple of (private_key_hex, address)
        """
        account = Account.create()
        return "0x" + bytes(account.key).hex(), account.address

    @staticmethod
    def address_of(private_key: str) -> str:
        """Account address controlled by a private key."""
        try:
            return Account.from_key(private_key).address
        except (ValueError, TypeError, KeyValidationError) as e:
            raise ValidationError("Not a valid secp256k1 private key") from e

    @staticmethod
    def sign_claim(private_key: str, claimer: str, tx_id: str, amount: int) -> ClaimSignature:
        """
        Sign a claim.

        Args:
            private_key: Signer's 0x-hex private key
            claimer: Account that will receive the minted amount
            tx_id: Claim transaction identifier, redeemable once
            amount: Units to mint

        Returns:
            ClaimSignature over the EIP-191 wrapped claim hash
        """
        digest = ClaimSigner.message_hash(claimer, tx_id, amount)
        signed = Account.sign_message(encode_defunct(primitive=digest), private_key=private_key)
        return ClaimSignature(v=signed.v, r=signed.r, s=signed.s)

    @staticmethod
    def recover(
        claimer: str,
        tx_id: str,
        amount: int,
        signature: ClaimSignature,
        recoverer: Optional[SignatureRecoverer] = None,
    ) -> str:
        """Account that signed this claim. Raises InvalidSigner if none."""
        recoverer = recoverer or EthereumRecoverer()
        return recoverer.recover(ClaimSigner.message_hash(claimer, tx_id, amount), signature)
