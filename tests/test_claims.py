"""
Tests for signature-authenticated claims.

Signatures are produced with real secp256k1 keys and recovered through
eth-account, the same path a wallet-signed claim takes.
"""

import threading

import pytest
from eth_utils import keccak

from astroforge.core import (
    ZERO_ADDRESS,
    AlreadyClaimed,
    ClaimSignature,
    ClaimSigner,
    FungibleLedger,
    InvalidAmount,
    InvalidClaimer,
    InvalidSigner,
    ValidationError,
)
from astroforge.observability import get_metrics
from astroforge.schemas import EventType


class TestClaimSignatures:

    def test_message_hash_is_packed_encoding(self, accounts):
        alice = accounts["alice"]
        expected = keccak(
            bytes.fromhex(alice[2:]) + b"order-17" + (500).to_bytes(32, "big")
        )
        assert ClaimSigner.message_hash(alice, "order-17", 500) == expected

    def test_message_hash_binds_every_field(self, accounts):
        alice, bob = accounts["alice"], accounts["bob"]
        base = ClaimSigner.message_hash(alice, "tx", 1)
        assert ClaimSigner.message_hash(bob, "tx", 1) != base
        assert ClaimSigner.message_hash(alice, "tx2", 1) != base
        assert ClaimSigner.message_hash(alice, "tx", 2) != base

    def test_sign_and_recover(self, keys, accounts):
        signature = ClaimSigner.sign_claim(keys["signer"], accounts["alice"], "tx", 10)
        assert signature.v in (27, 28)
        recovered = ClaimSigner.recover(accounts["alice"], "tx", 10, signature)
        assert recovered == accounts["signer"]

    def test_signature_hex_form(self, keys, accounts):
        signature = ClaimSigner.sign_claim(keys["signer"], accounts["alice"], "tx", 10)
        encoded = signature.to_hex()
        assert len(encoded) == 132
        assert ClaimSignature.from_hex(encoded) == signature
        assert ClaimSignature.from_hex(encoded[2:]) == signature

    def test_from_hex_rejects_malformed(self):
        with pytest.raises(ValidationError, match="65 bytes"):
            ClaimSignature.from_hex("0x1234")
        with pytest.raises(ValidationError, match="not valid hex"):
            ClaimSignature.from_hex("0x" + "zz" * 65)

    def test_from_bytes(self, keys, accounts):
        signature = ClaimSigner.sign_claim(keys["signer"], accounts["alice"], "tx", 10)
        raw = bytes.fromhex(signature.to_hex()[2:])
        assert ClaimSignature.from_bytes(raw) == signature
        with pytest.raises(ValidationError, match="65 bytes"):
            ClaimSignature.from_bytes(raw[:64])

    def test_invalid_recovery_id(self, keys, accounts):
        signature = ClaimSigner.sign_claim(keys["signer"], accounts["alice"], "tx", 10)
        bad = ClaimSignature(v=29, r=signature.r, s=signature.s)
        with pytest.raises(InvalidSigner, match="invalid recovery id"):
            ClaimSigner.recover(accounts["alice"], "tx", 10, bad)

    def test_unrecoverable_signature(self, accounts):
        with pytest.raises(InvalidSigner):
            ClaimSigner.recover(accounts["alice"], "tx", 10, ClaimSignature(v=27, r=0, s=0))

    def test_address_of(self, keys, accounts):
        assert ClaimSigner.address_of(keys["signer"]) == accounts["signer"]
        with pytest.raises(ValidationError):
            ClaimSigner.address_of("0xnot-a-key")

    def test_generate_key(self):
        private_key, address = ClaimSigner.generate_key()
        assert private_key.startswith("0x") and len(private_key) == 66
        assert ClaimSigner.address_of(private_key) == address


class TestClaim:

    @pytest.fixture
    def ledger(self, token, accounts):
        token.add_signer(accounts["owner"], accounts["signer"])
        return token

    @pytest.fixture
    def sign(self, keys):
        def _sign(claimer, tx_id, amount, key="signer"):
            return ClaimSigner.sign_claim(keys[key], claimer, tx_id, amount)
        return _sign

    def test_claim_mints_and_records(self, ledger, sign, accounts):
        alice = accounts["alice"]
        signature = sign(alice, "order-17", 500)

        signer = ledger.claim(alice, alice, "order-17", 500, signature)

        assert signer == accounts["signer"]
        assert ledger.balance_of(alice) == 500
        assert ledger.total_supply == 500
        assert ledger.is_claimed("order-17")
        assert ledger.claim_record("order-17") == {
            "claimer": alice,
            "amount": 500,
            "signer": accounts["signer"],
        }

        mint, redeemed = ledger.store.journal.list_all()[-2:]
        assert mint.event_type == EventType.TRANSFER
        assert redeemed.event_type == EventType.CLAIM_REDEEMED
        assert redeemed.payload["tx_id"] == "order-17"
        assert redeemed.payload["signer"] == accounts["signer"]

    def test_anyone_may_submit(self, ledger, sign, accounts):
        alice = accounts["alice"]
        ledger.claim(accounts["carol"], alice, "tx", 5, sign(alice, "tx", 5))
        assert ledger.balance_of(alice) == 5
        assert ledger.balance_of(accounts["carol"]) == 0

    def test_hex_signature_accepted(self, ledger, sign, accounts):
        alice = accounts["alice"]
        ledger.claim(alice, alice, "tx", 5, sign(alice, "tx", 5).to_hex())
        assert ledger.balance_of(alice) == 5

    def test_raw_bytes_signature_accepted(self, ledger, sign, accounts):
        alice = accounts["alice"]
        raw = bytes.fromhex(sign(alice, "tx", 5).to_hex()[2:])
        ledger.claim(alice, alice, "tx", 5, raw)
        assert ledger.balance_of(alice) == 5

    def test_zeroed_bytes_signature(self, ledger, accounts):
        alice = accounts["alice"]
        with pytest.raises(InvalidSigner):
            ledger.claim(alice, alice, "tx", 1, b"\x00" * 65)
        assert not ledger.is_claimed("tx")

    @pytest.mark.parametrize("signature", [b"\x01" * 64, 12345, None, [27, 1, 1]])
    def test_unsupported_signature_forms(self, ledger, accounts, signature):
        alice = accounts["alice"]
        with pytest.raises(ValidationError, match="Signature"):
            ledger.claim(alice, alice, "tx", 1, signature)
        assert not ledger.is_claimed("tx")
        assert ledger.balance_of(alice) == 0

    def test_replay_rejected(self, ledger, sign, accounts):
        alice = accounts["alice"]
        signature = sign(alice, "order-17", 500)
        ledger.claim(alice, alice, "order-17", 500, signature)

        with pytest.raises(AlreadyClaimed, match="order-17"):
            ledger.claim(alice, alice, "order-17", 500, signature)

        assert ledger.balance_of(alice) == 500

    def test_replay_rejected_for_other_parameters(self, ledger, sign, accounts):
        alice, bob = accounts["alice"], accounts["bob"]
        ledger.claim(alice, alice, "order-17", 500, sign(alice, "order-17", 500))

        with pytest.raises(AlreadyClaimed):
            ledger.claim(bob, bob, "order-17", 900, sign(bob, "order-17", 900))

        assert ledger.balance_of(bob) == 0
        assert ledger.claim_record("order-17")["claimer"] == alice

    def test_zero_claimer_checked_first(self, ledger, accounts):
        garbage = ClaimSignature(v=0, r=1, s=1)
        with pytest.raises(InvalidClaimer):
            ledger.claim(accounts["alice"], ZERO_ADDRESS, "tx", 0, garbage)

    def test_zero_amount_checked_before_signer(self, ledger, accounts):
        garbage = ClaimSignature(v=0, r=1, s=1)
        with pytest.raises(InvalidAmount):
            ledger.claim(accounts["alice"], accounts["alice"], "tx", 0, garbage)

    def test_unlisted_signer(self, ledger, sign, accounts):
        alice = accounts["alice"]
        signature = sign(alice, "tx", 5, key="bob")

        with pytest.raises(InvalidSigner, match=f"signer {accounts['bob']} is not valid"):
            ledger.claim(alice, alice, "tx", 5, signature)

        assert not ledger.is_claimed("tx")
        assert ledger.total_supply == 0

    def test_signature_bound_to_claimer(self, ledger, sign, accounts):
        signature = sign(accounts["alice"], "tx", 5)
        with pytest.raises(InvalidSigner):
            ledger.claim(accounts["bob"], accounts["bob"], "tx", 5, signature)

    def test_signature_bound_to_amount(self, ledger, sign, accounts):
        alice = accounts["alice"]
        signature = sign(alice, "tx", 5)
        with pytest.raises(InvalidSigner):
            ledger.claim(alice, alice, "tx", 5000, signature)

    def test_removed_signer_no_longer_valid(self, ledger, sign, accounts):
        alice = accounts["alice"]
        signature = sign(alice, "tx", 5)
        ledger.remove_signer(accounts["owner"], accounts["signer"])

        with pytest.raises(InvalidSigner):
            ledger.claim(alice, alice, "tx", 5, signature)

    def test_failed_claim_keeps_tx_id_redeemable(self, ledger, sign, accounts):
        alice = accounts["alice"]
        with pytest.raises(InvalidSigner):
            ledger.claim(alice, alice, "tx", 5, sign(alice, "tx", 5, key="bob"))

        ledger.claim(alice, alice, "tx", 5, sign(alice, "tx", 5))
        assert ledger.balance_of(alice) == 5

    def test_non_string_tx_id(self, ledger, accounts):
        with pytest.raises(ValidationError, match="tx_id"):
            ledger.claim(accounts["alice"], accounts["alice"], 17, 5, ClaimSignature(27, 1, 1))

    def test_claim_counted_in_metrics(self, ledger, sign, accounts):
        alice = accounts["alice"]
        before = get_metrics().get_summary()["claims_redeemed"]
        ledger.claim(alice, alice, "tx", 5, sign(alice, "tx", 5))
        assert get_metrics().get_summary()["claims_redeemed"] == before + 1

    def test_concurrent_redemptions_mint_once(self, ledger, sign, accounts):
        alice = accounts["alice"]
        signature = sign(alice, "race", 100)
        barrier = threading.Barrier(8)
        outcomes = []
        outcomes_lock = threading.Lock()

        def redeem():
            barrier.wait()
            try:
                ledger.claim(alice, alice, "race", 100, signature)
                result = "ok"
            except AlreadyClaimed:
                result = "replay"
            with outcomes_lock:
                outcomes.append(result)

        threads = [threading.Thread(target=redeem) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("replay") == 7
        assert ledger.balance_of(alice) == 100


class TestPluggableRecoverer:

    class FixedRecoverer:
        def __init__(self, address):
            self.address = address
            self.calls = []

        def recover(self, message_hash, signature):
            self.calls.append((message_hash, signature))
            return self.address

    def test_ledger_uses_injected_recoverer(self, store, accounts):
        recoverer = self.FixedRecoverer(accounts["signer"])
        ledger = FungibleLedger(store, accounts["owner"], recoverer=recoverer)
        ledger.add_signer(accounts["owner"], accounts["signer"])
        alice = accounts["alice"]

        ledger.claim(alice, alice, "tx", 3, ClaimSignature(v=27, r=1, s=1))

        assert ledger.balance_of(alice) == 3
        message_hash, _ = recoverer.calls[0]
        assert message_hash == ClaimSigner.message_hash(alice, "tx", 3)
