#!/usr/bin/env python3
"""
AstroForge Management CLI

Commands for operating the ledgers:
- generate-key: Generate a secp256k1 key (owner or claim signer)
- claim-hash: Print the message hash a signer signs for a claim
- sign-claim: Sign a claim with a private key
- recover-claim: Recover the signer account of a claim signature
- verify-journal: Deploy a platform from the environment and verify its journal
- health-check: Run health checks against a freshly deployed platform

Usage:
    python -m tools.manage <command> [options]

Examples:
    python -m tools.manage generate-key
    python -m tools.manage sign-claim --key 0x... --claimer 0x... --tx-id order-17 --amount 500
    python -m tools.manage recover-claim --claimer 0x... --tx-id order-17 --amount 500 --signature 0x...
"""

import argparse
import json
import os
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


def cmd_generate_key(args):
    """Generate a secp256k1 keypair."""
    from astroforge.core.signer import ClaimSigner

    private_key, address = ClaimSigner.generate_key()
    print("[OK] Key generated")
    print(f"  Address: {address}")
    print("\n  Private key (KEEP SECRET!):")
    print(f"  {private_key}")
    print("\n  Set one of these environment variables:")
    print(f"  ASTROFORGE_OWNER_PRIVATE_KEY={private_key}")
    print(f"  ASTROFORGE_CLAIM_SIGNER_KEY={private_key}")


def cmd_claim_hash(args):
    """Print the claim message hash."""
    from astroforge.core import ClaimSigner, normalize_address

    claimer = normalize_address(args.claimer)
    digest = ClaimSigner.message_hash(claimer, args.tx_id, args.amount)
    print("0x" + digest.hex())


def cmd_sign_claim(args):
    """Sign a claim."""
    from astroforge.core import ClaimSigner, normalize_address

    private_key = args.key or os.environ.get("ASTROFORGE_CLAIM_SIGNER_KEY", "")
    if not private_key:
        print("Error: pass --key or set ASTROFORGE_CLAIM_SIGNER_KEY")
        return 1

    claimer = normalize_address(args.claimer)
    signature = ClaimSigner.sign_claim(private_key, claimer, args.tx_id, args.amount)
    if args.json:
        print(json.dumps({
            "claimer": claimer,
            "tx_id": args.tx_id,
            "amount": args.amount,
            "signer": ClaimSigner.address_of(private_key),
            "v": signature.v,
            "r": hex(signature.r),
            "s": hex(signature.s),
            "signature": signature.to_hex(),
        }, indent=2))
    else:
        print(signature.to_hex())


def cmd_recover_claim(args):
    """Recover the signer of a claim signature."""
    from astroforge.core import ClaimSignature, ClaimSigner, LedgerError, normalize_address

    try:
        claimer = normalize_address(args.claimer)
        signature = ClaimSignature.from_hex(args.signature)
        signer = ClaimSigner.recover(claimer, args.tx_id, args.amount, signature)
    except LedgerError as e:
        print(f"[FAIL] {type(e).__name__}: {e}")
        return 1
    print(f"[OK] Signed by {signer}")


def cmd_verify_journal(args):
    """Deploy a platform from the environment and verify its journal."""
    from astroforge.platform import create_platform

    print("Deploying platform...")
    platform = create_platform()
    journal = platform.store.journal
    print(f"Journal loaded: {journal.event_count} events")

    if journal.verify_chain_integrity():
        head = journal.get_head()
        print("[OK] Chain integrity verified OK")
        if head.last_event_hash:
            print(f"  Chain head: {head.last_event_hash[:16]}...")
        return 0
    print("[FAIL] Chain integrity verification FAILED!")
    return 1


def cmd_health_check(args):
    """Run comprehensive health checks."""
    from astroforge.observability import check_health
    from astroforge.platform import create_platform

    print("=== AstroForge Health Check ===\n")

    platform = create_platform()
    status = check_health(platform, verify_chain=True)
    for name, check in status.checks.items():
        marker = "[OK]" if check.get("status") == "healthy" else "[WARN]"
        print(f"  {name}: {marker} {check.get('status')}")

    print("\nEnvironment:")
    for var, label in (
        ("ASTROFORGE_OWNER_PRIVATE_KEY", "Owner key"),
        ("ASTROFORGE_CLAIM_SIGNER_KEY", "Claim signer key"),
    ):
        if os.environ.get(var):
            print(f"  {label}: [OK] Set")
        else:
            print(f"  {label}: [WARN] Using ephemeral (development)")

    print("\n=== Health Check Complete ===")
    return 0 if status.healthy else 1


def _add_claim_args(parser):
    parser.add_argument("--claimer", required=True, help="Claimer account address")
    parser.add_argument("--tx-id", required=True, help="Claim transaction identifier")
    parser.add_argument("--amount", required=True, type=int, help="Units to mint")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="AstroForge Management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("generate-key", help="Generate a secp256k1 keypair")

    p_hash = subparsers.add_parser("claim-hash", help="Print a claim's message hash")
    _add_claim_args(p_hash)

    p_sign = subparsers.add_parser("sign-claim", help="Sign a claim")
    _add_claim_args(p_sign)
    p_sign.add_argument("--key", help="Signer private key (default: ASTROFORGE_CLAIM_SIGNER_KEY)")
    p_sign.add_argument("--json", action="store_true", help="Print v, r, s and the signer as JSON")

    p_recover = subparsers.add_parser("recover-claim", help="Recover a claim's signer")
    _add_claim_args(p_recover)
    p_recover.add_argument("--signature", required=True, help="0x-hex r || s || v")

    subparsers.add_parser("verify-journal", help="Verify event journal chain integrity")
    subparsers.add_parser("health-check", help="Run comprehensive health checks")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "generate-key": cmd_generate_key,
        "claim-hash": cmd_claim_hash,
        "sign-claim": cmd_sign_claim,
        "recover-claim": cmd_recover_claim,
        "verify-journal": cmd_verify_journal,
        "health-check": cmd_health_check,
    }

    return commands[args.command](args) or 0


if __name__ == "__main__":
    sys.exit(main())
