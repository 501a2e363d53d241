"""
AstroForge - role-gated asset platform.

A fungible value ledger (Velox) with signature-authenticated claim minting,
and a non-fungible asset registry (Holo-V) supporting mint, upgrade, forge
and burn, settling forge fees against the fungible ledger.
"""

__version__ = "0.1.0"
