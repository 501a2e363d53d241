"""
Canonical Hashing Service

Deterministic serialization and SHA-256 hashing of journal facts.
Same fact, same hash. The event journal's chain depends on it.

CANONICAL SERIALIZATION RULES:
1. Version: "__canon_v" injected into every canonical output (first key when sorted)
2. Dictionary keys: must be strings, sorted recursively
3. Nulls: omitted entirely
4. Empty strings and empty containers: preserved
5. Integers: arbitrary precision (uint256 amounts serialize exactly)
6. Enums: string value (not name)
7. Floats: BANNED
8. Sets and bytes: BANNED (no stable representation)
9. JSON output: no whitespace, sorted keys, ASCII only
10. Top-level: must be a dict
"""

import hashlib
import hmac
import json
from enum import Enum
from typing import Any


class CanonicalSerializationError(Exception):
    """Raised when data cannot be canonically serialized."""
    pass


class Hasher:
    """
    Canonical serialization and hashing.

    If the serialization rules change, SERIALIZATION_VERSION must change
    with them, otherwise old journals stop verifying.
    """

    SERIALIZATION_VERSION = 1

    @classmethod
    def _serialize_value(cls, value: Any, path: str = "") -> Any:
        if value is None:
            return None

        # Enum before str: Role and EventType are str enums
        if isinstance(value, Enum):
            return value.value

        if isinstance(value, (bool, int, str)):
            return value

        if isinstance(value, float):
            raise CanonicalSerializationError(
                f"Cannot serialize float at {path}. "
                "Amounts are integers; floats are banned in canonical payloads."
            )

        if isinstance(value, (list, tuple)):
            return [
                cls._serialize_value(v, f"{path}[{i}]")
                for i, v in enumerate(value)
            ]

        if isinstance(value, dict):
            return cls._to_canonical_dict(value, path)

        if hasattr(value, "model_dump"):
            return cls._to_canonical_dict(value.model_dump(mode="python"), path)

        if isinstance(value, (set, frozenset)):
            raise CanonicalSerializationError(
                f"Cannot serialize set at {path}. Sets have no stable ordering."
            )

        if isinstance(value, (bytes, bytearray)):
            raise CanonicalSerializationError(
                f"Cannot serialize bytes at {path}. Convert to 0x-hex first."
            )

        raise CanonicalSerializationError(
            f"Cannot serialize {type(value).__name__} at {path}."
        )

    @classmethod
    def _to_canonical_dict(cls, data: dict[str, Any], path: str = "") -> dict[str, Any]:
        result = {}
        for key in sorted(data.keys(), key=str):
            if not isinstance(key, str):
                raise CanonicalSerializationError(
                    f"Dictionary key at {path} must be string, "
                    f"got {type(key).__name__}"
                )
            key_path = f"{path}.{key}" if path else key
            serialized = cls._serialize_value(data[key], key_path)
            if serialized is not None:
                result[key] = serialized
        return result

    @classmethod
    def canonicalize(cls, data: Any) -> str:
        """
        Convert a dict (or pydantic model) to its canonical JSON string.

        Raises:
            CanonicalSerializationError: If data cannot be serialized deterministically
        """
        if hasattr(data, "model_dump"):
            data = data.model_dump(mode="python")

        if not isinstance(data, dict):
            raise CanonicalSerializationError(
                f"Top-level canonicalization requires a dict, "
                f"got {type(data).__name__}."
            )

        canonical_dict = {
            "__canon_v": cls.SERIALIZATION_VERSION,
            **cls._to_canonical_dict(data),
        }
        return json.dumps(
            canonical_dict,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=True,
            allow_nan=False,
        )

    @classmethod
    def hash_data(cls, data: Any) -> str:
        """Hex-encoded SHA-256 of the canonical form."""
        canonical = cls.canonicalize(data)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    @classmethod
    def hash_event(cls, body: dict[str, Any], previous_hash: str | None = None) -> str:
        """
        Hash a journal fact with chain linkage.

        FORMAT:
        - Genesis: SHA256(canonical_body)
        - Chained: SHA256(previous_hash + ":" + canonical_body)
        """
        canonical_body = cls.canonicalize(body)

        if previous_hash is None:
            chain_input = canonical_body
        else:
            if len(previous_hash) != 64 or not all(
                c in "0123456789abcdef" for c in previous_hash.lower()
            ):
                raise CanonicalSerializationError(
                    f"Invalid previous_hash format: {previous_hash}. "
                    "Must be 64 hex characters."
                )
            chain_input = f"{previous_hash.lower()}:{canonical_body}"

        return hashlib.sha256(chain_input.encode("utf-8")).hexdigest()

    @classmethod
    def verify_chain(
        cls,
        body: dict[str, Any],
        expected_hash: str,
        previous_hash: str | None = None,
    ) -> bool:
        """True if body hashes to expected_hash under previous_hash."""
        try:
            computed = cls.hash_event(body, previous_hash)
        except CanonicalSerializationError:
            return False
        return hmac.compare_digest(computed, expected_hash.lower())
