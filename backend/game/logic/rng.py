"""
Random number generation for wall shuffling.

1. A cryptographic game seed (96 bytes) is generated once per game via secrets
2. Each round derives its own generator from SHA512(domain prefix + seed + round)
3. The wall is a Fisher-Yates shuffle driven by that generator

Storing the seed with the game state makes every round's wall reproducible.
"""

import hashlib
import random
import secrets

SEED_BYTES = 96
_DOMAIN_PREFIX = b"mahjong-wall-v1:"


def validate_seed_hex(seed_hex: str) -> None:
    """Raise ValueError unless seed_hex is exactly SEED_BYTES of hex."""
    expected_length = SEED_BYTES * 2
    if len(seed_hex) != expected_length:
        raise ValueError(f"Seed must be exactly {expected_length} hex characters, got {len(seed_hex)}")
    try:
        bytes.fromhex(seed_hex)
    except ValueError:
        raise ValueError("Seed contains invalid hex characters") from None


def generate_seed() -> str:
    """Generate a cryptographic seed as a hex string (192 chars)."""
    return secrets.token_bytes(SEED_BYTES).hex()


def create_round_rng(seed_hex: str, round_number: int) -> random.Random:
    """Derive the per-round generator for ``round_number`` from the game seed."""
    if not (0 <= round_number < 2**32):
        raise ValueError("round_number must be in [0, 2^32)")
    validate_seed_hex(seed_hex)
    data = bytes.fromhex(seed_hex) + round_number.to_bytes(4, byteorder="little")
    derived = hashlib.sha512(_DOMAIN_PREFIX + data).digest()
    return random.Random(int.from_bytes(derived, byteorder="little"))  # noqa: S311
