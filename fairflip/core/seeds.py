"""
Seed material for a single flip.

A flip consumes two independently drawn seeds plus the nonce of the sequence
it belongs to. Seeds are hex strings from the CSPRNG, at least 128 bits each.
"""

import hashlib
from dataclasses import dataclass

from fairflip.config import settings
from fairflip.core.rng import rng


def generate_seed(num_bytes: int = None) -> str:
    """Draw a fresh seed. Never reuse the result for another flip."""
    if num_bytes is None:
        num_bytes = settings.fairness.seed_bytes
    return rng.token_hex(num_bytes)


def hash_server_seed(server_seed: str) -> str:
    """The commitment published before the player supplies a seed."""
    return hashlib.sha256(server_seed.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SeedCommitment:
    server_seed: str
    player_seed: str
    nonce: int

    @classmethod
    def generate(cls, nonce: int) -> "SeedCommitment":
        return cls(server_seed=generate_seed(), player_seed=generate_seed(), nonce=nonce)

    @property
    def message(self) -> str:
        # Order and the absence of separators are part of the protocol
        return f"{self.server_seed}{self.player_seed}{self.nonce}"
