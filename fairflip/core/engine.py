"""
Provably fair outcome engine.

digest  = sha256(server_seed + player_seed + str(nonce)), lowercase hex
outcome = HEADS if the first digest byte is even, TAILS if odd

The functions at module level are pure and depend only on publicly
disclosed values, so anyone can re-run them to check a FlipRecord.
"""

import hashlib
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

from fairflip.core.exceptions import PrimitiveUnavailable
from fairflip.core.logger import get_logger
from fairflip.core.seeds import SeedCommitment, hash_server_seed

logger = get_logger("engine")

DIGEST_HEX_LENGTH = 64

# Known-answer vector checked at startup
_KAT_MESSAGE = "abc123dexyz789fg0"
_KAT_DIGEST = "2b1cf05b7055434ee54a65691e13dc8cf7f03984607f88b37320894076b99441"


class Outcome(str, Enum):
    HEADS = "HEADS"
    TAILS = "TAILS"

    @classmethod
    def parse(cls, value: str) -> "Outcome":
        """Accepts any casing ("heads", "Tails"). Raises ValueError otherwise."""
        return cls(value.strip().upper())


def build_message(server_seed: str, player_seed: str, nonce: int) -> str:
    return f"{server_seed}{player_seed}{nonce}"


def compute_digest(message: str) -> str:
    return hashlib.sha256(message.encode("utf-8")).hexdigest()


def outcome_from_digest(digest: str) -> Outcome:
    first_byte = int(digest[:2], 16)
    return Outcome.HEADS if first_byte % 2 == 0 else Outcome.TAILS


@dataclass(frozen=True)
class FlipRecord:
    """Immutable, publicly verifiable record of one completed flip."""

    match_id: Any
    server_seed: str
    player_seed: str
    nonce: int
    digest: str
    outcome: Outcome
    server_seed_hash: str
    created_at: float
    details: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.details,
            "match_id": self.match_id,
            "server_seed": self.server_seed,
            "player_seed": self.player_seed,
            "nonce": self.nonce,
            "digest": self.digest,
            "outcome": self.outcome.value,
            "server_seed_hash": self.server_seed_hash,
            "created_at": self.created_at,
        }


class FairOutcomeEngine:
    """Turns a SeedCommitment into a FlipRecord. Holds no mutable state."""

    def self_check(self):
        """
        Verify the hash primitive works and matches the known-answer vector.
        Raises PrimitiveUnavailable; callers treat that as a fatal startup error.
        """
        try:
            digest = compute_digest(_KAT_MESSAGE)
        except (AttributeError, ValueError) as e:
            raise PrimitiveUnavailable(f"sha256 unavailable: {e}") from e
        if digest != _KAT_DIGEST:
            raise PrimitiveUnavailable("sha256 known-answer test failed")
        logger.info("sha256 known-answer test passed")

    def compute_outcome(
        self,
        commitment: SeedCommitment,
        match_id: Any = None,
        created_at: Optional[float] = None,
        settle: Optional[Callable[[Outcome], Dict[str, Any]]] = None,
        **details,
    ) -> FlipRecord:
        """
        Derive digest and outcome for `commitment`.

        Extra keyword arguments (bet, participants, ...) are carried on the
        record untouched. `settle`, if given, is called with the outcome and
        its result (winner, payout) is merged into those details so the record
        is complete when created. Advancing the nonce is the caller's job.
        """
        digest = compute_digest(commitment.message)
        outcome = outcome_from_digest(digest)
        if settle is not None:
            details.update(settle(outcome))

        record = FlipRecord(
            match_id=match_id,
            server_seed=commitment.server_seed,
            player_seed=commitment.player_seed,
            nonce=commitment.nonce,
            digest=digest,
            outcome=outcome,
            server_seed_hash=hash_server_seed(commitment.server_seed),
            created_at=time.time() if created_at is None else created_at,
            details=MappingProxyType(dict(details)),
        )
        logger.debug(
            "Outcome computed",
            extra={"match_id": match_id, "nonce": commitment.nonce, "outcome": outcome.value},
        )
        return record


engine = FairOutcomeEngine()
