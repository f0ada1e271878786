"""
Independent verification of a disclosed flip.

Everything here is recomputed from the values handed in; no server state is
consulted, so a third party can run the same procedure with nothing but a
SHA-256 implementation.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from fairflip.core.engine import (
    FlipRecord,
    Outcome,
    build_message,
    compute_digest,
    outcome_from_digest,
)
from fairflip.core.exceptions import MalformedInput
from fairflip.core.logger import get_logger
from fairflip.core.seeds import hash_server_seed

logger = get_logger("verification")

_HEX_DIGEST = re.compile(r"^[0-9a-fA-F]{64}$")
_CANONICAL_NONCE = re.compile(r"^(0|[1-9][0-9]*)$")


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    reason: Optional[str] = None
    digest: Optional[str] = None
    outcome: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "reason": self.reason,
            "digest": self.digest,
            "outcome": self.outcome,
        }


def parse_seed(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise MalformedInput(f"{name} must be a non-empty string")
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        # Lone surrogates survive JSON decoding and surrogateescape argv
        raise MalformedInput(f"{name} must be valid UTF-8 text") from None
    return value


def parse_nonce(value: Any) -> int:
    """Non-negative int, or its canonical decimal string ("0", "17", never "007")."""
    if isinstance(value, bool):
        raise MalformedInput("nonce must be a non-negative integer")
    if isinstance(value, int):
        if value < 0:
            raise MalformedInput("nonce must be a non-negative integer")
        return value
    if isinstance(value, str) and _CANONICAL_NONCE.fullmatch(value):
        return int(value)
    raise MalformedInput("nonce must be a non-negative integer")


def parse_digest(name: str, value: Any) -> str:
    if not isinstance(value, str) or not _HEX_DIGEST.fullmatch(value):
        raise MalformedInput(f"{name} must be a 64 character hex string")
    return value


def parse_outcome(value: Any) -> Outcome:
    if isinstance(value, Outcome):
        return value
    if not isinstance(value, str):
        raise MalformedInput("outcome must be HEADS or TAILS")
    try:
        return Outcome.parse(value)
    except ValueError:
        raise MalformedInput("outcome must be HEADS or TAILS") from None


def verify(
    server_seed: Any,
    player_seed: Any,
    nonce: Union[int, str],
    claimed_digest: Any,
    claimed_outcome: Any,
    server_seed_hash: Optional[str] = None,
) -> VerificationResult:
    """
    Recompute digest and outcome from the disclosed values and compare them to
    the claims.

    Checks, in order: input shape, the optional pre-flip server seed
    commitment, the recomputed outcome against the claimed outcome, and the
    recomputed digest against the claimed digest (exact string equality).
    """
    try:
        server_seed = parse_seed("server_seed", server_seed)
        player_seed = parse_seed("player_seed", player_seed)
        nonce = parse_nonce(nonce)
        claimed_digest = parse_digest("digest", claimed_digest)
        claimed = parse_outcome(claimed_outcome)
        if server_seed_hash is not None:
            server_seed_hash = parse_digest("server_seed_hash", server_seed_hash)
    except MalformedInput as e:
        logger.info("Verification rejected malformed input", extra={"reason": str(e)})
        return VerificationResult(valid=False, reason=f"malformed input: {e}")

    digest = compute_digest(build_message(server_seed, player_seed, nonce))
    outcome = outcome_from_digest(digest)

    reason = None
    if server_seed_hash is not None and hash_server_seed(server_seed) != server_seed_hash:
        reason = "server seed hash mismatch"
    elif outcome != claimed:
        reason = "outcome mismatch"
    elif digest != claimed_digest:
        reason = "digest mismatch"

    if reason:
        logger.info("Verification failed", extra={"reason": reason, "nonce": nonce})
        return VerificationResult(
            valid=False, reason=reason, digest=digest, outcome=outcome.value
        )

    return VerificationResult(valid=True, digest=digest, outcome=outcome.value)


def verify_record(record: FlipRecord) -> VerificationResult:
    return verify(
        record.server_seed,
        record.player_seed,
        record.nonce,
        record.digest,
        record.outcome,
        server_seed_hash=record.server_seed_hash,
    )
