import dataclasses
import hashlib
import random

import pytest
from pydantic import ValidationError

from fairflip.config import FairnessConfig
from fairflip.core import engine as engine_module
from fairflip.core.engine import (
    FairOutcomeEngine,
    Outcome,
    build_message,
    compute_digest,
    outcome_from_digest,
)
from fairflip.core.exceptions import PrimitiveUnavailable
from fairflip.core.seeds import SeedCommitment, generate_seed, hash_server_seed

GOLDEN_DIGEST = "2b1cf05b7055434ee54a65691e13dc8cf7f03984607f88b37320894076b99441"
GOLDEN_DIGEST_NONCE_1 = "a65a0f6a48985eadb95df86fa7017d58341122e301336ff8c69cd9f6aaf02561"


@pytest.fixture
def flip_engine():
    return FairOutcomeEngine()


def test_message_concatenates_without_separators():
    assert build_message("abc123de", "xyz789fg", 0) == "abc123dexyz789fg0"
    assert SeedCommitment("abc123de", "xyz789fg", 0).message == "abc123dexyz789fg0"
    assert build_message("a", "b", 42) == "ab42"


def test_golden_vector(flip_engine):
    record = flip_engine.compute_outcome(SeedCommitment("abc123de", "xyz789fg", 0))
    assert record.digest == GOLDEN_DIGEST
    # 0x2b = 43, odd
    assert record.outcome == Outcome.TAILS


def test_golden_vector_next_nonce(flip_engine):
    record = flip_engine.compute_outcome(SeedCommitment("abc123de", "xyz789fg", 1))
    assert record.digest == GOLDEN_DIGEST_NONCE_1
    # 0xa6 = 166, even
    assert record.outcome == Outcome.HEADS


def test_digest_is_lowercase_sha256_hex():
    digest = compute_digest("anything")
    assert digest == hashlib.sha256(b"anything").hexdigest()
    assert len(digest) == 64
    assert digest == digest.lower()


@pytest.mark.parametrize(
    "first_byte, expected",
    [("00", Outcome.HEADS), ("01", Outcome.TAILS), ("fe", Outcome.HEADS), ("ff", Outcome.TAILS)],
)
def test_outcome_uses_first_byte_parity(first_byte, expected):
    assert outcome_from_digest(first_byte + "0" * 62) == expected


def test_compute_outcome_is_deterministic(flip_engine):
    commitment = SeedCommitment.generate(nonce=7)
    first = flip_engine.compute_outcome(commitment)
    second = flip_engine.compute_outcome(commitment)
    assert first.digest == second.digest
    assert first.outcome == second.outcome
    assert first.nonce == 7


def test_record_carries_passthrough_fields(flip_engine):
    record = flip_engine.compute_outcome(
        SeedCommitment("s", "p", 3), match_id=1234, bet=50, creator="alice"
    )
    data = record.to_dict()
    assert data["match_id"] == 1234
    assert data["bet"] == 50
    assert data["creator"] == "alice"
    assert data["outcome"] in ("HEADS", "TAILS")
    assert data["server_seed_hash"] == hash_server_seed("s")


def test_settle_sees_the_outcome(flip_engine):
    seen = []

    def settle(outcome):
        seen.append(outcome)
        return {"winner": "alice" if outcome == Outcome.HEADS else "bob"}

    record = flip_engine.compute_outcome(SeedCommitment("abc123de", "xyz789fg", 0), settle=settle)
    assert seen == [Outcome.TAILS]
    assert record.details["winner"] == "bob"


def test_record_is_immutable(flip_engine):
    record = flip_engine.compute_outcome(SeedCommitment("s", "p", 0), bet=10)
    with pytest.raises(dataclasses.FrozenInstanceError):
        record.digest = "0" * 64
    with pytest.raises(TypeError):
        record.details["bet"] = 1_000_000


def test_self_check_passes(flip_engine):
    flip_engine.self_check()


def test_self_check_reports_missing_primitive(flip_engine, monkeypatch):
    def broken(*args, **kwargs):
        raise ValueError("unsupported hash type sha256")

    monkeypatch.setattr(engine_module.hashlib, "sha256", broken)
    with pytest.raises(PrimitiveUnavailable):
        flip_engine.self_check()


def test_outcome_distribution_is_balanced():
    prng = random.Random(20240601)
    samples = 100_000
    heads = 0
    for _ in range(samples):
        server_seed = f"{prng.getrandbits(128):032x}"
        player_seed = f"{prng.getrandbits(128):032x}"
        digest = compute_digest(build_message(server_seed, player_seed, 0))
        if outcome_from_digest(digest) == Outcome.HEADS:
            heads += 1
    assert abs(heads / samples - 0.5) < 0.01


def test_generated_seeds_are_128_bit_hex():
    seeds = {generate_seed() for _ in range(200)}
    assert len(seeds) == 200
    for seed in seeds:
        assert len(seed) == 32
        int(seed, 16)


def test_generate_commitment_uses_fresh_seeds():
    commitment = SeedCommitment.generate(nonce=0)
    assert commitment.server_seed != commitment.player_seed
    assert commitment.nonce == 0


def test_short_seeds_are_rejected_by_config():
    with pytest.raises(ValidationError):
        FairnessConfig(seed_bytes=8)
