import threading
import time

import pytest

from fairflip.config import settings
from fairflip.core.archive import FlipArchive
from fairflip.core.commitment import FlipState
from fairflip.core.engine import FairOutcomeEngine, Outcome
from fairflip.core.exceptions import (
    InsufficientPoints,
    InvalidFlipState,
    InvalidMatchAction,
    MalformedInput,
    MatchNotFound,
    SequenceMisuse,
)
from fairflip.core.ledger import Ledger
from fairflip.core.matches import MatchManager
from fairflip.core.sequence import SequenceRegistry
from fairflip.core.verification import verify_record

START = settings.economy.starting_points


@pytest.fixture
def manager():
    return MatchManager(
        flip_engine=FairOutcomeEngine(),
        points=Ledger(),
        registry=SequenceRegistry(),
        archive=FlipArchive(retention_seconds=20),
    )


def _play(manager, bet=100, side="heads", seed="player-seed"):
    room = manager.create("alice", bet, side)
    manager.join(room.id, "bob")
    manager.submit_player_seed(room.id, "bob", seed)
    return manager.flip(room.id, "bob")


def test_create_takes_the_stake(manager):
    room = manager.create("alice", 100, "heads")
    assert 1000 <= room.id <= 9999
    assert room.creator_side == Outcome.HEADS
    assert manager.ledger.get_points("alice") == START - 100
    assert manager.list_active()[0]["id"] == room.id


@pytest.mark.parametrize("bet, side", [(0, "heads"), (-5, "heads"), (True, "heads"), (10, "edge")])
def test_create_rejects_bad_input(manager, bet, side):
    with pytest.raises(MalformedInput):
        manager.create("alice", bet, side)
    assert manager.ledger.get_points("alice") == START


def test_create_requires_points(manager):
    with pytest.raises(InsufficientPoints):
        manager.create("alice", START + 1, "heads")
    assert manager.list_active() == []


def test_join_commits_before_any_seed_is_known(manager):
    room = manager.create("alice", 100, "tails")
    manager.join(room.id, "bob")

    assert room.opponent == "bob"
    assert room.side_of("bob") == Outcome.HEADS
    assert manager.ledger.get_points("bob") == START - 100
    flip = room.to_dict()["flip"]
    assert flip["state"] == FlipState.COMMITTED.value
    assert flip["nonce"] == 0
    assert "server_seed" not in flip


def test_join_rules(manager):
    room = manager.create("alice", 100, "heads")
    with pytest.raises(InvalidMatchAction):
        manager.join(room.id, "alice")
    manager.join(room.id, "bob")
    with pytest.raises(InvalidMatchAction):
        manager.join(room.id, "carol")
    with pytest.raises(MatchNotFound):
        manager.join(1, "carol")


def test_join_without_points_releases_nonce(manager):
    room = manager.create("alice", 600, "heads")
    manager.ledger.debit("bob", START - 100)
    with pytest.raises(InsufficientPoints):
        manager.join(room.id, "bob")
    assert manager.sequences.get("alice").in_flight is None
    assert room.opponent is None


def test_flip_requires_player_seed(manager):
    room = manager.create("alice", 100, "heads")
    with pytest.raises(InvalidFlipState):
        manager.flip(room.id, "alice")
    manager.join(room.id, "bob")
    with pytest.raises(InvalidFlipState):
        manager.flip(room.id, "bob")


def test_only_participants_act(manager):
    room = manager.create("alice", 100, "heads")
    manager.join(room.id, "bob")
    with pytest.raises(InvalidMatchAction):
        manager.submit_player_seed(room.id, "mallory", "seed")
    manager.submit_player_seed(room.id, "bob", "seed")
    with pytest.raises(InvalidMatchAction):
        manager.flip(room.id, "mallory")


def test_flip_settles_and_archives(manager):
    record = _play(manager, bet=100, side="heads")

    winner = "alice" if record.outcome == Outcome.HEADS else "bob"
    loser = "bob" if winner == "alice" else "alice"
    assert record.details["winner"] == winner
    assert record.details["loser"] == loser
    assert record.details["amount_won"] == 200

    assert manager.ledger.get_points(winner) == START + 100
    assert manager.ledger.get_points(loser) == START - 100
    assert manager.ledger.snapshot(winner)["won"] == 200
    assert manager.ledger.snapshot(loser)["lost"] == 100
    assert manager.ledger.snapshot(loser)["wagered"] == 100

    assert manager.archive.get(record.match_id) is record
    assert manager.list_active() == []
    assert verify_record(record).valid


def test_host_sequence_advances_once_per_flip(manager):
    nonces = [_play(manager).nonce for _ in range(3)]
    assert nonces == [0, 1, 2]
    assert manager.sequences.get("alice").next_nonce == 3
    assert manager.sequences.get("bob").next_nonce == 0


def test_host_cannot_have_two_flips_in_flight(manager):
    first = manager.create("alice", 100, "heads")
    second = manager.create("alice", 100, "heads")
    manager.join(first.id, "bob")

    with pytest.raises(SequenceMisuse):
        manager.join(second.id, "carol")
    assert manager.ledger.get_points("carol") == START
    assert second.opponent is None


def test_omitted_player_seed_is_generated(manager):
    room = manager.create("alice", 100, "heads")
    manager.join(room.id, "bob")
    manager.submit_player_seed(room.id, "bob")
    assert len(room.session.player_seed) == 32


def test_cancel_refunds_host(manager):
    room = manager.create("alice", 100, "heads")
    with pytest.raises(InvalidMatchAction):
        manager.cancel(room.id, "bob")
    manager.cancel(room.id, "alice")
    assert manager.ledger.get_points("alice") == START
    with pytest.raises(MatchNotFound):
        manager.get(room.id)


def test_cancel_after_join_is_rejected(manager):
    room = manager.create("alice", 100, "heads")
    manager.join(room.id, "bob")
    with pytest.raises(InvalidMatchAction):
        manager.cancel(room.id, "alice")


def test_stale_matches_are_refunded(manager):
    waiting = manager.create("alice", 100, "heads")
    joined = manager.create("carol", 50, "tails")
    manager.join(joined.id, "dave")

    later = time.time() + settings.matches.stale_after_seconds + 1
    assert manager.cleanup_stale(now=later) == 2

    for player in ("alice", "carol", "dave"):
        assert manager.ledger.get_points(player) == START
    assert manager.sequences.get("carol").in_flight is None
    assert manager.sequences.get("carol").next_nonce == 0
    with pytest.raises(MatchNotFound):
        manager.get(waiting.id)


def test_fresh_matches_survive_cleanup(manager):
    manager.create("alice", 100, "heads")
    assert manager.cleanup_stale() == 0
    assert len(manager.list_active()) == 1


def test_late_join_restarts_the_stale_clock(manager):
    now = time.time()
    room = manager.create("alice", 100, "heads")
    room.created_at = now - settings.matches.stale_after_seconds + 0.5
    manager.join(room.id, "bob")
    manager.submit_player_seed(room.id, "bob", "player-seed")

    assert manager.cleanup_stale(now=now + 1) == 0
    assert manager.get(room.id).session.state == FlipState.PLAYER_SEEDED

    record = manager.flip(room.id, "bob")
    assert verify_record(record).valid
    assert manager.sequences.get("alice").next_nonce == 1


def test_joined_match_goes_stale_after_its_own_window(manager):
    room = manager.create("alice", 100, "heads")
    manager.join(room.id, "bob")

    later = room.joined_at + settings.matches.stale_after_seconds + 1
    assert manager.cleanup_stale(now=later) == 1
    assert manager.ledger.get_points("bob") == START


def test_flip_accepts_a_seed_inline(manager):
    room = manager.create("alice", 100, "heads")
    manager.join(room.id, "bob")

    record = manager.flip(room.id, "bob", player_seed="inline-seed")
    assert record.player_seed == "inline-seed"
    assert verify_record(record).valid


def test_inline_seed_does_not_replace_a_submitted_one(manager):
    room = manager.create("alice", 100, "heads")
    manager.join(room.id, "bob")
    manager.submit_player_seed(room.id, "bob", "first-seed")

    record = manager.flip(room.id, "alice", player_seed="second-seed")
    assert record.player_seed == "first-seed"


def test_concurrent_inline_seed_flips_settle_once(manager):
    room = manager.create("alice", 100, "heads")
    manager.join(room.id, "bob")
    barrier = threading.Barrier(2)
    records, errors = [], []

    def worker(username, seed):
        barrier.wait()
        try:
            records.append(manager.flip(room.id, username, player_seed=seed))
        except Exception as e:
            errors.append(e)

    threads = [
        threading.Thread(target=worker, args=("alice", "alice-seed")),
        threading.Thread(target=worker, args=("bob", "bob-seed")),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(records) == 1
    assert len(errors) == 1
    # The loser of the race finds the match already settled, never a half-seeded one
    assert isinstance(errors[0], MatchNotFound)
    assert records[0].player_seed in ("alice-seed", "bob-seed")
    assert manager.sequences.get("alice").next_nonce == 1
