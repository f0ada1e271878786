"""
Head-to-head coin flip matches.

The host creates a match with a stake and a side, an opponent joins with the
same stake, and the flip runs through the commit-reveal protocol on the
server. Nonces come from the host's flip sequence.
"""

import threading
import time
from typing import Dict, List, Optional

from fairflip.config import settings
from fairflip.core.archive import FlipArchive, flip_archive
from fairflip.core.commitment import FlipSession, FlipState
from fairflip.core.engine import FairOutcomeEngine, FlipRecord, Outcome, engine
from fairflip.core.exceptions import (
    InvalidFlipState,
    InvalidMatchAction,
    MalformedInput,
    MatchNotFound,
    SequenceMisuse,
)
from fairflip.core.ledger import Ledger, ledger
from fairflip.core.logger import get_logger
from fairflip.core.rng import rng
from fairflip.core.seeds import generate_seed
from fairflip.core.sequence import SequenceRegistry, sequences

logger = get_logger("matches")

MATCH_ID_MIN = 1000
MATCH_ID_MAX = 9999
_MAX_ID_ATTEMPTS = 50


class MatchRoom:
    def __init__(self, match_id: int, creator: str, bet: int, creator_side: Outcome):
        self.id = match_id
        self.creator = creator
        self.bet = bet
        self.creator_side = creator_side
        self.opponent: Optional[str] = None
        self.session: Optional[FlipSession] = None
        self.created_at = time.time()
        self.joined_at: Optional[float] = None

    @property
    def participants(self) -> tuple:
        return (self.creator, self.opponent) if self.opponent else (self.creator,)

    def side_of(self, username: str) -> Outcome:
        if username == self.creator:
            return self.creator_side
        return Outcome.TAILS if self.creator_side == Outcome.HEADS else Outcome.HEADS

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "bet": self.bet,
            "creator": self.creator,
            "creator_side": self.creator_side.value,
            "opponent": self.opponent,
            "created_at": self.created_at,
            "joined_at": self.joined_at,
            "flip": self.session.public_view() if self.session else None,
        }


class MatchManager:
    def __init__(
        self,
        flip_engine: FairOutcomeEngine = engine,
        points: Ledger = ledger,
        registry: SequenceRegistry = sequences,
        archive: FlipArchive = flip_archive,
    ):
        self.engine = flip_engine
        self.ledger = points
        self.sequences = registry
        self.archive = archive
        self._matches: Dict[int, MatchRoom] = {}
        self._lock = threading.RLock()

    # ==================== Lookup ====================

    def get(self, match_id: int) -> MatchRoom:
        with self._lock:
            room = self._matches.get(match_id)
            if room is None:
                raise MatchNotFound(match_id)
            return room

    def list_active(self) -> List[Dict]:
        with self._lock:
            rooms = sorted(self._matches.values(), key=lambda r: r.created_at)
            return [room.to_dict() for room in rooms]

    def _new_id(self) -> int:
        for _ in range(_MAX_ID_ATTEMPTS):
            match_id = rng.random_int(MATCH_ID_MIN, MATCH_ID_MAX)
            if match_id not in self._matches and self.archive.get(match_id) is None:
                return match_id
        raise InvalidMatchAction("No free match ids, try again shortly")

    def _participant(self, room: MatchRoom, username: str):
        if username not in room.participants:
            raise InvalidMatchAction("Only match participants can do that")

    # ==================== Lifecycle ====================

    def create(self, creator: str, bet: int, side: str) -> MatchRoom:
        if isinstance(bet, bool) or not isinstance(bet, int) or bet < settings.economy.min_bet:
            raise MalformedInput(f"Bet must be an integer of at least {settings.economy.min_bet}")
        try:
            creator_side = Outcome.parse(side)
        except (ValueError, AttributeError):
            raise MalformedInput("Side must be 'heads' or 'tails'") from None

        with self._lock:
            match_id = self._new_id()
            self.ledger.debit(creator, bet)
            room = MatchRoom(match_id, creator, bet, creator_side)
            self._matches[match_id] = room

        logger.info(f"Match {match_id} created by {creator} for {bet} points")
        return room

    def join(self, match_id: int, username: str) -> MatchRoom:
        """Seat the opponent, take their stake and open the commit phase."""
        with self._lock:
            room = self.get(match_id)
            if username == room.creator:
                raise InvalidMatchAction("You cannot join your own match")
            if room.opponent is not None:
                raise InvalidMatchAction("Match already has an opponent")

            sequence = self.sequences.get(room.creator)
            nonce = sequence.begin()
            try:
                self.ledger.debit(username, room.bet)
            except Exception:
                sequence.abort(nonce)
                raise

            room.opponent = username
            room.session = FlipSession.commit(nonce)
            room.joined_at = time.time()

        logger.info(
            f"{username} joined match {match_id}",
            extra={"match_id": match_id, "nonce": nonce},
        )
        return room

    def submit_player_seed(self, match_id: int, username: str, seed: str = None) -> MatchRoom:
        """Record the player's seed. Omitted seeds are drawn server-side."""
        with self._lock:
            room = self.get(match_id)
            self._participant(room, username)
            if room.session is None:
                raise InvalidFlipState("Match is still waiting for an opponent")
            room.session.submit_player_seed(generate_seed() if seed is None else seed)
        return room

    def flip(self, match_id: int, username: str, player_seed: str = None) -> FlipRecord:
        """
        Reveal, settle stakes, consume the nonce and archive the record.

        `player_seed` is submitted first when the match has none yet, and is
        ignored once a seed is in.
        """
        with self._lock:
            room = self.get(match_id)
            self._participant(room, username)
            if room.session is None:
                raise InvalidFlipState("Match is still waiting for an opponent")
            if player_seed is not None and room.session.state == FlipState.COMMITTED:
                room.session.submit_player_seed(player_seed)
            if room.session.state != FlipState.PLAYER_SEEDED:
                raise InvalidFlipState("Player seed has not been submitted")

            pot = room.bet * settings.economy.payout_multiplier

            def settle(outcome: Outcome) -> Dict:
                winner = room.creator if outcome == room.creator_side else room.opponent
                loser = room.opponent if winner == room.creator else room.creator
                return {"winner": winner, "loser": loser, "amount_won": pot}

            record = room.session.reveal(
                self.engine,
                match_id=room.id,
                settle=settle,
                bet=room.bet,
                creator=room.creator,
                opponent=room.opponent,
                creator_side=room.creator_side.value,
            )
            self.sequences.get(room.creator).finalize(record.nonce)

            self.ledger.credit_win(record.details["winner"], pot)
            self.ledger.record_loss(record.details["loser"], room.bet)
            self.archive.put(record)
            del self._matches[match_id]

        logger.info(
            f"Match {match_id} flipped {record.outcome.value}, winner {record.details['winner']}",
            extra={"match_id": match_id, "nonce": record.nonce, "digest": record.digest},
        )
        return record

    def cancel(self, match_id: int, username: str):
        with self._lock:
            room = self.get(match_id)
            if username != room.creator:
                raise InvalidMatchAction("Only the host can cancel a match")
            if room.opponent is not None:
                raise InvalidMatchAction("Cannot cancel a match that has an opponent")
            self.ledger.refund(room.creator, room.bet)
            del self._matches[match_id]
        logger.info(f"Match {match_id} cancelled by {username}")

    def cleanup_stale(self, now: float = None) -> int:
        """
        Refund and drop matches that never finished.
        Joined matches age from the join, so a late opponent gets a full window.
        """
        if now is None:
            now = time.time()
        cutoff = now - settings.matches.stale_after_seconds
        with self._lock:
            stale = [
                r for r in self._matches.values()
                if (r.joined_at or r.created_at) <= cutoff
            ]
            for room in stale:
                for player in room.participants:
                    self.ledger.refund(player, room.bet)
                if room.session is not None:
                    try:
                        self.sequences.get(room.creator).abort(room.session.nonce)
                    except SequenceMisuse:
                        logger.warning(f"Stale match {room.id} held no nonce reservation")
                del self._matches[room.id]
        if stale:
            logger.info(f"Dropped {len(stale)} stale matches")
        return len(stale)

    def reset(self):
        with self._lock:
            self._matches.clear()


match_manager = MatchManager()
