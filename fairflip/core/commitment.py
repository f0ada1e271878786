"""
Two-phase commit-reveal for a single flip.

    COMMITTED      server seed drawn, only sha256(server_seed) is public
    PLAYER_SEEDED  player seed received; the server can no longer pick its seed
    REVEALED       server seed disclosed, FlipRecord produced
"""

import re
from enum import Enum
from typing import Any, Callable, Dict, Optional

from fairflip.config import settings
from fairflip.core.engine import FairOutcomeEngine, FlipRecord, Outcome
from fairflip.core.exceptions import InvalidFlipState, MalformedInput
from fairflip.core.seeds import SeedCommitment, generate_seed, hash_server_seed

_PLAYER_SEED = re.compile(r"^[\x21-\x7e]+$")  # printable ASCII, no whitespace


class FlipState(str, Enum):
    COMMITTED = "committed"
    PLAYER_SEEDED = "player_seeded"
    REVEALED = "revealed"


def validate_player_seed(seed: Any) -> str:
    max_len = settings.matches.max_player_seed_length
    if not isinstance(seed, str) or not seed:
        raise MalformedInput("player_seed must be a non-empty string")
    if len(seed) > max_len:
        raise MalformedInput(f"player_seed must be at most {max_len} characters")
    if not _PLAYER_SEED.fullmatch(seed):
        raise MalformedInput("player_seed must be printable ASCII without whitespace")
    return seed


class FlipSession:
    def __init__(self, server_seed: str, nonce: int):
        self._server_seed = server_seed
        self.server_seed_hash = hash_server_seed(server_seed)
        self.nonce = nonce
        self.player_seed: Optional[str] = None
        self.record: Optional[FlipRecord] = None
        self.state = FlipState.COMMITTED

    @classmethod
    def commit(cls, nonce: int) -> "FlipSession":
        return cls(generate_seed(), nonce)

    def submit_player_seed(self, seed: str):
        if self.state != FlipState.COMMITTED:
            raise InvalidFlipState(f"Cannot accept a player seed in state {self.state.value}")
        self.player_seed = validate_player_seed(seed)
        self.state = FlipState.PLAYER_SEEDED

    def reveal(
        self,
        engine: FairOutcomeEngine,
        match_id: Any = None,
        settle: Optional[Callable[[Outcome], Dict[str, Any]]] = None,
        **details,
    ) -> FlipRecord:
        if self.state != FlipState.PLAYER_SEEDED:
            raise InvalidFlipState(f"Cannot reveal in state {self.state.value}")
        commitment = SeedCommitment(
            server_seed=self._server_seed,
            player_seed=self.player_seed,
            nonce=self.nonce,
        )
        self.record = engine.compute_outcome(
            commitment, match_id=match_id, settle=settle, **details
        )
        self.state = FlipState.REVEALED
        return self.record

    @property
    def server_seed(self) -> Optional[str]:
        """Only disclosed once revealed."""
        return self._server_seed if self.state == FlipState.REVEALED else None

    def public_view(self) -> Dict[str, Any]:
        view = {
            "state": self.state.value,
            "nonce": self.nonce,
            "server_seed_hash": self.server_seed_hash,
            "player_seed": self.player_seed,
        }
        if self.state == FlipState.REVEALED:
            view["server_seed"] = self._server_seed
            view["digest"] = self.record.digest
            view["outcome"] = self.record.outcome.value
        return view
