"""
Per-sequence nonce counters.

Each sequence allows at most one flip in flight. A flip reserves the next
nonce with begin(), and finalize() consumes it once the record exists, so
nonces in a sequence are strictly increasing and never repeat.
"""

import threading
from typing import Dict, Optional

from fairflip.core.exceptions import SequenceMisuse
from fairflip.core.logger import get_logger

logger = get_logger("sequence")


class FlipSequence:
    def __init__(self, sequence_id: str):
        self.sequence_id = sequence_id
        self._last_finalized: Optional[int] = None
        self._in_flight: Optional[int] = None
        self._lock = threading.Lock()

    @property
    def next_nonce(self) -> int:
        with self._lock:
            return self._expected()

    @property
    def last_finalized(self) -> Optional[int]:
        return self._last_finalized

    @property
    def in_flight(self) -> Optional[int]:
        return self._in_flight

    def _expected(self) -> int:
        return 0 if self._last_finalized is None else self._last_finalized + 1

    def _misuse(self, message: str) -> SequenceMisuse:
        logger.warning(
            "Sequence misuse", extra={"sequence_id": self.sequence_id, "detail": message}
        )
        return SequenceMisuse(self.sequence_id, message)

    def begin(self) -> int:
        """Reserve the next nonce for a new flip."""
        with self._lock:
            if self._in_flight is not None:
                raise self._misuse(f"nonce {self._in_flight} is still in flight")
            self._in_flight = self._expected()
            return self._in_flight

    def finalize(self, nonce: int):
        """Consume `nonce`. It must be the reserved one and equal last + 1."""
        with self._lock:
            expected = self._expected()
            if nonce != expected:
                raise self._misuse(f"expected nonce {expected}, got {nonce}")
            if self._in_flight != nonce:
                raise self._misuse(f"nonce {nonce} was not reserved")
            self._last_finalized = nonce
            self._in_flight = None

    def abort(self, nonce: int):
        """Release a reservation without consuming the nonce."""
        with self._lock:
            if self._in_flight != nonce:
                raise self._misuse(f"nonce {nonce} was not reserved")
            self._in_flight = None


class SequenceRegistry:
    """Sequences keyed by id, created on first use."""

    def __init__(self):
        self._sequences: Dict[str, FlipSequence] = {}
        self._lock = threading.Lock()

    def get(self, sequence_id: str) -> FlipSequence:
        with self._lock:
            sequence = self._sequences.get(sequence_id)
            if sequence is None:
                sequence = FlipSequence(sequence_id)
                self._sequences[sequence_id] = sequence
            return sequence

    def reset(self):
        with self._lock:
            self._sequences.clear()


sequences = SequenceRegistry()
