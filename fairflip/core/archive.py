"""
Short-lived archive of finished flips, keyed by match id.

Retention is a display convenience only: an evicted record can still be
verified by anyone who kept its disclosed values.
"""

import threading
import time
from typing import Callable, Dict, List, Optional

from fairflip.config import settings
from fairflip.core.engine import FlipRecord
from fairflip.core.logger import get_logger

logger = get_logger("archive")


class FlipArchive:
    def __init__(self, retention_seconds: float = None, clock: Callable[[], float] = time.time):
        self._retention = retention_seconds
        self._clock = clock
        self._records: Dict[str, FlipRecord] = {}
        self._ended_at: Dict[str, float] = {}
        self._lock = threading.Lock()

    @property
    def retention_seconds(self) -> float:
        if self._retention is not None:
            return self._retention
        return settings.fairness.archive_retention_seconds

    def put(self, record: FlipRecord):
        key = str(record.match_id)
        with self._lock:
            self._records[key] = record
            self._ended_at[key] = self._clock()

    def get(self, match_id) -> Optional[FlipRecord]:
        """Returns None for unknown or expired ids."""
        key = str(match_id)
        with self._lock:
            ended_at = self._ended_at.get(key)
            if ended_at is None or self._expired(ended_at, self._clock()):
                return None
            return self._records[key]

    def recent(self) -> List[dict]:
        """Unexpired records, newest first, with seconds left before they hide."""
        now = self._clock()
        with self._lock:
            live = [
                (ended_at, self._records[key])
                for key, ended_at in self._ended_at.items()
                if not self._expired(ended_at, now)
            ]
        live.sort(key=lambda item: item[0], reverse=True)
        return [
            {
                **record.to_dict(),
                "ended_at": ended_at,
                "expires_in": max(0.0, round(ended_at + self.retention_seconds - now, 1)),
            }
            for ended_at, record in live
        ]

    def evict_expired(self, now: float = None) -> int:
        if now is None:
            now = self._clock()
        with self._lock:
            expired = [k for k, t in self._ended_at.items() if self._expired(t, now)]
            for key in expired:
                del self._records[key]
                del self._ended_at[key]
        if expired:
            logger.debug(f"Evicted {len(expired)} archived flips")
        return len(expired)

    def reset(self):
        with self._lock:
            self._records.clear()
            self._ended_at.clear()

    def __len__(self):
        with self._lock:
            return len(self._records)

    def _expired(self, ended_at: float, now: float) -> bool:
        return ended_at <= now - self.retention_seconds


flip_archive = FlipArchive()
