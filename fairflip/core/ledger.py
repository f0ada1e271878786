"""
Server-authoritative points ledger.

Clients only ever see balances confirmed here; they never submit them.
Kept in memory: persistence and replication are out of scope.
"""

import threading
from dataclasses import asdict, dataclass
from typing import Dict

from fairflip.config import settings
from fairflip.core.exceptions import InsufficientPoints, MalformedInput
from fairflip.core.logger import get_logger

logger = get_logger("ledger")


@dataclass
class Account:
    username: str
    points: int
    wagered: int = 0
    won: int = 0
    lost: int = 0
    games_played: int = 0


class Ledger:
    """Thread-safe points bookkeeping keyed by username."""

    def __init__(self):
        self._accounts: Dict[str, Account] = {}
        self._lock = threading.Lock()

    def _account(self, username: str) -> Account:
        account = self._accounts.get(username)
        if account is None:
            account = Account(username=username, points=settings.economy.starting_points)
            self._accounts[username] = account
        return account

    def snapshot(self, username: str) -> Dict:
        with self._lock:
            return asdict(self._account(username))

    def get_points(self, username: str) -> int:
        with self._lock:
            return self._account(username).points

    def debit(self, username: str, amount: int) -> int:
        """Take a stake. Counts toward `wagered`."""
        _check_amount(amount)
        with self._lock:
            account = self._account(username)
            if account.points < amount:
                raise InsufficientPoints(username, amount, account.points)
            account.points -= amount
            account.wagered += amount
            logger.debug(f"Debited {amount} from {username}, balance {account.points}")
            return account.points

    def refund(self, username: str, amount: int) -> int:
        """Return a stake from a match that never flipped."""
        _check_amount(amount)
        with self._lock:
            account = self._account(username)
            account.points += amount
            account.wagered -= amount
            return account.points

    def credit_win(self, username: str, amount: int) -> int:
        _check_amount(amount)
        with self._lock:
            account = self._account(username)
            account.points += amount
            account.won += amount
            account.games_played += 1
            return account.points

    def record_loss(self, username: str, amount: int):
        with self._lock:
            account = self._account(username)
            account.lost += amount
            account.games_played += 1

    def reset(self):
        with self._lock:
            self._accounts.clear()


def _check_amount(amount: int):
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise MalformedInput("amount must be a positive integer")


ledger = Ledger()
