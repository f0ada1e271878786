import unittest

from fairflip.config import settings
from fairflip.core.exceptions import InsufficientPoints, MalformedInput
from fairflip.core.ledger import Ledger


class TestLedger(unittest.TestCase):
    def setUp(self):
        self.ledger = Ledger()
        self.start = settings.economy.starting_points

    def test_new_accounts_get_starting_points(self):
        snapshot = self.ledger.snapshot("alice")
        self.assertEqual(snapshot["points"], self.start)
        self.assertEqual(snapshot["wagered"], 0)
        self.assertEqual(snapshot["games_played"], 0)

    def test_debit_tracks_wagered(self):
        self.assertEqual(self.ledger.debit("alice", 100), self.start - 100)
        self.assertEqual(self.ledger.snapshot("alice")["wagered"], 100)

    def test_overdraft_is_refused(self):
        with self.assertRaises(InsufficientPoints) as ctx:
            self.ledger.debit("alice", self.start + 1)
        self.assertEqual(ctx.exception.available, self.start)
        self.assertEqual(self.ledger.get_points("alice"), self.start)

    def test_refund_reverses_debit(self):
        self.ledger.debit("alice", 100)
        self.ledger.refund("alice", 100)
        snapshot = self.ledger.snapshot("alice")
        self.assertEqual(snapshot["points"], self.start)
        self.assertEqual(snapshot["wagered"], 0)

    def test_win_and_loss_stats(self):
        self.ledger.credit_win("alice", 200)
        self.ledger.record_loss("bob", 100)
        self.assertEqual(self.ledger.snapshot("alice")["won"], 200)
        self.assertEqual(self.ledger.snapshot("bob")["lost"], 100)
        self.assertEqual(self.ledger.snapshot("bob")["games_played"], 1)

    def test_amounts_must_be_positive_integers(self):
        for amount in (0, -1, 1.5, True):
            with self.subTest(amount=amount):
                with self.assertRaises(MalformedInput):
                    self.ledger.debit("alice", amount)


if __name__ == "__main__":
    unittest.main()
