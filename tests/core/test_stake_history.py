# tests/core/test_stake_history.py
import unittest

from liquid_tally.core.errors import InvalidCheckpoint, InvalidStake
from liquid_tally.core.stake import StakeHistory, StakeOracle


class TestStakeHistory(unittest.TestCase):

    def test_checkpoint_advances_per_mutation(self):
        stakes = StakeHistory()
        self.assertEqual(stakes.checkpoint(), 0)
        self.assertEqual(stakes.set_stake("A", 100), 1)
        self.assertEqual(stakes.add_stake("A", 50), 2)
        self.assertEqual(stakes.checkpoint(), 2)

    def test_balance_at_reads_the_balance_in_force(self):
        stakes = StakeHistory()
        stakes.set_stake("A", 100)   # checkpoint 1
        stakes.set_stake("B", 200)   # checkpoint 2
        stakes.set_stake("A", 10)    # checkpoint 3

        self.assertEqual(stakes.balance_at("A", 0), 0)
        self.assertEqual(stakes.balance_at("A", 1), 100)
        self.assertEqual(stakes.balance_at("A", 2), 100)
        self.assertEqual(stakes.balance_at("A", 3), 10)
        self.assertEqual(stakes.balance_at("B", 1), 0)
        self.assertEqual(stakes.balance_of("A"), 10)
        self.assertEqual(stakes.total_at(2), 300)

    def test_unknown_participant_has_no_balance(self):
        stakes = StakeHistory({"A": 1})
        self.assertEqual(stakes.balance_of("Z"), 0)
        self.assertEqual(stakes.balance_at("Z", 1), 0)
        self.assertNotIn("Z", stakes)

    def test_future_checkpoint_rejected(self):
        stakes = StakeHistory({"A": 1})
        with self.assertRaises(InvalidCheckpoint):
            stakes.balance_at("A", 5)

    def test_invalid_stakes_rejected(self):
        stakes = StakeHistory()
        with self.assertRaises(InvalidStake):
            stakes.set_stake("A", -1)
        with self.assertRaises(InvalidStake):
            stakes.set_stake("A", 1.5)
        with self.assertRaises(InvalidStake):
            stakes.set_stake("A", True)
        self.assertEqual(stakes.checkpoint(), 0)
        self.assertEqual(stakes.participants(), [])

    def test_initial_stakes_keep_insertion_order(self):
        stakes = StakeHistory({"C": 3, "A": 1, "B": 2})
        self.assertEqual(stakes.participants(), ["C", "A", "B"])
        self.assertIsInstance(stakes, StakeOracle)


if __name__ == '__main__':
    unittest.main()
