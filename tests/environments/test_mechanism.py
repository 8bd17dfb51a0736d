# tests/environments/test_mechanism.py
import os
import tempfile
import threading
import unittest
from unittest import mock

import jax.random as jr

from liquid_tally import (
    CycleDetected,
    LiquidDemocracy,
    LiquidDemocracyConfig,
    LiquidTallyError,
    NotDelegating,
    Tally,
    StakeHistory,
    initialize_liquid_democracy,
    load_config_from_env,
)
from liquid_tally.environments.democracy.initialization import generate_random_operations

STAKES = {"A": 100, "B": 200, "C": 300}
CHECKED = LiquidDemocracyConfig(verify_invariants=True)


class TestLiquidDemocracyScenarios(unittest.TestCase):

    def test_scenario_simple_vote_count(self):
        ld = initialize_liquid_democracy(STAKES, [("A", "B")], config=CHECKED)
        ld.open_proposal(1)
        ld.vote(1, "B", True)
        ld.vote(1, "C", False)
        self.assertEqual(ld.tally(1), Tally(yes=300, no=300))

    def test_scenario_delegator_overrules(self):
        ld = initialize_liquid_democracy(STAKES, [("A", "B")], config=CHECKED)
        ld.open_proposal(1)
        ld.vote(1, "B", True)
        ld.vote(1, "A", False)
        self.assertEqual(ld.tally(1), Tally(yes=200, no=100))

    def test_scenario_chain_overrules(self):
        ld = initialize_liquid_democracy(STAKES, [("A", "B"), ("B", "C")], config=CHECKED)
        ld.open_proposal(1)
        ld.vote(1, "C", True)
        self.assertEqual(ld.tally(1), Tally(yes=600, no=0))
        ld.vote(1, "B", False)
        self.assertEqual(ld.tally(1), Tally(yes=300, no=300))
        ld.vote(1, "A", True)
        self.assertEqual(ld.tally(1), Tally(yes=400, no=200))

    def test_scenario_cycle_rejected(self):
        ld = initialize_liquid_democracy(
            {"A": 100, "B": 200, "C": 300, "D": 400},
            [("A", "B"), ("B", "C"), ("D", "A")],
            config=CHECKED,
        )
        with self.assertRaises(CycleDetected):
            ld.delegate("C", "D")

        self.assertIsNone(ld.delegate_of("C"))
        self.assertEqual(ld.delegate_of("D"), "A")
        self.assertEqual(ld.delegate_of("B"), "C")
        self.assertEqual(ld.delegate_of("A"), "B")
        self.assertEqual(ld.power("C"), 1000)
        self.assertEqual(ld.total_weight("B"), 700)
        self.assertEqual(ld.delegated_balance("B"), 500)

    def test_errors_share_a_base_class(self):
        ld = initialize_liquid_democracy(STAKES)
        with self.assertRaises(LiquidTallyError):
            ld.undelegate("A")
        with self.assertRaises(NotDelegating):
            ld.undelegate("A")

    def test_lenient_undelegate(self):
        ld = initialize_liquid_democracy(STAKES, config=LiquidDemocracyConfig(undelegate_policy="lenient"))
        ld.undelegate("A")
        self.assertEqual(ld.history.get_history(), [])

    def test_check_invariants(self):
        ld = initialize_liquid_democracy(STAKES, [("A", "B")])
        ld.open_proposal("p")
        ld.vote("p", "B", "yes")
        self.assertTrue(all(ld.check_invariants().values()))
        self.assertTrue(all(ld.check_invariants("p").values()))

    def test_stake_change_after_opening(self):
        ld = initialize_liquid_democracy(STAKES, [("A", "B")], config=CHECKED)
        ld.open_proposal(1)
        ld.set_stake("A", 1000)

        self.assertEqual(ld.power("B"), 1200)
        ld.vote(1, "B", True)
        self.assertEqual(ld.tally(1), Tally(yes=300, no=0))

        ld.open_proposal(2)
        ld.vote(2, "B", True)
        self.assertEqual(ld.tally(2), Tally(yes=1200, no=0))


    def test_stake_change_made_on_the_history(self):
        stakes = StakeHistory(STAKES)
        ld = LiquidDemocracy(stakes, config=CHECKED)
        ld.delegate("A", "B")
        stakes.set_stake("A", 1000)

        self.assertEqual(ld.total_weight("B"), 1200)
        self.assertEqual(ld.power("B"), 1200)
        self.assertTrue(all(ld.check_invariants().values()))


class TestRandomOperations(unittest.TestCase):

    def run_operations(self, seed, num_participants=10, num_operations=80):
        stakes, operations = generate_random_operations(
            jr.PRNGKey(seed), num_participants, num_operations, max_stake=500
        )
        ld = initialize_liquid_democracy(stakes, config=CHECKED)
        ld.open_proposal("first")

        for step, op in enumerate(operations):
            if step == num_operations // 2:
                ld.open_proposal("second")
            try:
                if op[0] == "delegate":
                    ld.delegate(op[1], op[2])
                elif op[0] == "undelegate":
                    ld.undelegate(op[1])
                else:
                    for proposal_id in ld.tallies.open_proposals():
                        ld.vote(proposal_id, op[1], op[2])
            except (CycleDetected, NotDelegating):
                pass
        return ld, stakes

    def test_invariants_hold_under_random_operations(self):
        for seed in range(2):
            ld, stakes = self.run_operations(seed)
            total = sum(stakes.values())
            self.assertEqual(sum(ld.power(p) for p in stakes), total)
            for proposal_id in ("first", "second"):
                results = ld.check_invariants(proposal_id)
                self.assertTrue(all(results.values()), (seed, proposal_id, results))
                self.assertLessEqual(ld.tally(proposal_id).total, total)

    def test_random_operations_are_deterministic(self):
        first = generate_random_operations(jr.PRNGKey(7), 5, 20)
        second = generate_random_operations(jr.PRNGKey(7), 5, 20)
        self.assertEqual(first, second)


class TestHistory(unittest.TestCase):

    def test_operations_are_recorded(self):
        ld = initialize_liquid_democracy(STAKES, [("A", "B")])
        ld.open_proposal(1)
        ld.vote(1, "B", True)
        ld.vote(1, "A", False)
        ld.undelegate("A")
        ld.close_proposal(1)

        df = ld.history.get_dataframe()
        self.assertEqual(list(df["operation"]), ["delegate", "open", "vote", "vote", "undelegate", "close"])

        trajectory = ld.history.tally_trajectory(1)
        self.assertEqual(list(trajectory["yes_total"]), [300, 200])
        self.assertEqual(list(trajectory["no_total"]), [0, 100])
        self.assertEqual(list(trajectory["choice"]), ["yes", "no"])

    def test_concurrent_operations_are_recorded_in_execution_order(self):
        ld = initialize_liquid_democracy(STAKES, [("A", "B")])
        ld.open_proposal(1)

        def voter(name):
            for i in range(50):
                ld.vote(1, name, i % 2 == 0)

        def mover():
            for i in range(50):
                ld.delegate("A", "C" if i % 2 == 0 else "B")

        threads = [threading.Thread(target=voter, args=(p,)) for p in ("B", "C")]
        threads.append(threading.Thread(target=mover))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        # Replaying the history in order must reproduce every recorded tally
        replay = initialize_liquid_democracy(STAKES, [("A", "B")], config=CHECKED)
        replay.open_proposal(1)
        entries = ld.history.get_history()[2:]
        self.assertEqual(len(entries), 150)
        for entry in entries:
            if entry["operation"] == "delegate":
                replay.delegate(entry["actor"], entry["target"])
            else:
                replay.vote(1, entry["actor"], entry["choice"])
                self.assertEqual(replay.tally(1), Tally(entry["yes_total"], entry["no_total"]))
        self.assertEqual(replay.tally(1), ld.tally(1))

    def test_history_is_bounded(self):
        ld = initialize_liquid_democracy(STAKES, config=LiquidDemocracyConfig(max_history=2))
        ld.delegate("A", "B")
        ld.delegate("A", "C")
        ld.delegate("B", "C")
        history = ld.history.get_history()
        self.assertEqual(len(history), 2)
        self.assertEqual(history[0]["sequence"], 2)

    def test_empty_history_frame(self):
        ld = LiquidDemocracy()
        self.assertTrue(ld.history.get_dataframe().empty)
        self.assertTrue(ld.history.tally_trajectory(1).empty)


class TestConfiguration(unittest.TestCase):

    def test_defaults(self):
        config = LiquidDemocracyConfig()
        self.assertTrue(config.strict_undelegate)
        self.assertFalse(config.verify_invariants)

    def test_validation(self):
        with self.assertRaises(ValueError):
            LiquidDemocracyConfig(undelegate_policy="sometimes")
        with self.assertRaises(ValueError):
            LiquidDemocracyConfig(max_history=0)
        with self.assertRaises(ValueError):
            LiquidDemocracyConfig(log_level="LOUD")

    def test_load_from_env(self):
        env = {
            "LIQUID_TALLY_UNDELEGATE_POLICY": "lenient",
            "LIQUID_TALLY_VERIFY_INVARIANTS": "true",
            "LIQUID_TALLY_MAX_HISTORY": "50",
            "LIQUID_TALLY_LOG_LEVEL": "debug",
        }
        with mock.patch.dict(os.environ, env):
            config = load_config_from_env(os.devnull)

        self.assertEqual(config.undelegate_policy, "lenient")
        self.assertTrue(config.verify_invariants)
        self.assertEqual(config.max_history, 50)
        self.assertEqual(config.log_level, "debug")

    def test_load_from_dotenv_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, ".env")
            with open(path, "w") as f:
                f.write("LIQUID_TALLY_VERIFY_INVARIANTS=on\n")
            with mock.patch.dict(os.environ, {}, clear=False):
                os.environ.pop("LIQUID_TALLY_VERIFY_INVARIANTS", None)
                config = load_config_from_env(path)
        self.assertTrue(config.verify_invariants)

    def test_bad_boolean_in_env(self):
        with mock.patch.dict(os.environ, {"LIQUID_TALLY_VERIFY_INVARIANTS": "perhaps"}):
            with self.assertRaises(ValueError):
                load_config_from_env(os.devnull)


if __name__ == '__main__':
    unittest.main()
