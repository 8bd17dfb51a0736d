# environments/democracy/mechanism.py

"""
Liquid democracy mechanism.

`LiquidDemocracy` wires the delegation graph, the vote tally engine, the
operation history and the invariant verifier together behind the interface
the surrounding system (proposal lifecycle, transport) talks to.
"""
import logging
from typing import Any, Dict, Hashable, Optional

from ...core.graph import DelegationGraph
from ...core.stake import StakeHistory
from ...core.tally import Choice, Tally, VoteRecord, VoteTallyEngine
from ...execution.history import HistoryTracker
from ...execution.property_verifier import PropertyVerifier
from .configuration import LiquidDemocracyConfig
from .properties import LiquidDemocracyProperties

logger = logging.getLogger(__name__)

Participant = Hashable


class LiquidDemocracy:
    def __init__(
        self,
        stakes: Optional[StakeHistory] = None,
        config: Optional[LiquidDemocracyConfig] = None,
    ):
        self.config = config or LiquidDemocracyConfig()
        logging.getLogger("liquid_tally").setLevel(self.config.log_level.upper())

        self.stakes = stakes if stakes is not None else StakeHistory()
        self.graph = DelegationGraph(self.stakes, strict_undelegate=self.config.strict_undelegate)
        self.tallies = VoteTallyEngine(self.graph)
        self.history = HistoryTracker(max_history=self.config.max_history)
        self.verifier = PropertyVerifier()

    # ------------------------------------------------------------------
    # Stakes and delegation
    # ------------------------------------------------------------------

    # Each mutation holds the graph lock until its history entry is written
    # and verified, so entries appear in the order the mutations happened.

    def set_stake(self, participant: Participant, amount: int) -> int:
        with self.graph.lock:
            checkpoint = self.graph.set_stake(participant, amount)
            self.history.record("stake", participant, weight=amount)
            self._verify()
            return checkpoint

    def delegate(self, source: Participant, target: Participant) -> None:
        with self.graph.lock:
            self.graph.delegate(source, target)
            self.history.record("delegate", source, target, weight=self.graph.total_weight(source))
            self._verify()

    def undelegate(self, who: Participant) -> None:
        with self.graph.lock:
            previous = self.graph.delegate_of(who) if who in self.graph else None
            self.graph.undelegate(who)
            if previous is not None:
                self.history.record("undelegate", who, previous, weight=self.graph.total_weight(who))
                self._verify()

    def delegate_of(self, participant: Participant) -> Optional[Participant]:
        return self.graph.delegate_of(participant)

    def power(self, participant: Participant) -> int:
        return self.graph.power(participant)

    def total_weight(self, participant: Participant) -> int:
        return self.graph.total_weight(participant)

    def delegated_balance(self, participant: Participant) -> int:
        return self.graph.delegated_balance(participant)

    # ------------------------------------------------------------------
    # Proposals and votes
    # ------------------------------------------------------------------

    def open_proposal(self, proposal_id: Any, checkpoint: Optional[int] = None) -> int:
        with self.graph.lock:
            checkpoint = self.tallies.open_proposal(proposal_id, checkpoint)
            self.history.record("open", None, proposal_id=proposal_id, yes_total=0, no_total=0)
            return checkpoint

    def close_proposal(self, proposal_id: Any) -> Tally:
        with self.graph.lock:
            result = self.tallies.close_proposal(proposal_id)
            self.history.record(
                "close", None, proposal_id=proposal_id, yes_total=result.yes, no_total=result.no
            )
            return result

    def vote(self, proposal_id: Any, voter: Participant, choice: Any) -> VoteRecord:
        with self.graph.lock:
            record = self.tallies.cast_vote(proposal_id, voter, choice)
            result = self.tallies.tally(proposal_id)
            self.history.record(
                "vote", voter,
                proposal_id=proposal_id,
                choice=record.choice.name.lower(),
                weight=record.locked_weight,
                yes_total=result.yes,
                no_total=result.no,
            )
            self._verify()
            return record

    cast_vote = vote

    def tally(self, proposal_id: Any) -> Tally:
        return self.tallies.tally(proposal_id)

    def claimable(self, proposal_id: Any, participant: Participant) -> int:
        return self.tallies.claimable(proposal_id, participant)

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    def check_invariants(self, proposal_id: Any = None) -> Dict[str, bool]:
        """Recheck invariants from scratch on the graph or on one proposal."""
        if proposal_id is None:
            return self.verifier.verify(self.graph.snapshot(), LiquidDemocracyProperties.DELEGATION)
        return self.verifier.verify(
            self.tallies.snapshot(proposal_id), LiquidDemocracyProperties.LIQUID_DEMOCRACY
        )

    def _verify(self) -> None:
        if not self.config.verify_invariants:
            return
        with self.graph.lock:
            self.verifier.assert_holds(self.graph.snapshot(), LiquidDemocracyProperties.DELEGATION)
            for proposal_id in self.tallies.open_proposals():
                self.verifier.assert_holds(
                    self.tallies.snapshot(proposal_id), LiquidDemocracyProperties.TALLY
                )
