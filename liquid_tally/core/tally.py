"""
Per-proposal vote tallying with overrule.

A direct vote locks in the voter's claimable weight: its own checkpointed
stake plus everything flowing into it from delegators that have not voted
themselves. Weight that was previously counted for the nearest voting
ancestor moves to the new voter, so a closer participant always overrules
a more distant one for the part of the chain they share.
"""
import dataclasses
import enum
import logging
from typing import Any, Dict, Hashable, List, Optional

import jax.numpy as jnp

from .errors import AlreadyClosed, InvalidChoice, ProposalExists, UnknownProposal
from .graph import DelegationGraph
from .graph_state import GraphState, WEIGHT_DTYPE
from .stake import StakeOracle

logger = logging.getLogger(__name__)

Participant = Hashable
ProposalId = Hashable


class Choice(enum.Enum):
    NO = 0
    YES = 1

    @classmethod
    def coerce(cls, value: Any) -> 'Choice':
        """Accept a Choice, a bool, or "yes"/"no" (any case)."""
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.YES if value else cls.NO
        if isinstance(value, str) and value.strip().lower() in ("yes", "no"):
            return cls.YES if value.strip().lower() == "yes" else cls.NO
        raise InvalidChoice(f"Cannot interpret {value!r} as a yes/no choice")


@dataclasses.dataclass
class VoteRecord:
    choice: Choice
    # Weight credited to `choice` when this vote was last cast, reduced as
    # delegators below cast their own votes
    locked_weight: int


@dataclasses.dataclass(frozen=True)
class Tally:
    yes: int
    no: int

    @property
    def total(self) -> int:
        return self.yes + self.no


@dataclasses.dataclass
class ProposalTally:
    proposal_id: ProposalId
    checkpoint: int
    votes: Dict[Participant, VoteRecord] = dataclasses.field(default_factory=dict)
    yes_total: int = 0
    no_total: int = 0
    closed: bool = False

    def credit(self, choice: Choice, amount: int) -> None:
        if choice is Choice.YES:
            self.yes_total += amount
        else:
            self.no_total += amount


class VoteTallyEngine:
    """
    Owns the vote records and running totals of every proposal.

    The delegation graph is shared by all proposals; own weights are read
    from the stake oracle at each proposal's checkpoint.
    """

    def __init__(self, graph: DelegationGraph, oracle: Optional[StakeOracle] = None):
        self.graph = graph
        self.oracle = oracle if oracle is not None else graph.stakes
        self.lock = graph.lock
        self._proposals: Dict[ProposalId, ProposalTally] = {}
        graph.subscribe(self._on_edge_moved)

    # ------------------------------------------------------------------
    # Proposal gate
    # ------------------------------------------------------------------

    def open_proposal(self, proposal_id: ProposalId, checkpoint: Optional[int] = None) -> int:
        """Start tallying `proposal_id` with weights taken at `checkpoint`.

        Without an explicit checkpoint the oracle's current one is used.
        Returns the checkpoint the proposal is bound to.
        """
        with self.lock:
            if proposal_id in self._proposals:
                raise ProposalExists(proposal_id)
            if checkpoint is None:
                current = getattr(self.oracle, "checkpoint", None)
                if not callable(current):
                    raise ValueError("oracle has no current checkpoint; pass one explicitly")
                checkpoint = current()
            self._proposals[proposal_id] = ProposalTally(proposal_id, checkpoint)
            logger.debug("opened proposal %r at checkpoint %d", proposal_id, checkpoint)
            return checkpoint

    def close_proposal(self, proposal_id: ProposalId) -> Tally:
        with self.lock:
            proposal = self._proposal(proposal_id)
            proposal.closed = True
            logger.debug("closed proposal %r", proposal_id)
            return self.tally(proposal_id)

    def is_open(self, proposal_id: ProposalId) -> bool:
        return not self._proposal(proposal_id).closed

    def open_proposals(self) -> List[ProposalId]:
        return [pid for pid, p in self._proposals.items() if not p.closed]

    def checkpoint_of(self, proposal_id: ProposalId) -> int:
        return self._proposal(proposal_id).checkpoint

    def _proposal(self, proposal_id: ProposalId) -> ProposalTally:
        proposal = self._proposals.get(proposal_id)
        if proposal is None:
            raise UnknownProposal(proposal_id)
        return proposal

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def tally(self, proposal_id: ProposalId) -> Tally:
        proposal = self._proposal(proposal_id)
        return Tally(yes=proposal.yes_total, no=proposal.no_total)

    def voters(self, proposal_id: ProposalId) -> List[Participant]:
        return list(self._proposal(proposal_id).votes)

    def has_voted(self, proposal_id: ProposalId, participant: Participant) -> bool:
        return participant in self._proposal(proposal_id).votes

    def vote_of(self, proposal_id: ProposalId, participant: Participant) -> Optional[VoteRecord]:
        record = self._proposal(proposal_id).votes.get(participant)
        return dataclasses.replace(record) if record is not None else None

    def claimable(self, proposal_id: ProposalId, participant: Participant) -> int:
        """Weight `participant` would lock in by voting now."""
        with self.lock:
            self.graph.add_participant(participant)
            return self._claimable(self._proposal(proposal_id), participant)

    def _own_weight(self, proposal: ProposalTally, participant: Participant) -> int:
        return self.oracle.balance_at(participant, proposal.checkpoint)

    def _claimable(self, proposal: ProposalTally, participant: Participant) -> int:
        # Depth-first over the child index, stopping at delegators who voted.
        # Explicit stack: chains can be deeper than the recursion limit.
        total = 0
        stack = [participant]
        while stack:
            current = stack.pop()
            total += self._own_weight(proposal, current)
            for child in self.graph.delegators_of(current):
                if child not in proposal.votes:
                    stack.append(child)
        return total

    def _nearest_voter(self, proposal: ProposalTally, start: Optional[Participant]) -> Optional[Participant]:
        """First participant with a vote record on the chain from `start` (inclusive)."""
        if start is None:
            return None
        if start in proposal.votes:
            return start
        for ancestor in self.graph.chain(start):
            if ancestor in proposal.votes:
                return ancestor
        return None

    # ------------------------------------------------------------------
    # Voting
    # ------------------------------------------------------------------

    def cast_vote(self, proposal_id: ProposalId, voter: Participant, choice: Any) -> VoteRecord:
        """
        Cast or re-cast `voter`'s direct vote on `proposal_id`.

        Raises:
            UnknownProposal: if the proposal was never opened
            AlreadyClosed: if the proposal has been closed
            InvalidChoice: if `choice` is not a yes/no value
        """
        with self.lock:
            proposal = self._proposal(proposal_id)
            if proposal.closed:
                raise AlreadyClosed(proposal_id)
            choice = Choice.coerce(choice)

            self.graph.add_participant(voter)
            claim = self._claimable(proposal, voter)
            previous = proposal.votes.get(voter)

            if previous is not None:
                proposal.credit(previous.choice, -previous.locked_weight)

            # On a re-cast only the difference has to leave the blocking
            # ancestor; the rest was taken from it by the earlier cast.
            moved = claim - (previous.locked_weight if previous is not None else 0)
            blocker = self._nearest_voter(proposal, self.graph.delegate_of(voter))
            if blocker is not None and moved:
                blocking_record = proposal.votes[blocker]
                blocking_record.locked_weight -= moved
                proposal.credit(blocking_record.choice, -moved)

            record = VoteRecord(choice=choice, locked_weight=claim)
            proposal.votes[voter] = record
            proposal.credit(choice, claim)

            logger.debug(
                "%r votes %s on %r with %d (overruling %r); tally yes=%d no=%d",
                voter, choice.name, proposal_id, claim, blocker,
                proposal.yes_total, proposal.no_total,
            )
            return dataclasses.replace(record)

    def _on_edge_moved(self, who, old_delegate, new_delegate) -> None:
        """Move the unclaimed subtree weight of `who` between voting chains."""
        for proposal in self._proposals.values():
            if proposal.closed or who in proposal.votes:
                continue
            amount = self._claimable(proposal, who)
            if not amount:
                continue

            old_owner = self._nearest_voter(proposal, old_delegate)
            if old_owner is not None:
                record = proposal.votes[old_owner]
                record.locked_weight -= amount
                proposal.credit(record.choice, -amount)

            new_owner = self._nearest_voter(proposal, new_delegate)
            if new_owner is not None:
                record = proposal.votes[new_owner]
                record.locked_weight += amount
                proposal.credit(record.choice, amount)

            if old_owner != new_owner:
                logger.debug(
                    "proposal %r: %d of %r moves from %r to %r",
                    proposal.proposal_id, amount, who, old_owner, new_owner,
                )

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def snapshot(self, proposal_id: ProposalId) -> GraphState:
        """Delegation snapshot extended with this proposal's vote state."""
        with self.lock:
            proposal = self._proposal(proposal_id)
            state = self.graph.snapshot()
            participants = state.participants

            records = [proposal.votes.get(p) for p in participants]
            checkpoint_weight = jnp.array(
                [self._own_weight(proposal, p) for p in participants], dtype=WEIGHT_DTYPE
            )
            has_voted = jnp.array([r is not None for r in records], dtype=bool)
            choice = jnp.array(
                [-1 if r is None else r.choice.value for r in records], dtype=jnp.int64
            )
            locked = jnp.array(
                [0 if r is None else r.locked_weight for r in records], dtype=WEIGHT_DTYPE
            )

            state = state.update_node_attrs("checkpoint_weight", checkpoint_weight)
            state = state.update_node_attrs("has_voted", has_voted)
            state = state.update_node_attrs("choice", choice)
            state = state.update_node_attrs("locked_weight", locked)
            state = state.update_global_attr("proposal_id", proposal_id)
            state = state.update_global_attr("checkpoint", proposal.checkpoint)
            state = state.update_global_attr("yes_total", proposal.yes_total)
            return state.update_global_attr("no_total", proposal.no_total)
