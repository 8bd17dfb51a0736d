"""
Delegation graph: a forest of single-parent delegation edges.

Each participant points at most at one delegate. Edges that would close a
cycle are rejected by walking up the chain from the prospective delegate,
and every participant's cumulative weight (its own stake plus everything
delegated into it, transitively) is kept up to date along the whole chain
on each mutation.
"""
import dataclasses
import logging
import threading
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional

import jax.numpy as jnp

from .errors import CycleDetected, NotDelegating, SelfDelegation, UnknownParticipant
from .graph_state import GraphState, WEIGHT_DTYPE
from .stake import StakeHistory

logger = logging.getLogger(__name__)

Participant = Hashable

# Called as listener(who, old_delegate, new_delegate) after an edge out of
# `who` has been removed, added or replaced.
EdgeListener = Callable[[Participant, Optional[Participant], Optional[Participant]], None]


@dataclasses.dataclass
class ParticipantRecord:
    participant: Participant
    own_weight: int = 0
    total_weight: int = 0
    delegate: Optional[Participant] = None
    # Direct delegators, insertion ordered (values unused)
    delegators: Dict[Participant, None] = dataclasses.field(default_factory=dict)


class DelegationGraph:
    """
    Parent-pointer forest with an incrementally maintained child index.

    Own weights come from a `StakeHistory`; the graph subscribes to it so
    balance changes made anywhere reach the cumulative totals.
    """

    def __init__(self, stakes: Optional[StakeHistory] = None, strict_undelegate: bool = True):
        self.stakes = stakes if stakes is not None else StakeHistory()
        self.strict_undelegate = strict_undelegate
        self.lock = threading.RLock()
        self._records: Dict[Participant, ParticipantRecord] = {}
        self._listeners: List[EdgeListener] = []

        for participant in self.stakes.participants():
            self.add_participant(participant)
        self.stakes.subscribe(self._on_stake_changed)

    # ------------------------------------------------------------------
    # Registration and stakes
    # ------------------------------------------------------------------

    def add_participant(self, participant: Participant) -> ParticipantRecord:
        """Register `participant` with its latest stake. Idempotent."""
        with self.lock:
            record = self._records.get(participant)
            if record is None:
                weight = self.stakes.balance_of(participant)
                record = ParticipantRecord(participant, own_weight=weight, total_weight=weight)
                self._records[participant] = record
            return record

    def set_stake(self, participant: Participant, amount: int) -> int:
        """
        Record a new stake for `participant`; the totals follow through the
        stake history subscription.

        Returns the stake checkpoint the new balance took effect at.
        """
        with self.lock:
            return self.stakes.set_stake(participant, amount)

    def _on_stake_changed(self, participant: Participant, previous: int, amount: int) -> None:
        """Propagate a balance change, however it was made, up the chain."""
        with self.lock:
            record = self._records.get(participant)
            if record is None:
                # Registration reads the balance that is already current
                self.add_participant(participant)
                return
            delta = amount - record.own_weight
            record.own_weight = amount
            self._shift_chain(participant, delta)
            logger.debug("stake of %r changes by %d", participant, delta)

    def subscribe(self, listener: EdgeListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _get(self, participant: Participant) -> ParticipantRecord:
        record = self._records.get(participant)
        if record is None:
            if participant in self.stakes:
                return self.add_participant(participant)
            raise UnknownParticipant(participant)
        return record

    def __contains__(self, participant: Any) -> bool:
        return participant in self._records

    def __len__(self) -> int:
        return len(self._records)

    def participants(self) -> List[Participant]:
        return list(self._records)

    def delegate_of(self, participant: Participant) -> Optional[Participant]:
        return self._get(participant).delegate

    def delegators_of(self, participant: Participant) -> List[Participant]:
        return list(self._get(participant).delegators)

    def own_weight(self, participant: Participant) -> int:
        return self._get(participant).own_weight

    def total_weight(self, participant: Participant) -> int:
        return self._get(participant).total_weight

    def delegated_balance(self, participant: Participant) -> int:
        """Weight flowing into `participant` from its delegators."""
        record = self._get(participant)
        return record.total_weight - record.own_weight

    def power(self, participant: Participant) -> int:
        """Cumulative weight if `participant` is a terminal, else 0."""
        record = self._get(participant)
        return record.total_weight if record.delegate is None else 0

    def is_terminal(self, participant: Participant) -> bool:
        return self._get(participant).delegate is None

    def chain(self, participant: Participant) -> Iterator[Participant]:
        """Yield the ancestors of `participant`, nearest first, up to its root."""
        current = self._get(participant).delegate
        while current is not None:
            yield current
            current = self._records[current].delegate

    def root_of(self, participant: Participant) -> Participant:
        self._get(participant)
        root = participant
        for root in self.chain(participant):
            pass
        return root

    def roots(self) -> List[Participant]:
        return [p for p, r in self._records.items() if r.delegate is None]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _find_cycle(self, source: Participant, target: Participant) -> Optional[List[Participant]]:
        """Walk up from `target`; return the path if it reaches `source`."""
        path = [target]
        if target == source:
            return path
        for ancestor in self.chain(target):
            path.append(ancestor)
            if ancestor == source:
                return path
        return None

    def _shift_chain(self, start: Participant, delta: int) -> None:
        """Add `delta` to the totals of `start` and every ancestor above it."""
        self._records[start].total_weight += delta
        for ancestor in self.chain(start):
            self._records[ancestor].total_weight += delta

    def delegate(self, source: Participant, target: Participant) -> None:
        """
        Make `target` the delegate of `source`, replacing any earlier delegate.

        Raises:
            SelfDelegation: if `source == target`
            CycleDetected: if `source` is reachable by walking up from `target`
        """
        with self.lock:
            if source == target:
                raise SelfDelegation(source)

            self.add_participant(source)
            self.add_participant(target)

            cycle = self._find_cycle(source, target)
            if cycle is not None:
                raise CycleDetected(source, target, cycle)

            record = self._records[source]
            old_delegate = record.delegate
            if old_delegate == target:
                logger.debug("%r already delegates to %r", source, target)
                return

            moved = record.total_weight
            if old_delegate is not None:
                self._shift_chain(old_delegate, -moved)
                del self._records[old_delegate].delegators[source]

            record.delegate = target
            self._records[target].delegators[source] = None
            self._shift_chain(target, moved)

            logger.debug("%r delegates %d to %r (was %r)", source, moved, target, old_delegate)
            self._notify(source, old_delegate, target)

    def undelegate(self, who: Participant) -> None:
        """
        Remove the outgoing edge of `who`.

        Raises NotDelegating when `who` has no delegate and the graph is
        strict; otherwise the call is a no-op.
        """
        with self.lock:
            record = self._records.get(who)
            if record is None or record.delegate is None:
                if self.strict_undelegate:
                    raise NotDelegating(who)
                logger.warning("undelegate(%r) ignored: no delegate", who)
                return

            old_delegate = record.delegate
            self._shift_chain(old_delegate, -record.total_weight)
            del self._records[old_delegate].delegators[who]
            record.delegate = None

            logger.debug("%r undelegates from %r", who, old_delegate)
            self._notify(who, old_delegate, None)

    def _notify(self, who, old_delegate, new_delegate) -> None:
        for listener in self._listeners:
            listener(who, old_delegate, new_delegate)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def snapshot(self) -> GraphState:
        """Export the current forest as an immutable array snapshot."""
        with self.lock:
            for participant in self.stakes.participants():
                self.add_participant(participant)
            participants = self.participants()
            index = {p: i for i, p in enumerate(participants)}
            records = [self._records[p] for p in participants]

            # Read from the oracle, not the cached records
            own = jnp.array([self.stakes.balance_of(p) for p in participants], dtype=WEIGHT_DTYPE)
            total = jnp.array([r.total_weight for r in records], dtype=WEIGHT_DTYPE)
            targets = jnp.array(
                [-1 if r.delegate is None else index[r.delegate] for r in records],
                dtype=jnp.int64,
            )
            power = jnp.where(targets < 0, total, 0)

            return GraphState(
                node_attrs={
                    "own_weight": own,
                    "total_weight": total,
                    "power": power,
                    "delegation_target": targets,
                },
                adj_matrices={},
                global_attrs={"participants": participants},
            )
