# core/stake.py

"""
Checkpointed stake balances.

`StakeHistory` is an in-memory stake oracle: every balance change is
recorded at a fresh checkpoint so a proposal can read the weights that were
in force when it opened, no matter what happens to balances afterwards.
"""
import bisect
import logging
from typing import Any, Callable, Dict, Hashable, List, Protocol, Tuple, runtime_checkable

from .errors import InvalidCheckpoint, InvalidStake

logger = logging.getLogger(__name__)

Participant = Hashable

# Called as listener(participant, old_balance, new_balance) after a balance change.
StakeListener = Callable[[Participant, int, int], None]


@runtime_checkable
class StakeOracle(Protocol):
    """Anything that can answer "what did `participant` hold at `checkpoint`"."""

    def balance_at(self, participant: Participant, checkpoint: int) -> int:
        ...


class StakeHistory:
    """
    Append-only record of stake balances per participant.

    Checkpoints start at 0 and advance by one on every mutation, playing the
    role a block number plays on chain.
    """

    def __init__(self, initial: Dict[Participant, int] = None):
        self._checkpoint = 0
        # participant -> (checkpoints, balances), both ascending by checkpoint
        self._records: Dict[Participant, Tuple[List[int], List[int]]] = {}
        self._listeners: List[StakeListener] = []
        for participant, amount in (initial or {}).items():
            self.set_stake(participant, amount)

    def subscribe(self, listener: StakeListener) -> None:
        self._listeners.append(listener)

    def checkpoint(self) -> int:
        return self._checkpoint

    def participants(self) -> List[Participant]:
        return list(self._records)

    def __contains__(self, participant: Any) -> bool:
        return participant in self._records

    def set_stake(self, participant: Participant, amount: int) -> int:
        """Record a new balance and return the checkpoint it took effect at."""
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidStake(f"Stake for {participant!r} must be an integer, got {amount!r}")
        if amount < 0:
            raise InvalidStake(f"Stake for {participant!r} cannot be negative, got {amount}")

        previous = self.balance_of(participant)
        self._checkpoint += 1
        checkpoints, balances = self._records.setdefault(participant, ([], []))
        checkpoints.append(self._checkpoint)
        balances.append(amount)
        logger.debug("stake %r = %d at checkpoint %d", participant, amount, self._checkpoint)
        for listener in self._listeners:
            listener(participant, previous, amount)
        return self._checkpoint

    def add_stake(self, participant: Participant, amount: int) -> int:
        return self.set_stake(participant, self.balance_of(participant) + amount)

    def balance_of(self, participant: Participant) -> int:
        record = self._records.get(participant)
        if not record:
            return 0
        return record[1][-1]

    def balance_at(self, participant: Participant, checkpoint: int) -> int:
        if checkpoint > self._checkpoint:
            raise InvalidCheckpoint(
                f"Checkpoint {checkpoint} is in the future (current is {self._checkpoint})"
            )
        record = self._records.get(participant)
        if not record:
            return 0
        checkpoints, balances = record
        idx = bisect.bisect_right(checkpoints, checkpoint)
        return balances[idx - 1] if idx else 0

    def total_at(self, checkpoint: int) -> int:
        return sum(self.balance_at(p, checkpoint) for p in self._records)
