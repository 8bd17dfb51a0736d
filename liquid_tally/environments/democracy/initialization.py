# environments/democracy/initialization.py
from typing import Dict, Hashable, Iterable, List, Optional, Tuple

import jax.numpy as jnp
import jax.random as jr

from ...core.stake import StakeHistory
from .configuration import LiquidDemocracyConfig
from .mechanism import LiquidDemocracy

# Type alias for JAX PRNG key
PRNGKey = jnp.ndarray

Participant = Hashable


def initialize_liquid_democracy(
    stakes: Dict[Participant, int],
    delegations: Iterable[Tuple[Participant, Participant]] = (),
    config: Optional[LiquidDemocracyConfig] = None,
) -> LiquidDemocracy:
    """
    Build a mechanism from initial stakes and delegation edges.

    Edges are applied in order, so a later edge out of the same participant
    replaces an earlier one. Errors (e.g. CycleDetected) propagate.
    """
    ld = LiquidDemocracy(StakeHistory(stakes), config=config)
    for source, target in delegations:
        ld.delegate(source, target)
    return ld


def generate_random_operations(
    key: PRNGKey,
    num_participants: int,
    num_operations: int,
    max_stake: int = 1000,
    vote_probability: float = 0.5,
) -> Tuple[Dict[int, int], List[Tuple]]:
    """
    Random stakes and a random sequence of delegate/undelegate/vote operations.

    Participants are the integers 0..num_participants-1. Operations are
    ("delegate", source, target), ("undelegate", who) or
    ("vote", voter, is_yes). Delegations may well close cycles; callers
    are expected to handle CycleDetected.
    """
    stake_key, kind_key, actor_key, target_key, choice_key = jr.split(key, 5)

    stakes_attr = jr.randint(stake_key, (num_participants,), 0, max_stake + 1)
    stakes = {i: int(s) for i, s in enumerate(stakes_attr.tolist())}

    is_vote = jr.bernoulli(kind_key, vote_probability, shape=(num_operations,))
    actors = jr.randint(actor_key, (num_operations,), 0, num_participants)
    # Target == num_participants means "undelegate"
    targets = jr.randint(target_key, (num_operations,), 0, num_participants + 1)
    choices = jr.bernoulli(choice_key, 0.5, shape=(num_operations,))

    operations = []
    for vote, actor, target, choice in zip(
        is_vote.tolist(), actors.tolist(), targets.tolist(), choices.tolist()
    ):
        if vote:
            operations.append(("vote", actor, bool(choice)))
        elif target == num_participants:
            operations.append(("undelegate", actor))
        else:
            operations.append(("delegate", actor, target))
    return stakes, operations
