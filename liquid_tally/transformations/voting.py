"""
From-scratch recount of a proposal's tally.

Every participant's checkpoint weight belongs to the nearest direct voter on
its chain (itself included); weight whose chain holds no voter is unclaimed.
The recount finds that owner by pointer jumping along `delegation_target`
and sums weights per owner, giving the locked weight each vote record
should hold.
"""
from typing import Callable

import jax.numpy as jnp

from ..core.graph_state import GraphState, WEIGHT_DTYPE

UNRESOLVED = -2
NO_OWNER = -1

YES = 1
NO = 0


def resolve_claim_owners(targets: jnp.ndarray, has_voted: jnp.ndarray) -> jnp.ndarray:
    """Index of the nearest voter on each participant's chain, or -1."""
    num_nodes = targets.shape[0]
    idx = jnp.arange(num_nodes)
    has_parent = targets >= 0
    safe_parent = jnp.where(has_parent, targets, 0)

    owner = jnp.where(has_voted, idx, jnp.where(has_parent, UNRESOLVED, NO_OWNER))
    for _ in range(num_nodes):
        if not bool(jnp.any(owner == UNRESOLVED)):
            break
        owner = jnp.where(owner == UNRESOLVED, owner[safe_parent], owner)
    return owner


def create_tally_recount_transform() -> Callable[[GraphState], GraphState]:
    """
    Reads `delegation_target`, `checkpoint_weight`, `has_voted` and `choice`;
    writes `claim_owner` and `expected_locked_weight` node attributes and the
    `recount_yes_total`, `recount_no_total` and `unclaimed_weight` globals.
    """
    def transform(state: GraphState) -> GraphState:
        targets = state.node_attrs["delegation_target"]
        weights = state.node_attrs["checkpoint_weight"].astype(WEIGHT_DTYPE)
        has_voted = state.node_attrs["has_voted"].astype(bool)
        choice = state.node_attrs["choice"]
        num_nodes = targets.shape[0]

        if num_nodes == 0:
            new_state = state.update_node_attrs("claim_owner", jnp.zeros((0,), dtype=jnp.int64))
            new_state = new_state.update_node_attrs(
                "expected_locked_weight", jnp.zeros((0,), dtype=WEIGHT_DTYPE)
            )
            for name in ("recount_yes_total", "recount_no_total", "unclaimed_weight"):
                new_state = new_state.update_global_attr(name, 0)
            return new_state

        owner = resolve_claim_owners(targets, has_voted)

        # Unowned weight goes to an overflow slot that is dropped afterwards
        buckets = jnp.where(owner >= 0, owner, num_nodes)
        locked = jnp.zeros((num_nodes + 1,), dtype=WEIGHT_DTYPE).at[buckets].add(weights)[:num_nodes]

        yes_total = int(jnp.sum(jnp.where(has_voted & (choice == YES), locked, 0)))
        no_total = int(jnp.sum(jnp.where(has_voted & (choice == NO), locked, 0)))
        unclaimed = int(jnp.sum(jnp.where(owner == NO_OWNER, weights, 0)))

        new_state = state.update_node_attrs("claim_owner", owner)
        new_state = new_state.update_node_attrs("expected_locked_weight", locked)
        new_state = new_state.update_global_attr("recount_yes_total", yes_total)
        new_state = new_state.update_global_attr("recount_no_total", no_total)
        return new_state.update_global_attr("unclaimed_weight", unclaimed)

    return transform
