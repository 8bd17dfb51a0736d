"""Pure delegation graph transformation."""
from typing import Callable

import jax.numpy as jnp

from ..core.graph_state import GraphState, WEIGHT_DTYPE


def create_delegation_transform() -> Callable[[GraphState], GraphState]:
    """Creates a transform that builds the delegation matrix from node attributes.

    `delegation_target[i]` is the index of i's delegate, or -1 for a terminal.
    The resulting `delegation` matrix has a 1 at [i, j] when i delegates to j.
    Out-of-range targets and self loops produce no edge.
    """
    def transform(state: GraphState) -> GraphState:
        if "delegation_target" not in state.node_attrs:
            return state

        targets = state.node_attrs["delegation_target"]
        num_nodes = targets.shape[0]

        if num_nodes == 0:
            return state.update_adj_matrix(
                "delegation", jnp.zeros((0, 0), dtype=WEIGHT_DTYPE)
            )

        rows = jnp.arange(num_nodes)
        valid = (targets >= 0) & (targets < num_nodes) & (targets != rows)
        columns = jnp.where(valid, targets, 0)

        delegation = jnp.zeros((num_nodes, num_nodes), dtype=WEIGHT_DTYPE)
        delegation = delegation.at[rows, columns].add(valid.astype(WEIGHT_DTYPE))

        return state.update_adj_matrix("delegation", delegation)

    return transform
