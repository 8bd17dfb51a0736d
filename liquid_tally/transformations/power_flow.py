"""
Voting power calculation as a flow on the delegation graph.

Recomputes every participant's cumulative weight from scratch by pushing
weight along delegation edges until the flow is stable. The incremental
bookkeeping in `DelegationGraph` is checked against this.
"""
from typing import Any, Callable, Dict, Optional

import jax.numpy as jnp

from ..core.graph_state import GraphState, WEIGHT_DTYPE


def create_power_flow_transform(
    config: Dict[str, Any] = None,
    max_iterations: Optional[int] = None,
) -> Callable[[GraphState], GraphState]:
    """
    Create a transformation that recomputes cumulative weight and power.

    Args:
        config: Optional configuration parameters. Recognised keys:
                "weight_attr" (input, default "own_weight"),
                "total_attr" (output, default "recomputed_total_weight"),
                "power_attr" (output, default "recomputed_power").
        max_iterations: Iteration cap. Defaults to num_nodes + 1, which is
                        enough for any forest.

    Returns:
        A transformation function that adds the recomputed attributes and
        sets the `power_flow_converged` global attribute.
    """
    config = config or {}
    weight_attr = config.get("weight_attr", "own_weight")
    total_attr = config.get("total_attr", "recomputed_total_weight")
    power_attr = config.get("power_attr", "recomputed_power")

    def transform(state: GraphState) -> GraphState:
        if "delegation" not in state.adj_matrices:
            raise KeyError("power flow needs the 'delegation' matrix; apply the delegation transform first")

        delegation_matrix = state.adj_matrices["delegation"]  # [i, j] = 1 if i delegates to j
        own = state.node_attrs[weight_attr].astype(WEIGHT_DTYPE)
        num_nodes = own.shape[0]

        if num_nodes == 0:
            empty = jnp.zeros((0,), dtype=WEIGHT_DTYPE)
            new_state = state.update_node_attrs(total_attr, empty)
            new_state = new_state.update_node_attrs(power_attr, empty)
            return new_state.update_global_attr("power_flow_converged", True)

        iterations = max_iterations if max_iterations is not None else num_nodes + 1

        # total[j] = own[j] + sum of total[i] over i delegating to j
        total = own
        converged = False
        for _ in range(iterations):
            updated = own + delegation_matrix.T @ total
            if jnp.array_equal(updated, total):
                converged = True
                break
            total = updated

        is_delegating = jnp.sum(delegation_matrix, axis=1) > 0
        power = jnp.where(is_delegating, 0, total)

        new_state = state.update_node_attrs(total_attr, total)
        new_state = new_state.update_node_attrs(power_attr, power)
        return new_state.update_global_attr("power_flow_converged", converged)

    return transform
