"""
Graph representation as an immutable JAX-compatible structure.

Snapshots of the delegation graph and of a proposal's tally are exported as
`GraphState` values so that the recomputation transforms and invariant
properties can work on plain arrays, independently of the incremental
bookkeeping that produced them.
"""
import dataclasses
from typing import Any, Dict, List

import jax.numpy as jnp

# 64-bit types are switched on once, in the package __init__
WEIGHT_DTYPE = jnp.int64


@dataclasses.dataclass(frozen=True, eq=False)
class GraphState:
    """
    Immutable graph state: node attributes, adjacency matrices and globals.

    Node attributes are arrays of shape [num_nodes, ...], indexed in the
    order given by the `participants` global attribute.
    """
    node_attrs: Dict[str, jnp.ndarray]

    # One matrix per edge type, shape [num_nodes, num_nodes]
    adj_matrices: Dict[str, jnp.ndarray] = None

    global_attrs: Dict[str, Any] = None

    def __post_init__(self):
        if self.adj_matrices is None:
            object.__setattr__(self, 'adj_matrices', {})
        if self.global_attrs is None:
            object.__setattr__(self, 'global_attrs', {})

    def replace(self, **kwargs) -> 'GraphState':
        return dataclasses.replace(self, **kwargs)

    @property
    def num_nodes(self) -> int:
        """Get the number of nodes in the graph."""
        if not self.node_attrs:
            return 0
        return next(iter(self.node_attrs.values())).shape[0]

    @property
    def participants(self) -> List[Any]:
        return list(self.global_attrs.get("participants", []))

    def index_of(self, participant: Any) -> int:
        return self.participants.index(participant)

    def update_node_attrs(self, attr_name: str, new_values: jnp.ndarray) -> 'GraphState':
        """
        Create a new graph with an updated node attribute.
        """
        new_node_attrs = dict(self.node_attrs)
        new_node_attrs[attr_name] = new_values
        return self.replace(node_attrs=new_node_attrs)

    def update_adj_matrix(self, rel_name: str, new_matrix: jnp.ndarray) -> 'GraphState':
        new_adj_matrices = dict(self.adj_matrices)
        new_adj_matrices[rel_name] = new_matrix
        return self.replace(adj_matrices=new_adj_matrices)

    def update_global_attr(self, attr_name: str, value: Any) -> 'GraphState':
        new_global_attrs = dict(self.global_attrs)
        new_global_attrs[attr_name] = value
        return self.replace(global_attrs=new_global_attrs)
