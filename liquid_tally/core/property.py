"""
Property system for delegation and tally snapshots.

Properties define invariants that can be verified on `GraphState`
snapshots. Each check recomputes what it needs from scratch, so it is
independent of the incremental bookkeeping that produced the snapshot.
"""
from typing import List

import jax.numpy as jnp
import networkx as nx

from .graph_state import GraphState
from ..transformations.delegation import create_delegation_transform
from ..transformations.power_flow import create_power_flow_transform
from ..transformations.voting import create_tally_recount_transform


class Property:
    """
    A property is a predicate over graph states that can be checked.
    """
    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description

    def check(self, state: GraphState) -> bool:
        """
        Check if the graph state satisfies this property.

        Returns:
            bool: True if the property holds, False otherwise
        """
        raise NotImplementedError

    def __and__(self, other: 'Property') -> 'Property':
        """
        Conjunction of properties (p ∧ q).
        """
        return ConjunctiveProperty(f"{self.name} AND {other.name}", [self, other])

    def __or__(self, other: 'Property') -> 'Property':
        """
        Disjunction of properties (p ∨ q).
        """
        return DisjunctiveProperty(f"{self.name} OR {other.name}", [self, other])

    def __invert__(self) -> 'Property':
        """
        Negation of a property (¬p).
        """
        return NegatedProperty(f"NOT {self.name}", self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


def with_delegation_matrix(state: GraphState) -> GraphState:
    if "delegation" in state.adj_matrices:
        return state
    return create_delegation_transform()(state)


def to_networkx(state: GraphState) -> nx.DiGraph:
    """Directed graph with an edge from each delegator to its delegate."""
    participants = state.participants or list(range(state.num_nodes))
    graph = nx.DiGraph()
    graph.add_nodes_from(participants)
    for i, target in enumerate(state.node_attrs["delegation_target"].tolist()):
        if target >= 0:
            graph.add_edge(participants[i], participants[target])
    return graph


def find_cycles(state: GraphState) -> List[list]:
    return list(nx.simple_cycles(to_networkx(state)))


class ForestAcyclicity(Property):
    """Following delegate edges from anywhere always ends at a terminal."""

    def __init__(self, name: str = "forest_acyclicity"):
        super().__init__(name, "No cycles in the delegation graph")

    def check(self, state: GraphState) -> bool:
        return nx.is_directed_acyclic_graph(to_networkx(state))


class CumulativeWeightConsistency(Property):
    """Incremental totals and power match a from-scratch power flow."""

    def __init__(self, name: str = "cumulative_weight_consistency"):
        super().__init__(name, "total_weight(p) == own_weight(p) + sum of delegators' totals")
        self._power_flow = create_power_flow_transform()

    def check(self, state: GraphState) -> bool:
        recomputed = self._power_flow(with_delegation_matrix(state))
        if not recomputed.global_attrs["power_flow_converged"]:
            return False
        return bool(
            jnp.array_equal(recomputed.node_attrs["recomputed_total_weight"], state.node_attrs["total_weight"])
            and jnp.array_equal(recomputed.node_attrs["recomputed_power"], state.node_attrs["power"])
        )


class PowerConservation(Property):
    """Delegation neither creates nor destroys weight."""

    def __init__(self, name: str = "power_conservation"):
        super().__init__(name, "Sum of terminal power equals sum of own weight")

    def check(self, state: GraphState) -> bool:
        return int(jnp.sum(state.node_attrs["power"])) == int(jnp.sum(state.node_attrs["own_weight"]))


class TallyConsistency(Property):
    """Every locked weight and both totals agree with a from-scratch recount."""

    def __init__(self, name: str = "tally_consistency"):
        super().__init__(name, "Tally equals recomputation from scratch")
        self._recount = create_tally_recount_transform()

    def check(self, state: GraphState) -> bool:
        recounted = self._recount(state)
        has_voted = state.node_attrs["has_voted"]
        expected = jnp.where(has_voted, recounted.node_attrs["expected_locked_weight"], 0)
        return (
            bool(jnp.array_equal(expected, state.node_attrs["locked_weight"]))
            and recounted.global_attrs["recount_yes_total"] == state.global_attrs["yes_total"]
            and recounted.global_attrs["recount_no_total"] == state.global_attrs["no_total"]
        )


class TallyConservation(Property):
    """yes + no + unclaimed weight adds up to all checkpointed weight."""

    def __init__(self, name: str = "tally_conservation"):
        super().__init__(name, "yes_total + no_total + unclaimed == sum of checkpoint weight")
        self._recount = create_tally_recount_transform()

    def check(self, state: GraphState) -> bool:
        unclaimed = self._recount(state).global_attrs["unclaimed_weight"]
        counted = state.global_attrs["yes_total"] + state.global_attrs["no_total"]
        return counted + unclaimed == int(jnp.sum(state.node_attrs["checkpoint_weight"]))


class ConjunctiveProperty(Property):
    """A property that is the conjunction of multiple properties."""

    def __init__(self, name: str, properties: List[Property]):
        super().__init__(name)
        self.properties = properties

    def check(self, state: GraphState) -> bool:
        return all(prop.check(state) for prop in self.properties)


class DisjunctiveProperty(Property):
    """A property that is the disjunction of multiple properties."""

    def __init__(self, name: str, properties: List[Property]):
        super().__init__(name)
        self.properties = properties

    def check(self, state: GraphState) -> bool:
        return any(prop.check(state) for prop in self.properties)


class NegatedProperty(Property):
    def __init__(self, name: str, property: Property):
        super().__init__(name)
        self.property = property

    def check(self, state: GraphState) -> bool:
        return not self.property.check(state)
