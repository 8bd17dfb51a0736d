# execution/property_verifier.py

from typing import Dict, Iterable

from ..core.errors import InvariantViolation
from ..core.graph_state import GraphState
from ..core.property import Property


class PropertyVerifier:
    """
    Verification of invariant properties on graph snapshots.

    Used after mutations to make sure the incremental delegation and tally
    bookkeeping still agrees with a from-scratch recomputation.
    """

    def verify(self, state: GraphState, properties: Iterable[Property]) -> Dict[str, bool]:
        """
        Check each property against `state`.

        Args:
            state: Snapshot to check
            properties: Properties that must hold

        Returns:
            Dictionary mapping property names to verification results
        """
        return {prop.name: prop.check(state) for prop in properties}

    def assert_holds(self, state: GraphState, properties: Iterable[Property]) -> None:
        """Raise InvariantViolation naming every property that fails."""
        results = self.verify(state, properties)
        failed = sorted(name for name, ok in results.items() if not ok)
        if failed:
            raise InvariantViolation(failed)
