# execution/history.py
from typing import Any, Dict, List, Optional

import pandas as pd


class HistoryTracker:
    """
    Tracks the history of delegation and voting operations.
    Captures each successful operation with the resulting totals for later analysis.
    """

    def __init__(self, max_history: int = 1000):
        """Initialize with optional limit on history size."""
        self.history: List[Dict[str, Any]] = []
        self.max_history = max_history
        self._sequence = 0

    def record(
        self,
        operation: str,
        actor: Any,
        target: Any = None,
        proposal_id: Any = None,
        choice: Optional[str] = None,
        yes_total: Optional[int] = None,
        no_total: Optional[int] = None,
        weight: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Record one operation.

        Args:
            operation: Operation name, e.g. "delegate" or "vote"
            actor: Participant performing the operation
            target: Delegate for delegation operations
            proposal_id: Proposal for vote operations
            choice: Vote choice name
            yes_total, no_total: Proposal totals after the operation
            weight: Weight moved or locked by the operation
        """
        self._sequence += 1
        entry = {
            'sequence': self._sequence,
            'operation': operation,
            'actor': actor,
            'target': target,
            'proposal_id': proposal_id,
            'choice': choice,
            'weight': weight,
            'yes_total': yes_total,
            'no_total': no_total,
        }

        # Append to history, maintaining max size
        self.history.append(entry)
        if len(self.history) > self.max_history:
            self.history.pop(0)
        return entry

    def get_history(self) -> List[Dict[str, Any]]:
        """Return the full history list."""
        return self.history

    def get_dataframe(self) -> pd.DataFrame:
        """Return history as a pandas DataFrame for analysis."""
        columns = ['sequence', 'operation', 'actor', 'target', 'proposal_id',
                   'choice', 'weight', 'yes_total', 'no_total']
        return pd.DataFrame(self.history, columns=columns)

    def tally_trajectory(self, proposal_id: Any) -> pd.DataFrame:
        """Yes/no totals after each vote on one proposal."""
        df = self.get_dataframe()
        votes = df[(df['operation'] == 'vote') & (df['proposal_id'] == proposal_id)]
        return votes[['sequence', 'actor', 'choice', 'yes_total', 'no_total']].reset_index(drop=True)

    def clear(self) -> None:
        self.history = []
