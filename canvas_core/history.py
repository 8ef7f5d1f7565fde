"""
History Manager - bounded undo/redo over graph snapshots.

The history is a list of snapshots plus a cursor pointing at the snapshot
that matches the live graph:
- record() drops everything after the cursor (the redo branch), appends the
  new state and moves the cursor to it
- undo()/redo() move the cursor and hand back a copy of that snapshot
- the oldest snapshot is evicted once the list exceeds max_history

Only structural operations are recorded. Cosmetic edits and drag positions
never are, so one undo always reverts one topology-changing action.
"""

import logging
from typing import Optional

from .models import GraphData

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 50


class HistoryManager:
    """Snapshot log with a cursor."""

    def __init__(self, initial: Optional[GraphData] = None, max_history: int = DEFAULT_MAX_HISTORY):
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self._max_history = max_history
        self._snapshots: list[GraphData] = []
        self._cursor = -1
        self.reset(initial if initial is not None else GraphData())

    # --- Properties ---

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def max_history(self) -> int:
        return self._max_history

    @property
    def can_undo(self) -> bool:
        """Check if undo is available."""
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        """Check if redo is available."""
        return self._cursor < len(self._snapshots) - 1

    @property
    def current(self) -> GraphData:
        """Copy of the snapshot under the cursor."""
        return self._snapshots[self._cursor].model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._snapshots)

    # --- Mutation ---

    def reset(self, state: GraphData) -> None:
        """Drop all history and start over from state."""
        self._snapshots = [state.model_copy(deep=True)]
        self._cursor = 0

    def record(self, state: GraphData) -> None:
        """Record a new state after the cursor, discarding the redo branch."""
        del self._snapshots[self._cursor + 1:]
        self._snapshots.append(state.model_copy(deep=True))
        self._cursor = len(self._snapshots) - 1

        # Trim history if too long
        if len(self._snapshots) > self._max_history:
            self._snapshots.pop(0)
            self._cursor -= 1

        logger.debug(f"History recorded: cursor={self._cursor} size={len(self._snapshots)}")

    def undo(self) -> Optional[GraphData]:
        """Step back one snapshot. Returns None if there is nothing to undo."""
        if not self.can_undo:
            return None
        self._cursor -= 1
        return self.current

    def redo(self) -> Optional[GraphData]:
        """Step forward one snapshot. Returns None if there is nothing to redo."""
        if not self.can_redo:
            return None
        self._cursor += 1
        return self.current
