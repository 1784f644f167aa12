"""Lifecycle states and transition rules for a pipeline run.

    started -> generating -> stitching -> completed
       |            |            |
       +----------> error <------+

``completed`` and ``error`` are terminal: a run in either state is never
mutated again.
"""

from typing import Dict, FrozenSet

STARTED = "started"
GENERATING = "generating"
STITCHING = "stitching"
COMPLETED = "completed"
ERROR = "error"

# Run states in execution order
RUN_STATES = {
    STARTED: "Run recorded, shot count not yet validated",
    GENERATING: "Planning transitions and synthesizing clips",
    STITCHING: "Concatenating clips into the final video",
    COMPLETED: "Final video available",
    ERROR: "Run failed; see error_message",
}

TERMINAL_STATES: FrozenSet[str] = frozenset({COMPLETED, ERROR})

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    STARTED: frozenset({GENERATING, ERROR}),
    GENERATING: frozenset({STITCHING, ERROR}),
    STITCHING: frozenset({COMPLETED, ERROR}),
    COMPLETED: frozenset(),
    ERROR: frozenset(),
}


def is_terminal(status: str) -> bool:
    """Return True if no further mutation is allowed in this status."""
    return status in TERMINAL_STATES


def can_transition(current: str, target: str) -> bool:
    """Check whether a run may move from ``current`` to ``target``.

    >>> can_transition("started", "generating")
    True
    >>> can_transition("completed", "error")
    False
    """
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())
