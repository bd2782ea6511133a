from __future__ import annotations

from typing import Dict, List, Set

from .models import ExecutionState

EXECUTION_TRANSITIONS: Dict[ExecutionState, Set[ExecutionState]] = {
    ExecutionState.received: {ExecutionState.validating},
    ExecutionState.validating: {ExecutionState.validation_failed, ExecutionState.validated},
    ExecutionState.validation_failed: set(),
    ExecutionState.validated: {ExecutionState.executing},
    ExecutionState.executing: {
        ExecutionState.timed_out,
        ExecutionState.completed,
        ExecutionState.threw,
    },
    ExecutionState.timed_out: set(),
    ExecutionState.completed: set(),
    ExecutionState.threw: set(),
}

TERMINAL_STATES: Set[ExecutionState] = {
    state for state, targets in EXECUTION_TRANSITIONS.items() if not targets
}


def validate_execution_transition(current: ExecutionState, new: ExecutionState) -> bool:
    return new in EXECUTION_TRANSITIONS.get(current, set())


def is_terminal(state: ExecutionState, *, validate_only: bool = False) -> bool:
    if validate_only and state == ExecutionState.validated:
        return True
    return state in TERMINAL_STATES


class ExecutionTrace:
    """Records the states one tool call passes through."""

    def __init__(self) -> None:
        self.states: List[ExecutionState] = [ExecutionState.received]

    @property
    def current(self) -> ExecutionState:
        return self.states[-1]

    def advance(self, new: ExecutionState) -> None:
        if not validate_execution_transition(self.current, new):
            raise ValueError(f"invalid execution transition: {self.current.value} -> {new.value}")
        self.states.append(new)
