from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple


class RequestState(str, Enum):
    """
    Lifecycle of a single request/response cycle.

    There is no retry state: FAILED is terminal for the call.
    """

    IDLE = "IDLE"
    ENCODING = "ENCODING"
    SENT = "SENT"
    AWAITING_RESPONSE = "AWAITING_RESPONSE"
    DECODED = "DECODED"
    FAILED = "FAILED"


TERMINAL_STATES: FrozenSet[RequestState] = frozenset({RequestState.DECODED, RequestState.FAILED})

_TRANSITIONS: Dict[RequestState, FrozenSet[RequestState]] = {
    RequestState.IDLE: frozenset({RequestState.ENCODING, RequestState.FAILED}),
    RequestState.ENCODING: frozenset({RequestState.SENT, RequestState.FAILED}),
    RequestState.SENT: frozenset({RequestState.AWAITING_RESPONSE, RequestState.FAILED}),
    RequestState.AWAITING_RESPONSE: frozenset({RequestState.DECODED, RequestState.FAILED}),
    RequestState.DECODED: frozenset(),
    RequestState.FAILED: frozenset(),
}


class InvalidTransition(RuntimeError):
    """Raised when a cycle is driven out of order."""


@dataclass
class RequestCycle:
    """
    Per-request state machine.

    Security invariants
    - Transitions follow IDLE -> ENCODING -> SENT -> AWAITING_RESPONSE -> DECODED
    - FAILED is reachable from every non-terminal state
    - Terminal states accept no further transitions
    """

    state: RequestState = RequestState.IDLE
    error: Optional[BaseException] = None
    history: List[Tuple[RequestState, datetime]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append((self.state, datetime.now(timezone.utc)))

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, new_state: RequestState) -> None:
        """Move to `new_state`.

        Raises
        - InvalidTransition: if the move is not allowed from the current state.
        """

        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"cannot move from {self.state.value} to {new_state.value}")
        self.state = new_state
        self.history.append((new_state, datetime.now(timezone.utc)))

    def fail(self, error: BaseException) -> None:
        """Record `error` and move to FAILED."""

        self.error = error
        self.advance(RequestState.FAILED)

    def states(self) -> List[RequestState]:
        return [s for s, _ in self.history]
