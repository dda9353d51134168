# Overview: Fixed transition graphs for orders, remittances and payments.

"""
State Machine Core

================================================================================
PURPOSE: One generic engine, three fixed graphs
================================================================================

ORDER STATUS:
    PENDING -> PROCESSING -> SHIPPED -> DELIVERED -> COMPLETED
    PENDING | PROCESSING -> CANCELLED

PAYMENT STATUS (orders and remittances):
    PENDING -> PROOF_UPLOADED -> VALIDATED
    PROOF_UPLOADED -> REJECTED -> PENDING   (resubmission loop)

REMITTANCE STATUS:
    PAYMENT_PENDING -> PAYMENT_PROOF_UPLOADED -> PAYMENT_VALIDATED
        -> PROCESSING -> DELIVERED -> COMPLETED
    PAYMENT_PROOF_UPLOADED -> PAYMENT_REJECTED -> PAYMENT_PENDING
    PAYMENT_PENDING | PAYMENT_PROOF_UPLOADED | PAYMENT_REJECTED
        | PAYMENT_VALIDATED -> CANCELLED

RULES (NON-NEGOTIABLE):
1. Only listed edges are legal; no skipping, no self-loops.
2. Nothing leaves a terminal state (COMPLETED, CANCELLED).
3. validate_transition never touches the database.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from ..errors import InvalidTransitionError


# Order status
ORDER_PENDING = "PENDING"
ORDER_PROCESSING = "PROCESSING"
ORDER_SHIPPED = "SHIPPED"
ORDER_DELIVERED = "DELIVERED"
ORDER_COMPLETED = "COMPLETED"
ORDER_CANCELLED = "CANCELLED"

# Payment status
PAYMENT_PENDING = "PENDING"
PAYMENT_PROOF_UPLOADED = "PROOF_UPLOADED"
PAYMENT_VALIDATED = "VALIDATED"
PAYMENT_REJECTED = "REJECTED"

# Remittance status
REMITTANCE_PAYMENT_PENDING = "PAYMENT_PENDING"
REMITTANCE_PAYMENT_PROOF_UPLOADED = "PAYMENT_PROOF_UPLOADED"
REMITTANCE_PAYMENT_VALIDATED = "PAYMENT_VALIDATED"
REMITTANCE_PAYMENT_REJECTED = "PAYMENT_REJECTED"
REMITTANCE_PROCESSING = "PROCESSING"
REMITTANCE_DELIVERED = "DELIVERED"
REMITTANCE_COMPLETED = "COMPLETED"
REMITTANCE_CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class TransitionGraph:
    """Immutable description of a small, fixed state graph."""
    name: str
    initial: str
    terminal: frozenset
    edges: frozenset  # of (from_state, to_state)
    states: frozenset = field(init=False)

    def __post_init__(self):
        states = {self.initial, *self.terminal}
        for src, dst in self.edges:
            states.add(src)
            states.add(dst)
        object.__setattr__(self, "states", frozenset(states))


class StateMachine:
    """
    Generic transition validator over a TransitionGraph.

    Pure and total: every (current, requested) pair either passes or raises
    InvalidTransitionError.
    """

    def __init__(self, graph: TransitionGraph):
        self.graph = graph

    @property
    def initial(self) -> str:
        return self.graph.initial

    def is_terminal(self, state: str) -> bool:
        return state in self.graph.terminal

    def can_transition(self, current: str, requested: str) -> bool:
        return (current, requested) in self.graph.edges

    def allowed_from(self, current: str) -> set[str]:
        return {dst for src, dst in self.graph.edges if src == current}

    def validate_transition(self, current: str, requested: str) -> None:
        if current not in self.graph.states:
            raise InvalidTransitionError(
                f"Unknown {self.graph.name} state '{current}'",
                details={"current": current, "requested": requested},
            )
        if requested not in self.graph.states:
            raise InvalidTransitionError(
                f"Unknown {self.graph.name} state '{requested}'",
                details={"current": current, "requested": requested},
            )
        if self.is_terminal(current):
            raise InvalidTransitionError(
                f"{self.graph.name} is in terminal state '{current}'",
                details={"current": current, "requested": requested},
            )
        if not self.can_transition(current, requested):
            raise InvalidTransitionError(
                f"Cannot move {self.graph.name} from '{current}' to '{requested}'",
                details={
                    "current": current,
                    "requested": requested,
                    "allowed": sorted(self.allowed_from(current)),
                },
            )

    def validate_path(self, states: Iterable[str]) -> None:
        """
        Validate a sequence of visited states, starting at the initial state.

        Used to verify that a transaction's history never records a skipped
        or illegal edge.
        """
        visited = list(states)
        if not visited:
            return
        if visited[0] != self.graph.initial:
            raise InvalidTransitionError(
                f"{self.graph.name} history must start at '{self.graph.initial}', got '{visited[0]}'"
            )
        for current, requested in zip(visited, visited[1:]):
            self.validate_transition(current, requested)


ORDER_STATUS_GRAPH = TransitionGraph(
    name="order",
    initial=ORDER_PENDING,
    terminal=frozenset({ORDER_COMPLETED, ORDER_CANCELLED}),
    edges=frozenset({
        (ORDER_PENDING, ORDER_PROCESSING),
        (ORDER_PROCESSING, ORDER_SHIPPED),
        (ORDER_SHIPPED, ORDER_DELIVERED),
        (ORDER_DELIVERED, ORDER_COMPLETED),
        (ORDER_PENDING, ORDER_CANCELLED),
        (ORDER_PROCESSING, ORDER_CANCELLED),
    }),
)

PAYMENT_STATUS_GRAPH = TransitionGraph(
    name="payment",
    initial=PAYMENT_PENDING,
    terminal=frozenset(),
    edges=frozenset({
        (PAYMENT_PENDING, PAYMENT_PROOF_UPLOADED),
        (PAYMENT_PROOF_UPLOADED, PAYMENT_VALIDATED),
        (PAYMENT_PROOF_UPLOADED, PAYMENT_REJECTED),
        (PAYMENT_REJECTED, PAYMENT_PENDING),
    }),
)

REMITTANCE_STATUS_GRAPH = TransitionGraph(
    name="remittance",
    initial=REMITTANCE_PAYMENT_PENDING,
    terminal=frozenset({REMITTANCE_COMPLETED, REMITTANCE_CANCELLED}),
    edges=frozenset({
        (REMITTANCE_PAYMENT_PENDING, REMITTANCE_PAYMENT_PROOF_UPLOADED),
        (REMITTANCE_PAYMENT_PROOF_UPLOADED, REMITTANCE_PAYMENT_VALIDATED),
        (REMITTANCE_PAYMENT_PROOF_UPLOADED, REMITTANCE_PAYMENT_REJECTED),
        (REMITTANCE_PAYMENT_REJECTED, REMITTANCE_PAYMENT_PENDING),
        (REMITTANCE_PAYMENT_VALIDATED, REMITTANCE_PROCESSING),
        (REMITTANCE_PROCESSING, REMITTANCE_DELIVERED),
        (REMITTANCE_DELIVERED, REMITTANCE_COMPLETED),
        (REMITTANCE_PAYMENT_PENDING, REMITTANCE_CANCELLED),
        (REMITTANCE_PAYMENT_PROOF_UPLOADED, REMITTANCE_CANCELLED),
        (REMITTANCE_PAYMENT_REJECTED, REMITTANCE_CANCELLED),
        (REMITTANCE_PAYMENT_VALIDATED, REMITTANCE_CANCELLED),
    }),
)

ORDER_MACHINE = StateMachine(ORDER_STATUS_GRAPH)
PAYMENT_MACHINE = StateMachine(PAYMENT_STATUS_GRAPH)
REMITTANCE_MACHINE = StateMachine(REMITTANCE_STATUS_GRAPH)


def validate_transition(graph: TransitionGraph, current: str, requested: str) -> None:
    """Functional form: validate one edge of an arbitrary graph."""
    StateMachine(graph).validate_transition(current, requested)
