"""
Transition graph tests.

Verifies:
- Every listed edge is accepted
- Skipped steps, self-loops and unknown states are rejected
- Nothing leaves a terminal state
- validate_path replays a history from the initial state
"""

import pytest

from papu.errors import InvalidTransitionError
from papu.services import state_machine as sm


# =============================================================================
# ORDER STATUS
# =============================================================================


class TestOrderGraph:

    @pytest.mark.parametrize(
        "current,requested",
        [
            (sm.ORDER_PENDING, sm.ORDER_PROCESSING),
            (sm.ORDER_PROCESSING, sm.ORDER_SHIPPED),
            (sm.ORDER_SHIPPED, sm.ORDER_DELIVERED),
            (sm.ORDER_DELIVERED, sm.ORDER_COMPLETED),
            (sm.ORDER_PENDING, sm.ORDER_CANCELLED),
            (sm.ORDER_PROCESSING, sm.ORDER_CANCELLED),
        ],
    )
    def test_legal_edges(self, current, requested):
        sm.ORDER_MACHINE.validate_transition(current, requested)

    @pytest.mark.parametrize(
        "current,requested",
        [
            (sm.ORDER_PENDING, sm.ORDER_SHIPPED),
            (sm.ORDER_PENDING, sm.ORDER_COMPLETED),
            (sm.ORDER_SHIPPED, sm.ORDER_CANCELLED),
            (sm.ORDER_DELIVERED, sm.ORDER_CANCELLED),
            (sm.ORDER_PROCESSING, sm.ORDER_PENDING),
            (sm.ORDER_PENDING, sm.ORDER_PENDING),
        ],
    )
    def test_illegal_edges(self, current, requested):
        with pytest.raises(InvalidTransitionError):
            sm.ORDER_MACHINE.validate_transition(current, requested)

    @pytest.mark.parametrize("terminal", [sm.ORDER_COMPLETED, sm.ORDER_CANCELLED])
    def test_terminal_states_are_final(self, terminal):
        assert sm.ORDER_MACHINE.is_terminal(terminal)
        assert sm.ORDER_MACHINE.allowed_from(terminal) == set()
        for state in sm.ORDER_STATUS_GRAPH.states:
            with pytest.raises(InvalidTransitionError):
                sm.ORDER_MACHINE.validate_transition(terminal, state)

    def test_unknown_state_rejected(self):
        with pytest.raises(InvalidTransitionError) as exc:
            sm.ORDER_MACHINE.validate_transition(sm.ORDER_PENDING, "LOST")
        assert exc.value.details["requested"] == "LOST"

    def test_error_lists_allowed_next_states(self):
        with pytest.raises(InvalidTransitionError) as exc:
            sm.ORDER_MACHINE.validate_transition(sm.ORDER_PENDING, sm.ORDER_DELIVERED)
        assert exc.value.details["allowed"] == [sm.ORDER_CANCELLED, sm.ORDER_PROCESSING]
        assert exc.value.status_code == 409


# =============================================================================
# PAYMENT STATUS
# =============================================================================


class TestPaymentGraph:

    def test_resubmission_loop(self):
        sm.PAYMENT_MACHINE.validate_path([
            sm.PAYMENT_PENDING,
            sm.PAYMENT_PROOF_UPLOADED,
            sm.PAYMENT_REJECTED,
            sm.PAYMENT_PENDING,
            sm.PAYMENT_PROOF_UPLOADED,
            sm.PAYMENT_VALIDATED,
        ])

    def test_cannot_validate_without_proof(self):
        with pytest.raises(InvalidTransitionError):
            sm.PAYMENT_MACHINE.validate_transition(sm.PAYMENT_PENDING, sm.PAYMENT_VALIDATED)

    def test_validated_has_no_way_back(self):
        assert sm.PAYMENT_MACHINE.allowed_from(sm.PAYMENT_VALIDATED) == set()


# =============================================================================
# REMITTANCE STATUS
# =============================================================================


class TestRemittanceGraph:

    def test_happy_path(self):
        sm.REMITTANCE_MACHINE.validate_path([
            sm.REMITTANCE_PAYMENT_PENDING,
            sm.REMITTANCE_PAYMENT_PROOF_UPLOADED,
            sm.REMITTANCE_PAYMENT_VALIDATED,
            sm.REMITTANCE_PROCESSING,
            sm.REMITTANCE_DELIVERED,
            sm.REMITTANCE_COMPLETED,
        ])

    @pytest.mark.parametrize(
        "state",
        [
            sm.REMITTANCE_PAYMENT_PENDING,
            sm.REMITTANCE_PAYMENT_PROOF_UPLOADED,
            sm.REMITTANCE_PAYMENT_REJECTED,
            sm.REMITTANCE_PAYMENT_VALIDATED,
        ],
    )
    def test_cancellable_before_processing(self, state):
        sm.REMITTANCE_MACHINE.validate_transition(state, sm.REMITTANCE_CANCELLED)

    @pytest.mark.parametrize("state", [sm.REMITTANCE_PROCESSING, sm.REMITTANCE_DELIVERED])
    def test_not_cancellable_once_processing(self, state):
        with pytest.raises(InvalidTransitionError):
            sm.REMITTANCE_MACHINE.validate_transition(state, sm.REMITTANCE_CANCELLED)

    def test_processing_requires_validated_payment(self):
        with pytest.raises(InvalidTransitionError):
            sm.REMITTANCE_MACHINE.validate_transition(
                sm.REMITTANCE_PAYMENT_PROOF_UPLOADED, sm.REMITTANCE_PROCESSING
            )


# =============================================================================
# PATH REPLAY
# =============================================================================


class TestValidatePath:

    def test_empty_path_is_valid(self):
        sm.ORDER_MACHINE.validate_path([])

    def test_must_start_at_initial_state(self):
        with pytest.raises(InvalidTransitionError):
            sm.ORDER_MACHINE.validate_path([sm.ORDER_PROCESSING, sm.ORDER_SHIPPED])

    def test_detects_skipped_step(self):
        with pytest.raises(InvalidTransitionError):
            sm.ORDER_MACHINE.validate_path([sm.ORDER_PENDING, sm.ORDER_PROCESSING, sm.ORDER_DELIVERED])

    def test_functional_form_uses_given_graph(self):
        sm.validate_transition(sm.REMITTANCE_STATUS_GRAPH, sm.REMITTANCE_PROCESSING, sm.REMITTANCE_DELIVERED)
        with pytest.raises(InvalidTransitionError):
            sm.validate_transition(sm.ORDER_STATUS_GRAPH, sm.REMITTANCE_PROCESSING, sm.ORDER_COMPLETED)
