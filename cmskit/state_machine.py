"""Status state machine for cmskit form sessions.

This module holds the transition table that a FormSession's status follows:

    loading ──> idle ──> submitting ──> success
       │         ^            │            │
       v         │            v            │
     error ──────┴──────── error           │
                 ^─────────────────────────┘  (explicit reset)

A load failure leaves the session in ``error`` without a form definition and
the session refuses to leave it; that guard lives in FormSession because it
depends on whether a form is installed, not on the status alone.

Usage:
    >>> from cmskit.state_machine import FormStateMachine
    >>> from cmskit.types import FormStatus
    >>> sm = FormStateMachine()
    >>> sm.status
    <FormStatus.IDLE: 'idle'>
    >>> sm.transition_to(FormStatus.SUBMITTING)
    >>> sm.status
    <FormStatus.SUBMITTING: 'submitting'>
"""

from dataclasses import dataclass
from typing import Dict, Set

from cmskit.types import FormStatus


class InvalidStateTransitionError(Exception):
    """Raised when attempting an invalid status transition.

    Attributes:
        current_status: The status before the attempted transition
        target_status: The status that was attempted
    """

    def __init__(self, current_status: FormStatus, target_status: FormStatus, message: str):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(message)


# Maps each status to the set of statuses it can transition to
VALID_TRANSITIONS: Dict[FormStatus, Set[FormStatus]] = {
    FormStatus.LOADING: {
        FormStatus.IDLE,
        FormStatus.ERROR,
    },
    FormStatus.IDLE: {
        FormStatus.SUBMITTING,
    },
    FormStatus.SUBMITTING: {
        FormStatus.SUCCESS,
        FormStatus.ERROR,
    },
    FormStatus.SUCCESS: {
        FormStatus.IDLE,
    },
    FormStatus.ERROR: {
        FormStatus.IDLE,
    },
}


@dataclass
class FormStateMachine:
    """Tracks a form session's status and enforces valid transitions.

    Attributes:
        status: Current status

    Examples:
        >>> sm = FormStateMachine(status=FormStatus.LOADING)
        >>> sm.can_transition_to(FormStatus.SUBMITTING)
        False
        >>> sm.transition_to(FormStatus.IDLE)
        >>> sm.is_editable()
        True
    """

    status: FormStatus = FormStatus.IDLE

    def can_transition_to(self, target_status: FormStatus) -> bool:
        """Check if transition to target status is valid."""
        return target_status in VALID_TRANSITIONS.get(self.status, set())

    def transition_to(self, target_status: FormStatus) -> None:
        """Move to a new status.

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        if not self.can_transition_to(target_status):
            allowed = ", ".join(sorted(s.value for s in VALID_TRANSITIONS[self.status]))
            raise InvalidStateTransitionError(
                current_status=self.status,
                target_status=target_status,
                message=(
                    f"Invalid status transition: cannot transition from "
                    f"'{self.status.value}' to '{target_status.value}'. "
                    f"Valid transitions from '{self.status.value}' are: {allowed}"
                ),
            )
        self.status = target_status

    def is_editable(self) -> bool:
        """Whether field edits and submits are accepted in the current status.

        True for ``idle`` and ``error``; for ``error`` the session additionally
        requires a loaded form.
        """
        return self.status in (FormStatus.IDLE, FormStatus.ERROR)


__all__ = [
    "FormStateMachine",
    "InvalidStateTransitionError",
    "VALID_TRANSITIONS",
]
