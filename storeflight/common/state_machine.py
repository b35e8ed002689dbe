"""Reservation status transitions."""

PENDING = "pending"
PAID = "paid"

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {PAID},
    # Re-confirming a paid reservation is a no-op, never a step back.
    PAID: {PAID},
}


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current} -> {new}")
