"""State machine definitions for one lookup attempt."""

from enum import Enum


class LookupState(str, Enum):
    """Steps of a single attempt, in the order they must happen."""

    INIT = "INIT"
    NAVIGATED = "NAVIGATED"
    CAPTCHA_SOLVED = "CAPTCHA_SOLVED"
    FORM_FILLED = "FORM_FILLED"
    SUBMITTED = "SUBMITTED"
    CLASSIFIED = "CLASSIFIED"
    EXTRACTED = "EXTRACTED"
    RETRY = "RETRY"
    FAILED = "FAILED"


# End states of an attempt
TERMINAL_STATES = {LookupState.EXTRACTED, LookupState.RETRY, LookupState.FAILED}

# Normal transitions. RETRY is reachable from every non-terminal state
# (any step can hit a transient fault); FAILED only follows classification.
STATE_TRANSITIONS: dict[LookupState, list[LookupState]] = {
    LookupState.INIT: [LookupState.NAVIGATED],
    LookupState.NAVIGATED: [LookupState.CAPTCHA_SOLVED],
    LookupState.CAPTCHA_SOLVED: [LookupState.FORM_FILLED],
    LookupState.FORM_FILLED: [LookupState.SUBMITTED],
    LookupState.SUBMITTED: [LookupState.CLASSIFIED],
    LookupState.CLASSIFIED: [LookupState.EXTRACTED, LookupState.FAILED],
}


def can_transition(current: LookupState, target: LookupState) -> bool:
    """Return True if *target* may follow *current*."""
    if current in TERMINAL_STATES:
        return False
    if target == LookupState.RETRY:
        return True
    return target in STATE_TRANSITIONS.get(current, [])
