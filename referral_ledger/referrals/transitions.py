from __future__ import annotations

from referral_ledger.referrals.constants import (
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_CLICKED,
    STATUS_EXPIRED,
    STATUS_PENDING,
    STATUS_REWARDED,
    STATUS_SIGNED_UP,
)
from referral_ledger.referrals.errors import ReferralTransitionError

EVENT_CLICK = "click"
EVENT_SIGNUP = "signup"
EVENT_ACTIVATE = "activate"
EVENT_REWARD = "reward"
EVENT_EXPIRE = "expire"
EVENT_CANCEL = "cancel"

# (current status, event) -> next status. Anything missing is rejected.
TRANSITIONS: dict[tuple[str, str], str] = {
    (STATUS_PENDING, EVENT_CLICK): STATUS_CLICKED,
    (STATUS_PENDING, EVENT_SIGNUP): STATUS_SIGNED_UP,
    (STATUS_CLICKED, EVENT_SIGNUP): STATUS_SIGNED_UP,
    (STATUS_SIGNED_UP, EVENT_ACTIVATE): STATUS_ACTIVE,
    (STATUS_ACTIVE, EVENT_REWARD): STATUS_REWARDED,
    (STATUS_PENDING, EVENT_EXPIRE): STATUS_EXPIRED,
    (STATUS_CLICKED, EVENT_EXPIRE): STATUS_EXPIRED,
    (STATUS_SIGNED_UP, EVENT_EXPIRE): STATUS_EXPIRED,
    (STATUS_PENDING, EVENT_CANCEL): STATUS_CANCELLED,
    (STATUS_CLICKED, EVENT_CANCEL): STATUS_CANCELLED,
    (STATUS_SIGNED_UP, EVENT_CANCEL): STATUS_CANCELLED,
}


def can_transition(status: str, event: str) -> bool:
    return (status, event) in TRANSITIONS


def resolve_transition(status: str, event: str) -> str:
    next_status = TRANSITIONS.get((status, event))
    if next_status is None:
        raise ReferralTransitionError(status=status, event=event)
    return next_status
