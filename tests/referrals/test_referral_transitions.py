from __future__ import annotations

import pytest

from referral_ledger.referrals.constants import REFERRAL_STATUSES, TERMINAL_STATUSES
from referral_ledger.referrals.errors import ReferralTransitionError
from referral_ledger.referrals.transitions import (
    EVENT_ACTIVATE,
    EVENT_CANCEL,
    EVENT_CLICK,
    EVENT_EXPIRE,
    EVENT_REWARD,
    EVENT_SIGNUP,
    TRANSITIONS,
    can_transition,
    resolve_transition,
)

ALL_EVENTS = (EVENT_CLICK, EVENT_SIGNUP, EVENT_ACTIVATE, EVENT_REWARD, EVENT_EXPIRE, EVENT_CANCEL)


@pytest.mark.parametrize(
    ("status", "event", "expected"),
    [
        ("pending", EVENT_CLICK, "clicked"),
        ("pending", EVENT_SIGNUP, "signed_up"),
        ("clicked", EVENT_SIGNUP, "signed_up"),
        ("signed_up", EVENT_ACTIVATE, "active"),
        ("active", EVENT_REWARD, "rewarded"),
        ("clicked", EVENT_EXPIRE, "expired"),
        ("signed_up", EVENT_CANCEL, "cancelled"),
    ],
)
def test_resolve_transition_allows_funnel_moves(status: str, event: str, expected: str) -> None:
    assert resolve_transition(status, event) == expected


@pytest.mark.parametrize(
    ("status", "event"),
    [
        ("pending", EVENT_ACTIVATE),
        ("clicked", EVENT_CLICK),
        ("signed_up", EVENT_SIGNUP),
        ("active", EVENT_EXPIRE),
        ("active", EVENT_CANCEL),
        ("expired", EVENT_SIGNUP),
    ],
)
def test_resolve_transition_rejects_out_of_order_moves(status: str, event: str) -> None:
    with pytest.raises(ReferralTransitionError) as exc_info:
        resolve_transition(status, event)

    assert exc_info.value.status == status
    assert exc_info.value.event == event
    assert can_transition(status, event) is False


def test_terminal_statuses_have_no_outgoing_transitions() -> None:
    for status in TERMINAL_STATUSES:
        assert not any(can_transition(status, event) for event in ALL_EVENTS)


def test_transition_table_only_mentions_known_statuses() -> None:
    for (status, event), next_status in TRANSITIONS.items():
        assert status in REFERRAL_STATUSES
        assert next_status in REFERRAL_STATUSES
        assert event in ALL_EVENTS
