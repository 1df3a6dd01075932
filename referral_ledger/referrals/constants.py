from __future__ import annotations

STATUS_PENDING = "pending"
STATUS_CLICKED = "clicked"
STATUS_SIGNED_UP = "signed_up"
STATUS_ACTIVE = "active"
STATUS_REWARDED = "rewarded"
STATUS_EXPIRED = "expired"
STATUS_CANCELLED = "cancelled"

REFERRAL_STATUSES = (
    STATUS_PENDING,
    STATUS_CLICKED,
    STATUS_SIGNED_UP,
    STATUS_ACTIVE,
    STATUS_REWARDED,
    STATUS_EXPIRED,
    STATUS_CANCELLED,
)
TERMINAL_STATUSES = frozenset({STATUS_REWARDED, STATUS_EXPIRED, STATUS_CANCELLED})
OPEN_FUNNEL_STATUSES = (STATUS_PENDING, STATUS_CLICKED)
SIGNED_UP_OR_LATER_STATUSES = frozenset({STATUS_SIGNED_UP, STATUS_ACTIVE, STATUS_REWARDED})

DEFAULT_PRODUCT_CONTEXT = "default"
REFERRAL_CODE_LENGTH = 8
REFERRAL_CODE_MAX_ATTEMPTS = 5

OUTBOX_EVENT_REWARD_GRANTED = "referral_reward_granted"
OUTBOX_STATUS_PENDING = "PENDING"

EXPIRY_SWEEP_BATCH_SIZE = 200
NOTIFICATION_DISPATCH_BATCH_SIZE = 100
HISTORY_DEFAULT_PAGE_SIZE = 10
HISTORY_MAX_PAGE_SIZE = 50
