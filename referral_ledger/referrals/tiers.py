from __future__ import annotations

from collections.abc import Sequence

from referral_ledger.referrals.types import TierDefinition

NO_TIER = TierDefinition(
    level=0,
    name="none",
    referrals_required=0,
    reward_minutes=0,
    reward_credit_cents=0,
)

DEFAULT_TIERS: tuple[TierDefinition, ...] = (
    TierDefinition(level=1, name="Bronze", referrals_required=1, reward_minutes=60, reward_credit_cents=0),
    TierDefinition(level=2, name="Silver", referrals_required=3, reward_minutes=200, reward_credit_cents=0),
    TierDefinition(level=3, name="Gold", referrals_required=5, reward_minutes=500, reward_credit_cents=5000),
    TierDefinition(
        level=4,
        name="Platinum",
        referrals_required=10,
        reward_minutes=1000,
        reward_credit_cents=10000,
    ),
)


def validate_tier_table(tiers: Sequence[TierDefinition]) -> tuple[TierDefinition, ...]:
    ordered = tuple(sorted(tiers, key=lambda tier: tier.level))
    previous_required = 0
    for tier in ordered:
        if tier.referrals_required <= previous_required:
            raise ValueError(
                f"tier {tier.level} requires {tier.referrals_required} referrals, "
                f"expected more than {previous_required}"
            )
        if tier.reward_minutes < 0 or tier.reward_credit_cents < 0:
            raise ValueError(f"tier {tier.level} has a negative reward")
        previous_required = tier.referrals_required
    return ordered


def tier_for(
    qualifying_count: int,
    tiers: Sequence[TierDefinition] = DEFAULT_TIERS,
    *,
    fallback_to_lowest: bool = False,
) -> TierDefinition:
    """Returns the highest tier whose threshold is met by ``qualifying_count``.

    Below the first threshold the result is ``NO_TIER``, or the lowest tier when
    ``fallback_to_lowest`` is set. ``tiers`` must be ordered by level.
    """
    selected: TierDefinition | None = None
    for tier in tiers:
        if tier.referrals_required <= qualifying_count:
            selected = tier
        else:
            break
    if selected is not None:
        return selected
    if fallback_to_lowest and tiers:
        return tiers[0]
    return NO_TIER


def next_tier_after(
    qualifying_count: int,
    tiers: Sequence[TierDefinition] = DEFAULT_TIERS,
) -> TierDefinition | None:
    for tier in tiers:
        if tier.referrals_required > qualifying_count:
            return tier
    return None
