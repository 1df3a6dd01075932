from __future__ import annotations

from .activation import activate_referral, activate_referred_identity
from .balances import AccountBalanceGateway, SqlAccountBalanceGateway
from .claims import claim_all_rewards, claim_reward
from .funnel import (
    cancel_referral,
    expire_overdue_referrals,
    expire_referral,
    record_click,
    record_signup,
)
from .invitations import create_referral
from .queries import (
    get_referral_history,
    get_rewards_overview,
    get_statistics,
    load_tier_table,
    lookup_referral_code,
)


class ReferralService:
    create_referral = staticmethod(create_referral)
    record_click = staticmethod(record_click)
    record_signup = staticmethod(record_signup)
    expire_referral = staticmethod(expire_referral)
    cancel_referral = staticmethod(cancel_referral)
    expire_overdue_referrals = staticmethod(expire_overdue_referrals)
    activate_referral = staticmethod(activate_referral)
    activate_referred_identity = staticmethod(activate_referred_identity)
    claim_reward = staticmethod(claim_reward)
    claim_all_rewards = staticmethod(claim_all_rewards)
    load_tier_table = staticmethod(load_tier_table)
    get_rewards_overview = staticmethod(get_rewards_overview)
    get_statistics = staticmethod(get_statistics)
    lookup_referral_code = staticmethod(lookup_referral_code)
    get_referral_history = staticmethod(get_referral_history)


__all__ = [
    "AccountBalanceGateway",
    "ReferralService",
    "SqlAccountBalanceGateway",
]
