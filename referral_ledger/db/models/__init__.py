from referral_ledger.db.models.account_bonus_balances import AccountBonusBalance
from referral_ledger.db.models.outbox_events import OutboxEvent
from referral_ledger.db.models.referral_clicks import ReferralClick
from referral_ledger.db.models.referral_reward_entries import RewardLedgerEntry
from referral_ledger.db.models.referral_statistics import ReferralStatistics
from referral_ledger.db.models.referral_tiers import ReferralTier
from referral_ledger.db.models.referrals import Referral

__all__ = [
    "AccountBonusBalance",
    "OutboxEvent",
    "Referral",
    "ReferralClick",
    "ReferralStatistics",
    "ReferralTier",
    "RewardLedgerEntry",
]
