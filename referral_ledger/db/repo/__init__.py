from referral_ledger.db.repo.account_bonus_balances_repo import AccountBonusBalancesRepo
from referral_ledger.db.repo.outbox_events_repo import OutboxEventsRepo
from referral_ledger.db.repo.referral_clicks_repo import ReferralClicksRepo
from referral_ledger.db.repo.referral_statistics_repo import ReferralStatisticsRepo
from referral_ledger.db.repo.referral_tiers_repo import ReferralTiersRepo
from referral_ledger.db.repo.referrals_repo import ReferralsRepo
from referral_ledger.db.repo.reward_entries_repo import RewardEntriesRepo

__all__ = [
    "AccountBonusBalancesRepo",
    "OutboxEventsRepo",
    "ReferralClicksRepo",
    "ReferralStatisticsRepo",
    "ReferralTiersRepo",
    "ReferralsRepo",
    "RewardEntriesRepo",
]
