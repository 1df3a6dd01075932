from referral_ledger.workers.tasks.referrals import (
    dispatch_referral_notifications,
    run_referral_expiry_sweep,
)

__all__ = [
    "dispatch_referral_notifications",
    "run_referral_expiry_sweep",
]
