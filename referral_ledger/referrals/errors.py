class ReferralError(Exception):
    pass


class ReferralNotFoundError(ReferralError):
    pass


class RewardNotFoundError(ReferralError):
    pass


class RewardAlreadyClaimedError(ReferralError):
    pass


class RewardExpiredError(ReferralError):
    pass


class ReferralNotEligibleError(ReferralError):
    pass


class ReferralTransitionError(ReferralError):
    def __init__(self, *, status: str, event: str) -> None:
        super().__init__(f"transition rejected: {status} -> {event}")
        self.status = status
        self.event = event


class ReferralAlreadyExistsError(ReferralError):
    pass


class ReferralInvalidIdentityError(ReferralError):
    pass


class ReferralStoreUnavailableError(ReferralError):
    pass
