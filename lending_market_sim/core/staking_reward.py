#!/usr/bin/env python3
"""
Staking Reward Model

Share of LP-side interest routed to the staking pool, as a kinked function of
the fraction of LP shares that are staked. Slopes are signed so the reward
shrinks as more liquidity is staked.
"""

from dataclasses import dataclass
import logging

from .errors import AuthorizationError, ErrorCode, ValidationError
from .math import PERCENT_SCALE, MarketMath


logger = logging.getLogger(__name__)


@dataclass
class StakingRewardParams:
    """Signed kinked curve parameters at 10^8 scale"""
    slope1: int
    slope2: int
    kink: int
    base: int

    def validate(self):
        if not 0 <= self.kink < PERCENT_SCALE:
            raise ValidationError(ErrorCode.INVALID_REWARD_KINK, "Staked percentage kink must be below 100%")
        if self.slope2 > self.slope1:
            raise ValidationError(ErrorCode.INVALID_REWARD_SLOPES, "slope2 must not exceed slope1")
        if not 0 <= self.base <= PERCENT_SCALE:
            raise ValidationError(ErrorCode.INVALID_PARAMS, "Base reward must be within 0-100%")


class StakingRewardModel:
    """Kinked staking reward curve, initialized once by the launch principal"""

    def __init__(self, launch_principal: str, params: StakingRewardParams = None):
        self.launch_principal = launch_principal
        self.params = params or StakingRewardParams(0, 0, 0, 0)
        self.initialized = False

    def update_reward_params(self, caller: str, params: StakingRewardParams):
        if caller != self.launch_principal:
            raise AuthorizationError(ErrorCode.REWARD_NOT_LAUNCH_PRINCIPAL, f"{caller} is not the launch principal")
        if self.initialized:
            raise AuthorizationError(ErrorCode.REWARD_ALREADY_INITIALIZED, "Staking reward params already set")
        params.validate()
        self.params = params
        self.initialized = True
        logger.info("Staking reward params initialized: %s", params)

    def set_params(self, params: StakingRewardParams):
        params.validate()
        self.params = params
        self.initialized = True

    def reward_percentage(self, staked_percentage: int) -> int:
        """Percentage of LP interest paid to stakers, clamped to [0, 100%]"""
        if staked_percentage <= 0:
            return 0

        p = self.params
        below_kink = min(staked_percentage, p.kink)
        above_kink = max(staked_percentage - p.kink, 0)
        reward = (
            p.base
            + MarketMath.signed_mul_div(p.slope1, below_kink, PERCENT_SCALE)
            + MarketMath.signed_mul_div(p.slope2, above_kink, PERCENT_SCALE)
        )
        return max(0, min(reward, PERCENT_SCALE))

    @staticmethod
    def staked_percentage(staked_lp_shares: int, lp_share_supply: int) -> int:
        if lp_share_supply == 0:
            return 0
        return staked_lp_shares * PERCENT_SCALE // lp_share_supply
