#!/usr/bin/env python3
"""
Market configuration schemas

Pydantic models for every deploy-time parameter of a lending market. A
validated `MarketConfig` builds a ready-to-use engine with its interest rate
curve, staking reward curve, collateral settings and withdrawal caps applied.
"""

from typing import List, Optional, TYPE_CHECKING

from pydantic import BaseModel, Field, field_validator, model_validator

from ..core.collateral import MAX_DECIMALS, CollateralConfig
from ..core.interest_rate import InterestRateParams
from ..core.math import IR_SCALE, PERCENT_SCALE, U128_MAX
from ..core.staking_reward import StakingRewardParams

if TYPE_CHECKING:
    from ..core.oracle import PriceOracle
    from .market_engine import LendingMarketEngine


class InterestRateConfig(BaseModel):
    """Kinked borrow rate curve, annualized at 10^12 scale"""
    slope1: int = Field(ge=0, default=750_000_000_000, description="Rate slope below the kink")
    slope2: int = Field(ge=0, default=1_500_000_000_000, description="Rate slope above the kink")
    kink: int = Field(ge=0, lt=IR_SCALE, default=700_000_000_000, description="Utilization breakpoint")
    base_ir: int = Field(ge=0, default=5_000_000_000, description="Rate at zero utilization")

    def to_params(self) -> InterestRateParams:
        return InterestRateParams(self.slope1, self.slope2, self.kink, self.base_ir)


class StakingRewardConfig(BaseModel):
    """Share of LP interest paid to stakers as a function of the staked percentage, 10^8 scale"""
    slope1: int = Field(default=-50_000_000, description="Reward slope below the kink (may be negative)")
    slope2: int = Field(default=-70_000_000, description="Reward slope above the kink (may be negative)")
    kink: int = Field(ge=0, lt=PERCENT_SCALE, default=70_000_000, description="Staked percentage breakpoint")
    base: int = Field(ge=0, le=PERCENT_SCALE, default=50_000_000, description="Reward at zero stake")

    @model_validator(mode="after")
    def check_slopes(self):
        if self.slope2 > self.slope1:
            raise ValueError("slope2 must not exceed slope1")
        return self

    def to_params(self) -> StakingRewardParams:
        return StakingRewardParams(self.slope1, self.slope2, self.kink, self.base)


class CollateralSettings(BaseModel):
    """Risk settings for one collateral token"""
    asset: str = Field(min_length=1)
    max_ltv: int = Field(ge=0, le=PERCENT_SCALE, description="Borrowing limit at 10^8")
    liquidation_ltv: int = Field(ge=0, le=PERCENT_SCALE, description="Liquidation threshold at 10^8")
    liquidation_discount: int = Field(ge=0, le=PERCENT_SCALE, description="Liquidator bonus at 10^8")
    decimals: int = Field(ge=0, le=MAX_DECIMALS, default=8)
    cap_factor: int = Field(ge=0, le=PERCENT_SCALE, default=0, description="Removal cap as a share of deposits")

    @model_validator(mode="after")
    def check_ltv_order(self):
        if self.max_ltv > self.liquidation_ltv:
            raise ValueError("max_ltv must not exceed liquidation_ltv")
        if self.liquidation_ltv * (PERCENT_SCALE + self.liquidation_discount) // PERCENT_SCALE >= PERCENT_SCALE:
            raise ValueError("liquidation_ltv * (1 + liquidation_discount) must stay below 100%")
        return self

    def to_config(self, block: int = 0) -> CollateralConfig:
        return CollateralConfig(
            asset=self.asset,
            max_ltv=self.max_ltv,
            liquidation_ltv=self.liquidation_ltv,
            liquidation_discount=self.liquidation_discount,
            decimals=self.decimals,
            updated_at_block=block,
        )


class WithdrawalCapConfig(BaseModel):
    """Token bucket settings; a factor of 0 leaves that bucket disabled"""
    lp_cap_factor: int = Field(ge=0, le=PERCENT_SCALE, default=0)
    debt_cap_factor: int = Field(ge=0, le=PERCENT_SCALE, default=0)
    refill_window: int = Field(gt=0, default=86_400, description="Seconds to refill an empty bucket")
    decay_window: int = Field(gt=0, default=10_800, description="Seconds for credit above the cap to decay")


class StakingConfig(BaseModel):
    address: str = Field(default="staking-pool", min_length=1)
    cooldown_blocks: int = Field(ge=0, default=100, description="Blocks between unstake and finalize")


class MarketConfig(BaseModel):
    """Complete deploy-time configuration of one market"""
    market_asset: str = Field(default="USDC", min_length=1)
    market_decimals: int = Field(ge=0, le=MAX_DECIMALS, default=8)
    asset_cap: int = Field(ge=0, le=U128_MAX, default=U128_MAX)
    protocol_reserve_percentage: int = Field(ge=0, le=PERCENT_SCALE, default=10_000_000)
    pyth_time_delta: int = Field(ge=0, default=60, description="Maximum accepted price age in seconds")

    seconds_per_block: int = Field(gt=0, default=10)
    genesis_time: int = Field(ge=0, default=1_700_000_000)

    max_collaterals: int = Field(gt=0, default=10)
    max_batch_size: int = Field(gt=0, default=50)
    flash_loan_fee_bps: int = Field(ge=0, le=10_000, default=1, description="Fee on notional in basis points")

    governance: str = Field(default="governance", min_length=1)
    guardian: Optional[str] = Field(default="guardian")
    launch_principal: str = Field(default="deployer", min_length=1)
    market_address: str = Field(default="lending-market", min_length=1)

    interest_rate: Optional[InterestRateConfig] = Field(default_factory=InterestRateConfig)
    staking_reward: Optional[StakingRewardConfig] = None
    collaterals: List[CollateralSettings] = Field(default_factory=list)
    withdrawal_caps: WithdrawalCapConfig = Field(default_factory=WithdrawalCapConfig)
    staking: StakingConfig = Field(default_factory=StakingConfig)

    @field_validator("collaterals")
    @classmethod
    def unique_collaterals(cls, v):
        assets = [c.asset for c in v]
        if len(assets) != len(set(assets)):
            raise ValueError("Collateral assets must be unique")
        return v

    @model_validator(mode="after")
    def check_market_asset(self):
        if self.market_asset in {c.asset for c in self.collaterals}:
            raise ValueError("The market asset cannot also be a collateral")
        return self

    def create_engine(self, oracle: "Optional[PriceOracle]" = None) -> "LendingMarketEngine":
        """Build an engine and apply the launch-time parameters"""
        from .market_engine import LendingMarketEngine

        engine = LendingMarketEngine(self, oracle)
        if self.interest_rate is not None:
            engine.update_ir_params(self.launch_principal, self.interest_rate.to_params())
        if self.staking_reward is not None:
            engine.update_reward_params(self.launch_principal, self.staking_reward.to_params())

        for settings in self.collaterals:
            engine.update_collateral_settings(
                self.governance, settings.asset, settings.max_ltv, settings.liquidation_ltv,
                settings.liquidation_discount, settings.decimals
            )
            if settings.cap_factor:
                engine.set_collateral_cap_factor(self.governance, settings.asset, settings.cap_factor)
        return engine
