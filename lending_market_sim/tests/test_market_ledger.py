#!/usr/bin/env python3
"""
Market Ledger Test Suite

LP and debt share accounting, reserve-backed cash, interest accrual and
bad-debt socialization on the bare ledger.
"""

import sys
import os
import pytest

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from lending_market_sim.core.errors import ErrorCode, MarketError
from lending_market_sim.core.interest_rate import InterestRateParams, LinearKinkedInterestRateModel
from lending_market_sim.core.market import MarketLedger
from lending_market_sim.core.math import U128_MAX, MarketMath
from lending_market_sim.core.staking_reward import StakingRewardModel, StakingRewardParams


def default_rate_model() -> LinearKinkedInterestRateModel:
    model = LinearKinkedInterestRateModel("deployer")
    model.update_ir_params("deployer", InterestRateParams(
        750_000_000_000, 1_500_000_000_000, 700_000_000_000, 5_000_000_000
    ))
    return model


class TestLiquidityShares:
    """Deposits, withdrawals and share pricing"""

    def setup_method(self):
        self.ledger = MarketLedger("USDC", asset_cap=U128_MAX)

    def test_first_deposit_mints_one_to_one(self):
        shares = self.ledger.deposit("alice", 1000)
        assert shares == 1000
        assert self.ledger.lp_balance_of("alice") == 1000
        assert self.ledger.total_assets == 1000

    def test_deposit_after_growth_mints_fewer_shares(self):
        self.ledger.deposit("alice", 1000)
        self.ledger.add_fee_income(1000)
        assert self.ledger.deposit("bob", 1000) == 500, "Share price doubled"

    def test_zero_deposit_rejected(self):
        with pytest.raises(MarketError) as exc:
            self.ledger.deposit("alice", 0)
        assert exc.value.code == ErrorCode.ZERO_AMOUNT

    def test_asset_cap(self):
        ledger = MarketLedger("USDC", asset_cap=1500)
        ledger.deposit("alice", 1000)
        with pytest.raises(MarketError) as exc:
            ledger.deposit("bob", 501)
        assert exc.value.code == ErrorCode.ASSET_CAP
        ledger.deposit("bob", 500)
        assert ledger.total_assets == 1500

    def test_withdraw_rounds_shares_up(self):
        self.ledger.deposit("alice", 1000)
        self.ledger.add_fee_income(2000)
        burned = self.ledger.withdraw("alice", 1)
        assert burned == 1, "1/3 of a share rounds up to one share"
        assert self.ledger.total_assets == 2999

    def test_withdraw_more_than_owned(self):
        self.ledger.deposit("alice", 1000)
        self.ledger.deposit("bob", 1000)
        with pytest.raises(MarketError) as exc:
            self.ledger.withdraw("alice", 1500)
        assert exc.value.code == ErrorCode.INSUFFICIENT_LP_SHARES

    def test_redeem_pays_share_value(self):
        self.ledger.deposit("alice", 1000)
        self.ledger.add_fee_income(500)
        assert self.ledger.redeem("alice", 400) == 600
        assert self.ledger.lp_share_supply == 600

    def test_transfer_lp(self):
        self.ledger.deposit("alice", 1000)
        self.ledger.transfer_lp("alice", "bob", 300)
        assert self.ledger.lp_balance_of("alice") == 700
        assert self.ledger.lp_balance_of("bob") == 300
        with pytest.raises(MarketError):
            self.ledger.transfer_lp("bob", "carol", 301)


class TestReserveBackedCash:
    """Cash counts the reserve; free liquidity does not"""

    def setup_method(self):
        self.ledger = MarketLedger("USDC", asset_cap=U128_MAX)
        self.ledger.deposit("alice", 1000)
        self.ledger.borrow(700)
        self.ledger.deposit_to_reserve(500)

    def test_cash_and_free_liquidity(self):
        assert self.ledger.free_liquidity == 300
        assert self.ledger.cash == 800

    def test_withdraw_limited_by_cash(self):
        with pytest.raises(MarketError) as exc:
            self.ledger.withdraw("alice", 1000)
        assert exc.value.code == ErrorCode.INSUFFICIENT_LIQUIDITY

    def test_withdraw_draws_reserve_cash(self):
        self.ledger.withdraw("alice", 800)
        assert self.ledger.reserve_balance == 500, "Reserve accounting is unchanged"
        assert self.ledger.cash == 0

    def test_borrow_cannot_use_reserve(self):
        with pytest.raises(MarketError) as exc:
            self.ledger.borrow(301)
        assert exc.value.code == ErrorCode.INSUFFICIENT_FREE_LIQUIDITY

    def test_reserve_withdrawal_bounds(self):
        with pytest.raises(MarketError) as exc:
            self.ledger.withdraw_from_reserve(501)
        assert exc.value.code == ErrorCode.INSUFFICIENT_BALANCE
        self.ledger.withdraw_from_reserve(500)
        assert self.ledger.reserve_balance == 0


class TestDebtShares:
    """Borrowing and repaying through debt shares"""

    def setup_method(self):
        self.ledger = MarketLedger("USDC", asset_cap=U128_MAX)
        self.ledger.deposit("alice", 10_000)

    def test_borrow_and_debt_value(self):
        shares = self.ledger.borrow(700)
        assert shares == 700
        assert self.ledger.debt_value(shares) == 700

    def test_debt_value_rounds_up(self):
        shares = self.ledger.borrow(300)
        self.ledger.total_debt += 1
        assert self.ledger.debt_value(100) == 101, "100 * 301 / 300 rounds up"
        assert self.ledger.debt_value(shares) == 301

    def test_repay_more_than_owed_uses_only_owed(self):
        shares = self.ledger.borrow(700)
        burned, used = self.ledger.repay(shares, 1000)
        assert burned == shares
        assert used == 700
        assert self.ledger.total_debt == 0

    def test_partial_repay(self):
        shares = self.ledger.borrow(700)
        burned, used = self.ledger.repay(shares, 200)
        assert (burned, used) == (200, 200)
        assert self.ledger.total_debt == 500

    def test_repay_without_debt(self):
        with pytest.raises(MarketError) as exc:
            self.ledger.repay(0, 100)
        assert exc.value.code == ErrorCode.NO_DEBT


class TestAccrual:
    """Interest accrual split between reserve, LPs and stakers"""

    def setup_method(self):
        self.model = default_rate_model()
        self.ledger = MarketLedger("USDC", asset_cap=U128_MAX, protocol_reserve_percentage=10_000_000)
        self.ledger.last_accrual_time = 1_000
        self.ledger.deposit("alice", 100_000_000_000)
        self.ledger.borrow(70_000_000_000)

    def test_accrual_grows_debt_and_assets(self):
        result = self.ledger.accrue_interest(4_000, self.model)

        factor = self.model.compounded_interest(530_000_000_000, 3_000)
        expected_interest = self.model.total_interest(factor, 70_000_000_000)
        assert result.elapsed == 3_000
        assert result.rate == 530_000_000_000, "70% utilization sits on the kink"
        assert result.interest == expected_interest
        assert result.reserve_interest == MarketMath.percent_of(expected_interest, 10_000_000)
        assert result.reserve_interest + result.lp_interest == result.interest

        assert self.ledger.total_debt == 70_000_000_000 + expected_interest
        assert self.ledger.total_assets == 100_000_000_000 + result.lp_interest
        assert self.ledger.reserve_balance == result.reserve_interest

    def test_accrual_is_idempotent_within_a_timestamp(self):
        self.ledger.accrue_interest(4_000, self.model)
        state = self.ledger.get_state()
        result = self.ledger.accrue_interest(4_000, self.model)
        assert result.elapsed == 0
        assert self.ledger.get_state() == state, "Second accrual at the same time changes nothing"

    def test_disabled_accrual_only_moves_the_clock(self):
        result = self.ledger.accrue_interest(4_000, self.model, enabled=False)
        assert result.interest == 0
        assert self.ledger.total_debt == 70_000_000_000
        assert self.ledger.last_accrual_time == 4_000

    def test_staking_reward_minted_to_pool(self):
        self.ledger.transfer_lp("alice", "staking-pool", 40_000_000_000)
        rewards = StakingRewardModel("deployer")
        rewards.update_reward_params("deployer", StakingRewardParams(
            -50_000_000, -70_000_000, 70_000_000, 50_000_000
        ))

        result = self.ledger.accrue_interest(4_000, self.model, reward_model=rewards,
                                             staking_holder="staking-pool")
        assert result.staking_reward_shares > 0
        assert self.ledger.lp_balance_of("staking-pool") == 40_000_000_000 + result.staking_reward_shares

        # 40% staked earns 30% of LP interest
        reward_value = self.ledger.convert_to_assets(result.staking_reward_shares)
        expected = MarketMath.percent_of(result.lp_interest, 30_000_000)
        assert abs(reward_value - expected) <= 1


class TestSocialization:
    """Bad debt absorbed by reserve, then stakers, then every LP"""

    def setup_method(self):
        self.ledger = MarketLedger("USDC", asset_cap=U128_MAX)
        self.ledger.deposit("alice", 1000)
        self.ledger.transfer_lp("alice", "staking-pool", 100)
        self.shares = self.ledger.borrow(500)

    def test_reserve_covers_everything(self):
        self.ledger.deposit_to_reserve(600)
        result = self.ledger.socialize_bad_debt(self.shares, "staking-pool")
        assert result.bad_debt == 500
        assert result.reserve_used == 500
        assert result.staked_shares_burned == 0
        assert self.ledger.total_assets == 1000, "LPs untouched"
        assert self.ledger.total_debt == 0

    def test_reserve_then_stakers_then_dilution(self):
        self.ledger.deposit_to_reserve(200)
        result = self.ledger.socialize_bad_debt(self.shares, "staking-pool")

        assert result.reserve_used == 200
        assert result.staked_shares_burned == 100, "Whole staked balance burned"
        assert result.staked_loss == 100
        assert result.diluted_loss == 200
        assert self.ledger.reserve_balance == 0
        assert self.ledger.lp_balance_of("staking-pool") == 0
        assert self.ledger.lp_share_supply == 900
        assert self.ledger.total_assets == 700

    def test_stakers_cover_remainder(self):
        self.ledger.deposit_to_reserve(450)
        result = self.ledger.socialize_bad_debt(self.shares, "staking-pool")
        assert result.staked_shares_burned == 50
        assert result.diluted_loss == 0
        assert self.ledger.lp_balance_of("staking-pool") == 50
        assert self.ledger.convert_to_assets(self.ledger.lp_balance_of("alice")) == 900, \
            "Unstaked LPs keep their value"
