#!/usr/bin/env python3
"""
Market Engine Test Suite

End-to-end flows through the engine entry points: lending and borrowing,
oracle freshness, governance and feature flags, interest accrual, flash
loans and transactional rollback.
"""

import sys
import os
import pytest

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from lending_market_sim.core.errors import ErrorCode, MarketError
from lending_market_sim.core.interest_rate import InterestRateParams
from lending_market_sim.core.math import IR_SCALE, MarketMath
from lending_market_sim.engine.config import CollateralSettings, InterestRateConfig, MarketConfig
from lending_market_sim.engine.flash_loan import FlashLoanReceiver, TradingReceiver
from lending_market_sim.engine.governance import FeatureFlag


ONE = 100_000_000
BTC_PRICE = 100_000 * ONE


def build_engine(**overrides):
    config = MarketConfig(
        collaterals=[
            CollateralSettings(asset="BTC", max_ltv=70_000_000, liquidation_ltv=80_000_000,
                               liquidation_discount=10_000_000, decimals=8),
        ],
        **overrides,
    )
    engine = config.create_engine()
    engine.tokens.mint("USDC", "lender", 100_000_000_000)
    engine.deposit("lender", 100_000_000_000)
    engine.tokens.mint("BTC", "borrower", ONE)
    engine.add_collateral("borrower", "BTC", ONE)
    return engine


def refresh_price(engine, price: int = BTC_PRICE, usdc_price: int = ONE):
    engine.oracle.set_price("BTC", price, engine.now)
    engine.oracle.set_price("USDC", usdc_price, engine.now)


class TestLendingFlow:
    """Deposits, borrows and repayments"""

    def setup_method(self):
        self.engine = build_engine()
        refresh_price(self.engine)

    def test_borrow_pays_out_market_asset(self):
        self.engine.borrow("borrower", 10_000_000_000)
        assert self.engine.tokens.balance_of("USDC", "borrower") == 10_000_000_000
        assert self.engine.debt_of("borrower") == 10_000_000_000
        assert self.engine.ledger.free_liquidity == 90_000_000_000

    def test_borrow_to_receiver(self):
        self.engine.borrow("borrower", ONE, receiver="vault")
        assert self.engine.tokens.balance_of("USDC", "vault") == ONE

    def test_borrow_above_max_ltv_rolls_back(self):
        self.engine.tokens.mint("USDC", "lender", 10_000_000 * ONE)
        self.engine.deposit("lender", 10_000_000 * ONE)
        with pytest.raises(MarketError) as exc:
            self.engine.borrow("borrower", 70_001 * ONE)
        assert exc.value.code == ErrorCode.MAX_LTV
        assert self.engine.ledger.total_debt == 0
        assert self.engine.positions.get_position("borrower").debt_shares == 0
        assert self.engine.tokens.balance_of("USDC", "borrower") == 0

    def test_borrow_beyond_free_liquidity(self):
        with pytest.raises(MarketError) as exc:
            self.engine.borrow("borrower", 100_000_000_001)
        assert exc.value.code == ErrorCode.INSUFFICIENT_FREE_LIQUIDITY

    def test_over_repay_uses_only_owed(self):
        self.engine.borrow("borrower", 10_000_000_000)
        self.engine.tokens.mint("USDC", "borrower", ONE)
        used = self.engine.repay("borrower", 20_000_000_000)
        assert used == 10_000_000_000
        assert self.engine.tokens.balance_of("USDC", "borrower") == ONE
        assert self.engine.debt_of("borrower") == 0

    def test_repay_on_behalf(self):
        self.engine.borrow("borrower", 10_000_000_000)
        self.engine.tokens.mint("USDC", "friend", ONE)
        self.engine.repay("friend", ONE, on_behalf_of="borrower")
        assert self.engine.debt_of("borrower") == 10_000_000_000 - ONE

    def test_remove_collateral_checks_max_ltv(self):
        self.engine.borrow("borrower", 35_000 * ONE)
        with pytest.raises(MarketError) as exc:
            self.engine.remove_collateral("borrower", "BTC", 60_000_000)
        assert exc.value.code == ErrorCode.MAX_LTV
        self.engine.remove_collateral("borrower", "BTC", 40_000_000)
        assert self.engine.tokens.balance_of("BTC", "borrower") == 40_000_000

    def test_remove_collateral_without_debt_needs_no_price(self):
        self.engine.oracle.quotes.clear()
        self.engine.remove_collateral("borrower", "BTC", ONE)
        assert self.engine.positions.get_position("borrower").is_empty

    def test_withdraw_and_redeem(self):
        self.engine.withdraw("lender", 10_000_000_000)
        assert self.engine.tokens.balance_of("USDC", "lender") == 10_000_000_000
        amount = self.engine.redeem("lender", 10_000_000_000)
        assert amount == 10_000_000_000
        assert self.engine.ledger.total_assets == 80_000_000_000


class TestReserve:
    """Reserve deposits and reserve-backed withdrawals"""

    def setup_method(self):
        self.engine = build_engine(protocol_reserve_percentage=0)
        refresh_price(self.engine)
        self.engine.tokens.mint("USDC", "governance", 500 * ONE)
        self.engine.deposit_to_reserve("governance", 500 * ONE)
        self.engine.borrow("borrower", 700 * ONE)
        self.engine.set_ir_params("governance", InterestRateParams(0, 0, 0, 0))

    def test_lp_withdrawal_can_draw_reserve_cash(self):
        self.engine.withdraw("lender", 300 * ONE + 500 * ONE)
        assert self.engine.ledger.reserve_balance == 500 * ONE
        assert self.engine.ledger.cash == 0
        with pytest.raises(MarketError) as exc:
            self.engine.withdraw("lender", 1)
        assert exc.value.code == ErrorCode.INSUFFICIENT_LIQUIDITY

    def test_reserve_withdrawal_is_governance_only(self):
        with pytest.raises(MarketError) as exc:
            self.engine.withdraw_from_reserve("lender", ONE)
        assert exc.value.code == ErrorCode.NOT_GOVERNANCE
        self.engine.withdraw_from_reserve("governance", ONE, recipient="treasury")
        assert self.engine.tokens.balance_of("USDC", "treasury") == ONE


class TestOracle:
    """Fail-closed price reads"""

    def setup_method(self):
        self.engine = build_engine()

    def test_missing_price(self):
        with pytest.raises(MarketError) as exc:
            self.engine.borrow("borrower", ONE)
        assert exc.value.code == ErrorCode.PRICE_UNAVAILABLE

    def test_stale_price(self):
        refresh_price(self.engine)
        self.engine.mine_blocks(7)
        with pytest.raises(MarketError) as exc:
            self.engine.borrow("borrower", ONE)
        assert exc.value.code == ErrorCode.STALE_PRICE

    def test_staleness_window_is_governed(self):
        refresh_price(self.engine)
        self.engine.mine_blocks(7)
        self.engine.set_pyth_time_delta("governance", 120)
        self.engine.borrow("borrower", ONE)


class TestGovernance:
    """Feature flags, pausing and principal changes"""

    def setup_method(self):
        self.engine = build_engine()
        refresh_price(self.engine)

    def test_guardian_pause_and_governance_unpause(self):
        self.engine.pause("guardian")
        with pytest.raises(MarketError) as exc:
            self.engine.deposit("lender", ONE)
        assert exc.value.code == ErrorCode.FEATURE_DISABLED

        with pytest.raises(MarketError) as exc:
            self.engine.unpause("guardian")
        assert exc.value.code == ErrorCode.NOT_GOVERNANCE

        self.engine.unpause("governance")
        self.engine.tokens.mint("USDC", "lender", ONE)
        self.engine.deposit("lender", ONE)

    def test_repay_stays_open_while_paused(self):
        self.engine.borrow("borrower", ONE)
        self.engine.pause("guardian")
        assert self.engine.repay("borrower", ONE) == ONE

    def test_non_guardian_cannot_pause(self):
        with pytest.raises(MarketError) as exc:
            self.engine.pause("lender")
        assert exc.value.code == ErrorCode.NOT_GUARDIAN

    def test_single_feature_flag(self):
        self.engine.set_feature("governance", FeatureFlag.BORROW, False)
        with pytest.raises(MarketError) as exc:
            self.engine.borrow("borrower", ONE)
        assert exc.value.code == ErrorCode.FEATURE_DISABLED

        # deposits unaffected
        self.engine.tokens.mint("USDC", "lender", ONE)
        self.engine.deposit("lender", ONE)

    def test_governance_transfer(self):
        self.engine.set_governance("governance", "dao")
        with pytest.raises(MarketError) as exc:
            self.engine.set_asset_cap("governance", ONE)
        assert exc.value.code == ErrorCode.NOT_GOVERNANCE
        self.engine.set_asset_cap("dao", ONE)
        assert self.engine.ledger.asset_cap == ONE

    def test_collateral_decimals_are_fixed(self):
        with pytest.raises(MarketError) as exc:
            self.engine.update_collateral_settings("governance", "BTC", 70_000_000, 80_000_000, 10_000_000, 18)
        assert exc.value.code == ErrorCode.INVALID_PARAMS

    def test_unsupported_collateral_blocks_deposits(self):
        self.engine.set_collateral_supported("governance", "BTC", False)
        self.engine.tokens.mint("BTC", "borrower", ONE)
        with pytest.raises(MarketError) as exc:
            self.engine.add_collateral("borrower", "BTC", ONE)
        assert exc.value.code == ErrorCode.COLLATERAL_NOT_SUPPORTED

    def test_reserve_percentage_bounds(self):
        with pytest.raises(MarketError) as exc:
            self.engine.set_protocol_reserve_percentage("governance", 100_000_001)
        assert exc.value.code == ErrorCode.INVALID_PARAMS

    def test_launch_params_only_once(self):
        with pytest.raises(MarketError) as exc:
            self.engine.update_ir_params("deployer", InterestRateParams(0, 0, 0, 0))
        assert exc.value.code == ErrorCode.IR_ALREADY_INITIALIZED


class TestInterestAccrual:
    """Debt growth over time"""

    def setup_method(self):
        self.engine = build_engine()
        refresh_price(self.engine)
        self.engine.borrow("borrower", 10_000_000_000)

    def test_reads_project_without_writing(self):
        debt_before = self.engine.ledger.total_debt
        self.engine.advance_time(86_400)
        projected = self.engine.debt_of("borrower")

        assert projected > 10_000_000_000
        assert self.engine.ledger.total_debt == debt_before, "Reads never accrue into the ledger"

        refresh_price(self.engine)
        self.engine.tokens.mint("USDC", "lender", ONE)
        self.engine.deposit("lender", ONE)
        assert self.engine.ledger.total_debt == projected

    def test_reserve_takes_its_share(self):
        self.engine.advance_time(86_400)
        self.engine.tokens.mint("USDC", "lender", ONE)
        self.engine.deposit("lender", ONE)

        accrual = self.engine.last_accrual
        assert accrual.elapsed == 86_400
        assert accrual.reserve_interest == MarketMath.percent_of(accrual.interest, 10_000_000)
        assert self.engine.ledger.reserve_balance == accrual.reserve_interest
        assert accrual.rate == 5_000_000_000 + 750_000_000_000 * 10 // 100, "10% utilization"

    def test_accrual_can_be_switched_off(self):
        self.engine.set_feature("governance", FeatureFlag.INTEREST_ACCRUAL, False)
        self.engine.advance_time(86_400)
        assert self.engine.debt_of("borrower") == 10_000_000_000

    def test_debt_shares_sum_to_total_debt(self):
        self.engine.tokens.mint("BTC", "second", ONE)
        self.engine.add_collateral("second", "BTC", ONE)
        self.engine.advance_time(3_600)
        refresh_price(self.engine)
        self.engine.borrow("second", 3_333_333_333)
        self.engine.advance_time(7_200)

        refresh_price(self.engine)
        self.engine.tokens.mint("USDC", "lender", ONE)
        self.engine.deposit("lender", ONE)
        owed = self.engine.debt_of("borrower") + self.engine.debt_of("second")
        assert 0 <= owed - self.engine.ledger.total_debt <= 2, "Per-user debt rounds up by at most one unit"

    def test_health_moves_with_collateral_and_repay(self):
        health = self.engine.account_health("borrower")["health_factor"]
        self.engine.tokens.mint("BTC", "borrower", ONE)
        self.engine.add_collateral("borrower", "BTC", ONE)
        after_add = self.engine.account_health("borrower")["health_factor"]
        assert after_add > health

        self.engine.repay("borrower", ONE)
        assert self.engine.account_health("borrower")["health_factor"] > after_add

    def test_rate_reported_in_market_state(self):
        state = self.engine.get_market_state()
        assert state["utilization"] == IR_SCALE // 10
        assert state["borrow_rate"] == 80_000_000_000
        assert state["positions"] == 1


class DepositingReceiver(FlashLoanReceiver):
    """Tries to deposit the borrowed funds back into the market"""

    def on_flash_loan(self, engine, initiator, amount, fee, data=None):
        engine.deposit(initiator, amount)


class FeeSettingReceiver(FlashLoanReceiver):
    """Tries to change a governance setting mid-loan"""

    def on_flash_loan(self, engine, initiator, amount, fee, data=None):
        engine.set_flash_loan_fee(initiator, 0)


class TestFlashLoans:
    """Single-callback loans pulled back from the initiator with a fee"""

    def setup_method(self):
        self.engine = build_engine()
        self.receiver = TradingReceiver("arbitrageur")
        self.engine.tokens.mint("USDC", "arbitrageur", ONE)

    def market_cash_matches_tokens(self):
        return self.engine.ledger.cash == self.engine.tokens.balance_of("USDC", self.engine.address)

    def test_not_allowed_callback(self):
        with pytest.raises(MarketError) as exc:
            self.engine.flash_loan("arbitrageur", 100 * ONE, "arbitrageur")
        assert exc.value.code == ErrorCode.CALLBACK_NOT_ALLOWED

    def test_fee_goes_to_lps(self):
        self.engine.set_callback_allowed("governance", self.receiver)
        fee = self.engine.flash_loan("arbitrageur", 100 * ONE, "arbitrageur")

        assert fee == 1_000_000, "One basis point of the notional"
        assert self.receiver.calls == 1
        assert self.engine.ledger.total_assets == 100_000_000_000 + fee
        assert self.engine.tokens.balance_of("USDC", "arbitrageur") == ONE - fee
        assert self.market_cash_matches_tokens()

    def test_fee_rounds_down(self):
        self.engine.set_callback_allowed("governance", self.receiver)
        assert self.engine.flash_loan("arbitrageur", 10_000, "arbitrageur") == 1
        assert self.engine.flash_loan("arbitrageur", 9_999, "arbitrageur") == 0

    def test_initiator_short_of_fee_rolls_back(self):
        self.engine.set_callback_allowed("governance", TradingReceiver("broke"))
        self.engine.tokens.mint("USDC", "broke", 999_999)
        with pytest.raises(MarketError) as exc:
            self.engine.flash_loan("broke", 100 * ONE, "broke")
        assert exc.value.code == ErrorCode.FLASH_LOAN_NOT_REPAID
        assert self.engine.tokens.balance_of("USDC", "broke") == 999_999
        assert self.engine.ledger.total_assets == 100_000_000_000
        assert self.market_cash_matches_tokens()

    def test_losing_trade_rolls_back(self):
        loser = TradingReceiver("loser", loss=ONE)
        self.engine.set_callback_allowed("governance", loser)
        self.engine.tokens.mint("USDC", "loser", ONE)
        with pytest.raises(MarketError) as exc:
            self.engine.flash_loan("loser", 100 * ONE, "loser")
        assert exc.value.code == ErrorCode.FLASH_LOAN_NOT_REPAID
        assert self.engine.tokens.balance_of("USDC", "loser") == ONE
        assert self.engine.tokens.balance_of("USDC", "dex") == 0

    def test_callback_cannot_deposit_borrowed_funds(self):
        self.engine.set_callback_allowed("governance", DepositingReceiver("thief"))
        self.engine.tokens.mint("USDC", "thief", 1000 * ONE)
        with pytest.raises(MarketError) as exc:
            self.engine.flash_loan("thief", 1000 * ONE, "thief")
        assert exc.value.code == ErrorCode.FLASH_LOAN_ACTIVE

        assert self.market_cash_matches_tokens(), "Ledger cash must match tokens the market holds"
        assert self.engine.ledger.lp_balance_of("thief") == 0
        assert self.engine.tokens.balance_of("USDC", "thief") == 1000 * ONE

        # the guard is released once the loan settles
        self.engine.deposit("thief", ONE)
        assert self.engine.ledger.lp_balance_of("thief") > 0

    def test_callback_cannot_change_settings(self):
        self.engine.set_callback_allowed("governance", FeeSettingReceiver("governance"))
        self.engine.tokens.mint("USDC", "governance", ONE)
        with pytest.raises(MarketError) as exc:
            self.engine.flash_loan("governance", 100 * ONE, "governance")
        assert exc.value.code == ErrorCode.FLASH_LOAN_ACTIVE
        assert self.engine.flash_loan_fee_bps == 1

    def test_governance_setters_reject_outsiders(self):
        for setter, args in (
            (self.engine.set_pyth_time_delta, (120,)),
            (self.engine.set_flash_loan_fee, (5,)),
            (self.engine.set_callback_allowed, (self.receiver,)),
        ):
            with pytest.raises(MarketError) as exc:
                setter("mallory", *args)
            assert exc.value.code == ErrorCode.NOT_GOVERNANCE
        assert self.engine.pyth_time_delta == 60
        assert self.engine.flash_loan_fee_bps == 1
        assert "arbitrageur" not in self.engine.allowed_callbacks

    def test_amount_bounds(self):
        self.engine.set_callback_allowed("governance", self.receiver)
        with pytest.raises(MarketError) as exc:
            self.engine.flash_loan("arbitrageur", 0, "arbitrageur")
        assert exc.value.code == ErrorCode.ZERO_AMOUNT
        with pytest.raises(MarketError) as exc:
            self.engine.flash_loan("arbitrageur", 100_000_000_001, "arbitrageur")
        assert exc.value.code == ErrorCode.INSUFFICIENT_LIQUIDITY

    def test_callback_can_be_revoked(self):
        self.engine.set_callback_allowed("governance", self.receiver)
        self.engine.set_callback_allowed("governance", self.receiver, allowed=False)
        with pytest.raises(MarketError) as exc:
            self.engine.flash_loan("arbitrageur", ONE, "arbitrageur")
        assert exc.value.code == ErrorCode.CALLBACK_NOT_ALLOWED


class TestMarketAssetPrice:
    """Debt is valued at the market asset's oracle price"""

    def setup_method(self):
        self.engine = build_engine(interest_rate=InterestRateConfig(slope1=0, slope2=0, kink=0, base_ir=0))
        refresh_price(self.engine)

    def test_health_moves_against_the_market_asset(self):
        self.engine.borrow("borrower", 10_000_000_000)
        assert self.engine.account_health("borrower")["health_factor"] == 80_000_000_000

        refresh_price(self.engine, usdc_price=2 * ONE)
        health = self.engine.account_health("borrower")
        assert health["health_factor"] == 40_000_000_000, "Debt worth twice as much halves health"
        assert health["debt_usd_value"] == 20_000_000_000

        refresh_price(self.engine, usdc_price=ONE // 2)
        assert self.engine.account_health("borrower")["health_factor"] == 160_000_000_000

    def test_market_asset_price_is_required(self):
        self.engine.oracle.quotes.pop("USDC")
        with pytest.raises(MarketError) as exc:
            self.engine.borrow("borrower", ONE)
        assert exc.value.code == ErrorCode.PRICE_UNAVAILABLE

        refresh_price(self.engine, usdc_price=0)
        with pytest.raises(MarketError) as exc:
            self.engine.account_health("borrower")
        assert exc.value.code == ErrorCode.PRICE_UNAVAILABLE

    def test_max_ltv_uses_market_price(self):
        refresh_price(self.engine, price=1000 * ONE, usdc_price=2 * ONE)
        with pytest.raises(MarketError) as exc:
            self.engine.borrow("borrower", 400 * ONE)
        assert exc.value.code == ErrorCode.MAX_LTV
        self.engine.borrow("borrower", 350 * ONE)

    def test_market_asset_rally_triggers_liquidation(self):
        refresh_price(self.engine, price=1000 * ONE)
        self.engine.borrow("borrower", 600 * ONE)
        self.engine.tokens.mint("USDC", "liquidator", 1000 * ONE)
        self.engine.mine_blocks(1)

        refresh_price(self.engine, price=1000 * ONE)
        with pytest.raises(MarketError) as exc:
            self.engine.liquidate_collateral("liquidator", "BTC", "borrower", 1000 * ONE)
        assert exc.value.code == ErrorCode.POSITION_HEALTHY

        refresh_price(self.engine, price=1000 * ONE, usdc_price=150_000_000)
        assert self.engine.account_health("borrower")["health_factor"] == 88_888_888

        result = self.engine.liquidate_collateral("liquidator", "BTC", "borrower", 1000 * ONE)
        assert result.plan.quote.repay_amount == 55_555_555_555
        assert result.plan.quote.collateral_to_give == 91_666_666
        assert self.engine.account_health("borrower")["health_factor"] == 100_000_007
