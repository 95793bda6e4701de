#!/usr/bin/env python3
"""
Market Governance

A single swappable governance principal owns every parameter setter. A
guardian may pause user-facing features; only governance can re-enable them.
Liquidations may additionally be disabled until a given block.
"""

from enum import Enum
from typing import Dict, Optional
import logging

from ..core.errors import AuthorizationError, ErrorCode


logger = logging.getLogger(__name__)


class FeatureFlag(Enum):
    """Independently switchable market features"""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"
    ADD_COLLATERAL = "add_collateral"
    REMOVE_COLLATERAL = "remove_collateral"
    LIQUIDATION = "liquidation"
    STAKING = "staking"
    INTEREST_ACCRUAL = "interest_accrual"
    FLASH_LOAN = "flash_loan"


# Features the guardian switches off in an emergency pause
PAUSABLE_FEATURES = (
    FeatureFlag.DEPOSIT,
    FeatureFlag.WITHDRAW,
    FeatureFlag.BORROW,
    FeatureFlag.ADD_COLLATERAL,
    FeatureFlag.REMOVE_COLLATERAL,
    FeatureFlag.LIQUIDATION,
    FeatureFlag.FLASH_LOAN,
)


class MarketGovernance:
    """Governance and guardian principals plus the feature flags they control"""

    def __init__(self, governance: str, guardian: Optional[str] = None):
        self.governance = governance
        self.guardian = guardian
        self.features: Dict[FeatureFlag, bool] = {flag: True for flag in FeatureFlag}
        self.disabled_until: Dict[FeatureFlag, int] = {}

    def require_governance(self, caller: str):
        if caller != self.governance:
            raise AuthorizationError(ErrorCode.NOT_GOVERNANCE, f"{caller} is not the governance principal")

    def require_guardian(self, caller: str):
        if caller != self.guardian and caller != self.governance:
            raise AuthorizationError(ErrorCode.NOT_GUARDIAN, f"{caller} is not the guardian")

    def set_governance(self, caller: str, new_governance: str):
        self.require_governance(caller)
        logger.info("Governance transferred from %s to %s", self.governance, new_governance)
        self.governance = new_governance

    def set_guardian(self, caller: str, new_guardian: Optional[str]):
        self.require_governance(caller)
        self.guardian = new_guardian

    def set_feature(self, caller: str, flag: FeatureFlag, enabled: bool):
        self.require_governance(caller)
        self.features[flag] = enabled
        if enabled:
            self.disabled_until.pop(flag, None)
        logger.info("Feature %s %s", flag.value, "enabled" if enabled else "disabled")

    def disable_until(self, caller: str, flag: FeatureFlag, block: int):
        """Keep `flag` off up to and including `block`"""
        self.require_governance(caller)
        self.disabled_until[flag] = block

    def pause(self, caller: str):
        self.require_guardian(caller)
        for flag in PAUSABLE_FEATURES:
            self.features[flag] = False
        logger.warning("Market paused by %s", caller)

    def unpause(self, caller: str):
        self.require_governance(caller)
        for flag in PAUSABLE_FEATURES:
            self.features[flag] = True
        logger.info("Market unpaused by %s", caller)

    def is_enabled(self, flag: FeatureFlag, block: int) -> bool:
        if not self.features[flag]:
            return False
        return block > self.disabled_until.get(flag, -1)

    def require_enabled(self, flag: FeatureFlag, block: int):
        if not self.is_enabled(flag, block):
            raise AuthorizationError(ErrorCode.FEATURE_DISABLED, f"{flag.value} is disabled")
