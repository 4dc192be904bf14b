"""Resolution of Paystack plan codes to internal plan keys"""
from enum import Enum
from typing import Optional

from paygate.core.config import PaystackConfig


class PlanKey(str, Enum):
    """Internal subscription tiers"""
    PREMIUM = "premium"
    PRO = "pro"
    UNKNOWN = "unknown"


def plan_code_for(plan_key: str, config: PaystackConfig) -> Optional[str]:
    """Configured Paystack plan code for a plan key, or None when unset"""
    codes = {
        PlanKey.PREMIUM.value: config.premium_plan_code,
        PlanKey.PRO.value: config.pro_plan_code,
    }
    return codes.get(plan_key) or None


def resolve_plan(plan_code: Optional[str], config: PaystackConfig) -> PlanKey:
    """Map an opaque plan code to a plan key; anything unmapped is UNKNOWN"""
    if not plan_code:
        return PlanKey.UNKNOWN
    if config.premium_plan_code and plan_code == config.premium_plan_code:
        return PlanKey.PREMIUM
    if config.pro_plan_code and plan_code == config.pro_plan_code:
        return PlanKey.PRO
    return PlanKey.UNKNOWN
