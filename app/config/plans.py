"""Plan configuration - defines the paid plans and how they map to Stripe prices."""

from dataclasses import dataclass

from app.config.settings import settings


@dataclass(frozen=True)
class PlanConfig:
    """Configuration for a paid subscription plan."""

    plan: str
    display_name: str
    price_amount: int  # Price per billing interval in pence
    interval: str  # 'month' or 'year'
    price_setting: str  # Name of the Settings field holding the Stripe price ID

    @property
    def price_id(self) -> str:
        """Stripe price ID for this plan (empty when not configured)."""
        return getattr(settings, self.price_setting, "") or ""


PLANS: dict[str, PlanConfig] = {
    "monthly": PlanConfig(
        plan="monthly",
        display_name="Pro Monthly",
        price_amount=1500,  # £15/mo
        interval="month",
        price_setting="stripe_price_monthly",
    ),
    "annual": PlanConfig(
        plan="annual",
        display_name="Pro Annual",
        price_amount=15000,  # £150/yr
        interval="year",
        price_setting="stripe_price_annual",
    ),
}


def get_plan(plan: str) -> PlanConfig | None:
    """Get plan configuration by name, or None for an unknown plan."""
    return PLANS.get(plan)


def get_plan_by_price(price_id: str | None) -> PlanConfig | None:
    """
    Reverse lookup from a Stripe price ID to the plan it belongs to.

    Used for display only; an unrecognised price (e.g. a retired one)
    returns None and the account keeps its entitlements.
    """
    if not price_id:
        return None
    for plan in PLANS.values():
        if plan.price_id and plan.price_id == price_id:
            return plan
    return None
