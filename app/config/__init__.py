"""Configuration package."""

from app.config.plans import PLANS, PlanConfig, get_plan, get_plan_by_price
from app.config.settings import Settings, settings

__all__ = [
    "PlanConfig",
    "PLANS",
    "get_plan",
    "get_plan_by_price",
    "Settings",
    "settings",
]
