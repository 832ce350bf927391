"""Default subscription plan catalog."""

import json
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from crm.models.plan import SubscriptionPlan

logger = logging.getLogger(__name__)

FEATURES = (
    "leadManagement", "contactManagement", "dealTracking", "taskManagement",
    "emailIntegration", "calendarSync", "advancedReports", "customFields",
    "automation", "apiAccess", "whiteLabeling", "dedicatedSupport",
    "customIntegrations", "multiCurrency", "advancedSecurity", "sla",
)


def _features(*enabled: str) -> dict[str, bool]:
    return {name: name in enabled for name in FEATURES}


_CORE = ("leadManagement", "contactManagement", "dealTracking", "taskManagement")
_BASIC = _CORE + ("emailIntegration", "calendarSync", "customFields")
_PRO = _BASIC + ("advancedReports", "automation", "apiAccess", "multiCurrency", "advancedSecurity")

# Limits of -1 mean unlimited; storage is in MB.
DEFAULT_PLANS: list[dict] = [
    {
        "name": "Free", "slug": "free", "display_name": "Free Plan",
        "description": "Perfect for getting started",
        "price_monthly": 0, "price_yearly": 0, "trial_days": 15,
        "limits": {"users": 5, "leads": 1000, "contacts": 1000, "deals": 100,
                   "storage": 1024, "emailsPerDay": 50},
        "features": _features(*_CORE),
        "support": "email", "is_popular": False, "sort_order": 1,
    },
    {
        "name": "Basic", "slug": "basic", "display_name": "Basic Plan",
        "description": "Great for small teams",
        "price_monthly": 999, "price_yearly": 9990, "trial_days": 15,
        "limits": {"users": 10, "leads": 5000, "contacts": 5000, "deals": 500,
                   "storage": 5120, "emailsPerDay": 200},
        "features": _features(*_BASIC),
        "support": "priority", "is_popular": False, "sort_order": 2,
    },
    {
        "name": "Professional", "slug": "professional", "display_name": "Professional Plan",
        "description": "Best for growing businesses",
        "price_monthly": 2999, "price_yearly": 29990, "trial_days": 15,
        "limits": {"users": 25, "leads": -1, "contacts": -1, "deals": -1,
                   "storage": 20480, "emailsPerDay": 1000},
        "features": _features(*_PRO),
        "support": "priority", "is_popular": True, "sort_order": 3,
    },
    {
        "name": "Enterprise", "slug": "enterprise", "display_name": "Enterprise Plan",
        "description": "For large organizations",
        "price_monthly": 9999, "price_yearly": 99990, "trial_days": 30,
        "limits": {"users": -1, "leads": -1, "contacts": -1, "deals": -1,
                   "storage": -1, "emailsPerDay": -1},
        "features": _features(*FEATURES),
        "support": "24x7", "is_popular": False, "sort_order": 4,
    },
]


async def seed_plans(session: AsyncSession) -> int:
    """Insert missing default plans, matched by name. Returns how many were added."""
    result = await session.execute(select(SubscriptionPlan.name))
    existing = set(result.scalars().all())

    added = 0
    for entry in DEFAULT_PLANS:
        if entry["name"] in existing:
            continue
        plan = SubscriptionPlan(
            **{k: v for k, v in entry.items() if k not in ("limits", "features")},
            limits=json.dumps(entry["limits"]),
            features=json.dumps(entry["features"]),
        )
        session.add(plan)
        added += 1

    await session.commit()
    logger.info("Seeded %d subscription plan(s)", added)
    return added
