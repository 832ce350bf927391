"""SubscriptionPlan model: the plan catalog."""

import uuid
from datetime import datetime

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from crm.models.base import TimestampMixin, new_uuid


class SubscriptionPlan(TimestampMixin, SQLModel, table=True):
    __tablename__ = "subscription_plans"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    name: str = Field(max_length=50, unique=True, nullable=False)
    slug: str = Field(max_length=50, unique=True, nullable=False)
    display_name: str = Field(max_length=100, nullable=False)
    description: str = Field(default="", max_length=1000)

    price_monthly: float = Field(default=0.0, ge=0)
    price_yearly: float = Field(default=0.0, ge=0)
    trial_days: int = Field(default=15)

    # JSON objects, e.g. {"users": 5, "leads": 1000} / {"apiAccess": false}.
    # A limit of -1 means unlimited.
    limits: str = Field(default="{}", sa_column=Column(Text, nullable=False, server_default="{}"))
    features: str = Field(default="{}", sa_column=Column(Text, nullable=False, server_default="{}"))

    support: str = Field(default="email", max_length=20)
    is_active: bool = Field(default=True)
    is_popular: bool = Field(default=False)
    sort_order: int = Field(default=0)

    def price_for(self, billing_cycle: str) -> float:
        return self.price_yearly if billing_cycle == "yearly" else self.price_monthly


# ── Pydantic schemas ─────────────────────────────────────────

class SubscriptionPlanRead(SQLModel):
    id: uuid.UUID
    name: str
    slug: str
    display_name: str
    description: str
    price_monthly: float
    price_yearly: float
    trial_days: int
    limits: dict
    features: dict
    support: str
    is_popular: bool
    sort_order: int
    created_at: datetime
