"""Import all models so SQLModel.metadata picks them up."""

from crm.models.audit import (
    AccessAudit,
    AccessAuditRead,
    AccessLogCreate,
    ActivityLog,
    ActivityLogRead,
    AuditAction,
    AuditResourceType,
)
from crm.models.meeting import (
    Meeting,
    MeetingCreate,
    MeetingRead,
    MeetingStatus,
    MeetingType,
    MeetingUpdate,
)
from crm.models.note import Note, NoteCreate, NoteRead, NoteUpdate
from crm.models.payment import (
    InvoiceCounter,
    Payment,
    PaymentMethod,
    PaymentRead,
    PaymentStatus,
    PaymentType,
)
from crm.models.plan import SubscriptionPlan, SubscriptionPlanRead
from crm.models.records import (
    Account,
    Contact,
    Lead,
    Opportunity,
    RelatedKind,
    RelatedRead,
    RelatedRef,
    Task,
)
from crm.models.subscription import (
    BillingCycle,
    SubscriptionEvent,
    SubscriptionRead,
    SubscriptionStatus,
    TenantSubscription,
)
from crm.models.tenant import BusinessType, Tenant, TenantRead, TenantUpdate, TenantUsage
from crm.models.user import User, UserRead, UserRole, UserSummary

__all__ = [
    "AccessAudit",
    "AccessAuditRead",
    "AccessLogCreate",
    "Account",
    "ActivityLog",
    "ActivityLogRead",
    "AuditAction",
    "AuditResourceType",
    "BillingCycle",
    "BusinessType",
    "Contact",
    "InvoiceCounter",
    "Lead",
    "Meeting",
    "MeetingCreate",
    "MeetingRead",
    "MeetingStatus",
    "MeetingType",
    "MeetingUpdate",
    "Note",
    "NoteCreate",
    "NoteRead",
    "NoteUpdate",
    "Opportunity",
    "Payment",
    "PaymentMethod",
    "PaymentRead",
    "PaymentStatus",
    "PaymentType",
    "RelatedKind",
    "RelatedRead",
    "RelatedRef",
    "SubscriptionEvent",
    "SubscriptionPlan",
    "SubscriptionPlanRead",
    "SubscriptionRead",
    "SubscriptionStatus",
    "Task",
    "Tenant",
    "TenantRead",
    "TenantSubscription",
    "TenantUpdate",
    "TenantUsage",
    "User",
    "UserRead",
    "UserRole",
    "UserSummary",
]
