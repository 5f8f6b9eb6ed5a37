# Database models
from .base import Base
from .profile import Profile
from .company import Company, CompanyMember, MembershipStatus
from .account import Account, AccountType
from .contract import Contract, ContractPlan, ContractStatus
from .plan import Plan, PlanType
from .subscription import Subscription, SubscriptionStatus, PaymentMethod
from .entitlement import Entitlement
from .event import Event, EventStatus

__all__ = [
    "Base",
    "Profile",
    "Company",
    "CompanyMember",
    "MembershipStatus",
    "Account",
    "AccountType",
    "Contract",
    "ContractPlan",
    "ContractStatus",
    "Plan",
    "PlanType",
    "Subscription",
    "SubscriptionStatus",
    "PaymentMethod",
    "Entitlement",
    "Event",
    "EventStatus",
]
