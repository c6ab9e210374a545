# Database models package

from .base import Base
from .user_subscription import UserSubscription, SubscriptionTier, SubscriptionStatus
from .usage_event import UsageEvent, ResourceType, DIAGNOSTIC_RESOURCE_TYPES
from .usage_counter import UsageCounter
from .diagnostic import Diagnostic, DiagnosticStatus
from .property import Property
from .payment_transaction import PaymentTransaction, TransactionStatus
from .stripe_webhook import StripeWebhook
from .user_role import UserRole, AppRole
from .admin_log import AdminLog

__all__ = [
    'Base',
    'UserSubscription',
    'SubscriptionTier',
    'SubscriptionStatus',
    'UsageEvent',
    'ResourceType',
    'DIAGNOSTIC_RESOURCE_TYPES',
    'UsageCounter',
    'Diagnostic',
    'DiagnosticStatus',
    'Property',
    'PaymentTransaction',
    'TransactionStatus',
    'StripeWebhook',
    'UserRole',
    'AppRole',
    'AdminLog'
]
