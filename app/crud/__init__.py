# CRUD operations package

from .user_subscription import user_subscription
from .usage_event import usage_event
from .usage_counter import usage_counter
from .diagnostic import diagnostic_crud
from .property import property_crud
from .payment_transaction import payment_transaction_crud
from .stripe_webhook import stripe_webhook_crud
from .user_role import user_role_crud
from .admin_log import admin_log_crud

__all__ = [
    'user_subscription',
    'usage_event',
    'usage_counter',
    'diagnostic_crud',
    'property_crud',
    'payment_transaction_crud',
    'stripe_webhook_crud',
    'user_role_crud',
    'admin_log_crud'
]
