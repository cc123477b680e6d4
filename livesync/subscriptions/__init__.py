"""Subscriptions and the registry that tracks them."""

from .registry import SubscriptionRegistry
from .state import SubscriptionState
from .subscription import Subscription

__all__ = ["Subscription", "SubscriptionRegistry", "SubscriptionState"]
