"""Subscription lifecycle states and their transition table."""

from enum import Enum

from ..errors import InvalidTransitionError


class SubscriptionState(Enum):
    """Lifecycle state of a subscription."""

    ESTABLISHING = "establishing"
    LIVE = "live"
    POLLING = "polling"
    TORN_DOWN = "torn_down"


# LIVE -> ESTABLISHING only happens when polling fallback is disabled.
TRANSITIONS: dict[SubscriptionState, frozenset[SubscriptionState]] = {
    SubscriptionState.ESTABLISHING: frozenset(
        {
            SubscriptionState.ESTABLISHING,
            SubscriptionState.LIVE,
            SubscriptionState.POLLING,
            SubscriptionState.TORN_DOWN,
        }
    ),
    SubscriptionState.LIVE: frozenset(
        {
            SubscriptionState.POLLING,
            SubscriptionState.ESTABLISHING,
            SubscriptionState.TORN_DOWN,
        }
    ),
    SubscriptionState.POLLING: frozenset(
        {SubscriptionState.LIVE, SubscriptionState.TORN_DOWN}
    ),
    SubscriptionState.TORN_DOWN: frozenset(),
}


def can_transition(current: SubscriptionState, target: SubscriptionState) -> bool:
    return target in TRANSITIONS[current]


def check_transition(current: SubscriptionState, target: SubscriptionState) -> SubscriptionState:
    """Validate a transition and return the target state.

    Raises:
        InvalidTransitionError: If the table does not allow it
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)
    return target
