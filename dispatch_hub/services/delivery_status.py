from __future__ import annotations

from enum import Enum

from dispatch_hub.core.errors import InvalidStatusTransitionError


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    ACKNOWLEDGED = "acknowledged"
    REJECTED = "rejected"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    DELIVERY_FAILED = "delivery_failed"
    RETURNED = "returned"
    CANCELLED = "cancelled"


S = DeliveryStatus

_TRANSITIONS: dict[DeliveryStatus, set[DeliveryStatus]] = {
    S.PENDING: {S.SENT},
    S.SENT: {S.ACKNOWLEDGED, S.REJECTED},
    S.ACKNOWLEDGED: {S.IN_TRANSIT, S.DELIVERY_FAILED},
    S.IN_TRANSIT: {S.DELIVERED, S.DELIVERY_FAILED},
    S.DELIVERY_FAILED: {S.RETURNED, S.SENT},
    S.REJECTED: {S.SENT},
    S.DELIVERED: set(),
    S.RETURNED: set(),
    S.CANCELLED: set(),
}

# A resend re-enters "sent" only from these
RESENDABLE: frozenset[DeliveryStatus] = frozenset({S.REJECTED, S.DELIVERY_FAILED})


def can_transition(current: DeliveryStatus | str, target: DeliveryStatus | str) -> bool:
    cur, tgt = DeliveryStatus(current), DeliveryStatus(target)
    if tgt is S.CANCELLED:
        return cur is not S.CANCELLED
    return tgt in _TRANSITIONS[cur]


def advance(current: DeliveryStatus | str, target: DeliveryStatus | str) -> DeliveryStatus:
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(str(DeliveryStatus(current).value), str(DeliveryStatus(target).value))
    return DeliveryStatus(target)


def is_resendable(status: DeliveryStatus | str) -> bool:
    return DeliveryStatus(status) in RESENDABLE
