"""
Order State Machine

Single source of truth for order status transitions.

    pending -> confirmed -> processing -> out_for_delivery -> delivered
       |           |              |               |
       +-----------+--------------+---------------+----> cancelled

Forward moves may skip steps (a retailer can mark a pending order
delivered). `delivered` and `cancelled` are absorbing.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from nearmart.config import settings
from nearmart.core.errors import InvalidArgumentError, InvalidTransitionError
from nearmart.models.order import Order, OrderStatus, OrderStatusHistory, PaymentStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

FULFILLMENT_SEQUENCE: List[str] = [
    OrderStatus.PENDING.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.PROCESSING.value,
    OrderStatus.OUT_FOR_DELIVERY.value,
    OrderStatus.DELIVERED.value,
]

TERMINAL_STATUSES = (OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value)

# Statuses a retailer may set through the status-update operation.
# Cancellation has its own operation; pending is only ever the initial state.
SETTABLE_STATUSES = (
    OrderStatus.CONFIRMED.value,
    OrderStatus.PROCESSING.value,
    OrderStatus.OUT_FOR_DELIVERY.value,
    OrderStatus.DELIVERED.value,
)


def _build_transitions() -> Dict[str, List[str]]:
    transitions = {}
    for index, status in enumerate(FULFILLMENT_SEQUENCE):
        if status in TERMINAL_STATUSES:
            transitions[status] = []
        else:
            transitions[status] = FULFILLMENT_SEQUENCE[index + 1:] + [OrderStatus.CANCELLED.value]
    transitions[OrderStatus.CANCELLED.value] = []
    return transitions


# Format: current_status -> [allowed next statuses]
ORDER_TRANSITIONS: Dict[str, List[str]] = _build_transitions()


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in ORDER_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    return ORDER_TRANSITIONS.get(current_status, [])


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def can_cancel(status: str) -> bool:
    return not is_terminal(status)


def validate_transition(current_status: str, new_status: str) -> None:
    """Raise InvalidTransitionError unless current -> new is allowed."""
    details = {"currentStatus": current_status, "requestedStatus": new_status}

    if is_terminal(current_status):
        raise InvalidTransitionError(
            f"Order is already {current_status}; its status can no longer change",
            details,
        )

    if current_status == new_status:
        return  # No change; only a history note is added

    if not can_transition(current_status, new_status):
        allowed = get_allowed_transitions(current_status)
        raise InvalidTransitionError(
            f"Cannot change order from '{current_status}' to '{new_status}'. "
            f"Allowed transitions: {', '.join(allowed)}",
            details,
        )


# =============================================================================
# TRANSITION EXECUTORS
# =============================================================================

def _append_history(order: Order, status: str, note: Optional[str], at: datetime) -> None:
    order.status_history.append(
        OrderStatusHistory(status=status, note=note, created_at=at)
    )


def record_creation(order: Order, now: Optional[datetime] = None) -> None:
    """Initial history entry for a freshly built order."""
    now = now or datetime.now(timezone.utc)
    order.status = OrderStatus.PENDING.value
    _append_history(order, order.status, "Order created", now)


def apply_status_update(order: Order, new_status: str, note: Optional[str] = None) -> None:
    """
    Move an order forward along the fulfillment sequence.

    - appends {status, timestamp, note} to history
    - delivered: stamps actual_delivery_date
    - confirmed: defaults expected_delivery_date to now + EXPECTED_DELIVERY_DAYS
    """
    if new_status not in SETTABLE_STATUSES:
        raise InvalidArgumentError(
            f"Invalid status '{new_status}'. Must be one of: {', '.join(SETTABLE_STATUSES)}",
            {"status": new_status},
        )
    validate_transition(order.status, new_status)

    now = datetime.now(timezone.utc)
    order.status = new_status
    _append_history(order, new_status, note, now)

    if new_status == OrderStatus.DELIVERED.value:
        order.actual_delivery_date = now
    elif new_status == OrderStatus.CONFIRMED.value and order.expected_delivery_date is None:
        order.expected_delivery_date = now + timedelta(days=settings.EXPECTED_DELIVERY_DAYS)


def apply_cancel(order: Order, reason: Optional[str] = None) -> None:
    """Cancel a non-terminal order. Stock restoration is the caller's job."""
    if not can_cancel(order.status):
        raise InvalidTransitionError(
            f"Order is already {order.status} and cannot be cancelled",
            {"currentStatus": order.status, "requestedStatus": OrderStatus.CANCELLED.value},
        )

    now = datetime.now(timezone.utc)
    order.status = OrderStatus.CANCELLED.value
    order.cancel_reason = reason
    _append_history(order, order.status, reason or "Order cancelled", now)


def apply_payment_update(
    order: Order,
    payment_status: str,
    transaction_id: Optional[str] = None
) -> None:
    """Set payment status; completing a payment stamps paid_at."""
    valid = [s.value for s in PaymentStatus]
    if payment_status not in valid:
        raise InvalidArgumentError(
            f"Invalid payment status '{payment_status}'. Must be one of: {', '.join(valid)}",
            {"paymentStatus": payment_status},
        )

    order.payment_status = payment_status
    if transaction_id:
        order.transaction_id = transaction_id
    if payment_status == PaymentStatus.COMPLETED.value:
        order.paid_at = datetime.now(timezone.utc)
