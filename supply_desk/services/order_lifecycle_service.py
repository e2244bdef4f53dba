from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from enum import Enum

from supply_desk.models import Order, OrderStatus, StoreName


class OrderEvent(str, Enum):
    SEND = 'send'
    UNSEND = 'unsend'
    RECEIVE = 'receive'


class InvalidTransitionError(ValueError):
    pass


class OrderPolicyError(ValueError):
    pass


TRANSITIONS: dict[tuple[OrderStatus, OrderEvent], OrderStatus] = {
    (OrderStatus.DISPATCHING, OrderEvent.SEND): OrderStatus.ON_THE_WAY,
    (OrderStatus.ON_THE_WAY, OrderEvent.UNSEND): OrderStatus.DISPATCHING,
    (OrderStatus.ON_THE_WAY, OrderEvent.RECEIVE): OrderStatus.COMPLETED,
}

ITEM_EDITABLE_STATUSES = frozenset({OrderStatus.DISPATCHING, OrderStatus.ON_THE_WAY})
DELETABLE_STATUSES = frozenset({OrderStatus.DISPATCHING})


def new_order(
    *,
    id: str,
    order_id: str,
    store: StoreName,
    supplier_id: str,
    supplier_name: str,
    at: datetime,
) -> Order:
    return Order(
        id=id,
        order_id=order_id,
        store=store,
        supplier_id=supplier_id,
        supplier_name=supplier_name,
        items=(),
        status=OrderStatus.DISPATCHING,
        is_sent=False,
        is_received=False,
        created_at=at,
        modified_at=at,
    )


def event_for(current: OrderStatus, target: OrderStatus) -> OrderEvent:
    for (source, event), destination in TRANSITIONS.items():
        if source == current and destination == target:
            return event
    raise InvalidTransitionError(f'Order cannot move from {current.value} to {target.value}')


def apply_event(order: Order, event: OrderEvent, *, at: datetime) -> Order:
    target = TRANSITIONS.get((order.status, event))
    if target is None:
        raise InvalidTransitionError(f'Cannot {event.value} an order that is {order.status.value}')

    if event == OrderEvent.SEND:
        return replace(order, status=target, is_sent=True, modified_at=at)
    if event == OrderEvent.UNSEND:
        return replace(order, status=target, is_sent=False, modified_at=at)
    # Completion time is written once.
    return replace(
        order,
        status=target,
        is_received=True,
        completed_at=order.completed_at or at,
        modified_at=at,
    )


def can_edit_items(order: Order) -> bool:
    return order.status in ITEM_EDITABLE_STATUSES


def can_delete(order: Order) -> bool:
    return order.status in DELETABLE_STATUSES


def ensure_items_editable(order: Order) -> None:
    if not can_edit_items(order):
        raise OrderPolicyError(f'Items of order {order.order_id} cannot change once it is {order.status.value}')


def ensure_deletable(order: Order) -> None:
    if not can_delete(order):
        raise OrderPolicyError(f'Order {order.order_id} can only be deleted while dispatching')
