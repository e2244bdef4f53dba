from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum

from supply_desk.models import AppState, Order, OrderItem, OrderStatus, StoreName
from supply_desk.services.actions import (
    Action,
    AddItemToOrder,
    AddOrders,
    ChangeOrderStatus,
    CreateOrder,
    DeleteOrder,
    DeleteOrderItem,
    ImportOrderLines,
    ItemCreated,
    ItemDeleted,
    ItemUpdated,
    MergeRemoteSnapshot,
    MoveItemBetweenOrders,
    ReplaceMasterData,
    SaveSettings,
    SetSyncStatus,
    SpoilItem,
    SupplierCreated,
    SupplierUpdated,
    UpdateOrder,
    UpdateOrderItem,
)
from supply_desk.services.merge_service import RemoteSnapshot, merge_snapshot, replace_master_data
from supply_desk.services.order_id_service import next_order_id
from supply_desk.services.order_lifecycle_service import (
    InvalidTransitionError,
    apply_event,
    event_for,
    new_order,
)


class EventKind(str, Enum):
    ORDER_CREATED = 'order_created'
    ORDER_UPDATED = 'order_updated'
    ORDER_DELETED = 'order_deleted'
    ORDER_STATUS_CHANGED = 'order_status_changed'
    ITEM_SPOILED = 'item_spoiled'
    VALIDATION_GAP = 'validation_gap'
    ACTION_REJECTED = 'action_rejected'


@dataclass(frozen=True)
class StateEvent:
    kind: EventKind
    order_id: str | None = None
    detail: str = ''


@dataclass(frozen=True)
class Transition:
    state: AppState
    events: tuple[StateEvent, ...] = ()

    @property
    def rejected(self) -> bool:
        return any(event.kind in (EventKind.VALIDATION_GAP, EventKind.ACTION_REJECTED) for event in self.events)


def _gap(state: AppState, detail: str, *, order_id: str | None = None) -> Transition:
    return Transition(state, (StateEvent(EventKind.VALIDATION_GAP, order_id, detail),))


def _reject(state: AppState, detail: str, *, order_id: str | None = None) -> Transition:
    return Transition(state, (StateEvent(EventKind.ACTION_REJECTED, order_id, detail),))


def merge_line(lines: tuple[OrderItem, ...], line: OrderItem) -> tuple[OrderItem, ...]:
    """Add `line`, summing quantities when the item is already on the order."""
    for index, existing in enumerate(lines):
        if existing.item_id == line.item_id:
            merged = replace(existing, quantity=existing.quantity + line.quantity)
            return lines[:index] + (merged,) + lines[index + 1 :]
    return lines + (line,)


def merge_lines(lines: tuple[OrderItem, ...], new_lines: tuple[OrderItem, ...]) -> tuple[OrderItem, ...]:
    for line in new_lines:
        lines = merge_line(lines, line)
    return lines


def _find_line(order: Order, item_id: str) -> OrderItem | None:
    return next((line for line in order.items if line.item_id == item_id), None)


def _replace_orders(state: AppState, *updated: Order) -> AppState:
    by_id = {order.id: order for order in updated}
    return replace(state, orders=tuple(by_id.get(order.id, order) for order in state.orders))


def _open_order_for(state: AppState, *, store: StoreName, supplier_id: str, exclude_id: str | None = None) -> Order | None:
    for order in state.orders:
        if order.id == exclude_id:
            continue
        if order.store == store and order.supplier_id == supplier_id and order.status == OrderStatus.DISPATCHING:
            return order
    return None


def _negative(lines: tuple[OrderItem, ...]) -> bool:
    return any(line.quantity < 0 for line in lines)


def _append_new_order(
    state: AppState,
    *,
    new_id: str,
    store: StoreName,
    supplier_id: str,
    supplier_name: str,
    items: tuple[OrderItem, ...],
    at: datetime,
) -> tuple[AppState, Order]:
    order_id, counters = next_order_id(state.order_id_counters, supplier_name=supplier_name, store=store, on=at)
    order = new_order(
        id=new_id,
        order_id=order_id,
        store=store,
        supplier_id=supplier_id,
        supplier_name=supplier_name,
        at=at,
    )
    order = replace(order, items=merge_lines((), items))
    return replace(state, orders=state.orders + (order,), order_id_counters=counters), order


def _create_order(state: AppState, action: CreateOrder) -> Transition:
    if state.find_order(action.new_id):
        return _reject(state, f'Order id {action.new_id} already exists', order_id=action.new_id)
    if _negative(action.items):
        return _reject(state, 'Quantities cannot be negative')
    next_state, order = _append_new_order(
        state,
        new_id=action.new_id,
        store=action.store,
        supplier_id=action.supplier_id,
        supplier_name=action.supplier_name,
        items=action.items,
        at=action.at,
    )
    return Transition(next_state, (StateEvent(EventKind.ORDER_CREATED, order.id, order.order_id),))


def _add_orders(state: AppState, action: AddOrders) -> Transition:
    known = {order.id for order in state.orders}
    fresh: list[Order] = []
    for order in action.orders:
        if order.id in known:
            continue
        known.add(order.id)
        fresh.append(order)
    if not fresh:
        return Transition(state)
    return Transition(
        replace(state, orders=state.orders + tuple(fresh)),
        tuple(StateEvent(EventKind.ORDER_CREATED, order.id, order.order_id) for order in fresh),
    )


def _update_order(state: AppState, action: UpdateOrder) -> Transition:
    existing = state.find_order(action.order.id)
    if existing is None:
        return _gap(state, 'Order not found', order_id=action.order.id)
    if _negative(action.order.items):
        return _reject(state, 'Quantities cannot be negative', order_id=existing.id)

    # Lifecycle fields only move through lifecycle events.
    updated = replace(
        action.order,
        order_id=existing.order_id,
        created_at=existing.created_at,
        status=existing.status,
        is_sent=existing.is_sent,
        is_received=existing.is_received,
        completed_at=existing.completed_at,
        modified_at=action.at,
    )
    if action.order.status != existing.status:
        try:
            updated = apply_event(updated, event_for(existing.status, action.order.status), at=action.at)
        except InvalidTransitionError as exc:
            return _reject(state, str(exc), order_id=existing.id)
    return Transition(_replace_orders(state, updated), (StateEvent(EventKind.ORDER_UPDATED, updated.id),))


def _delete_order(state: AppState, action: DeleteOrder) -> Transition:
    if state.find_order(action.order_id) is None:
        return _gap(state, 'Order not found', order_id=action.order_id)
    return Transition(
        replace(state, orders=tuple(order for order in state.orders if order.id != action.order_id)),
        (StateEvent(EventKind.ORDER_DELETED, action.order_id),),
    )


def _change_order_status(state: AppState, action: ChangeOrderStatus) -> Transition:
    order = state.find_order(action.order_id)
    if order is None:
        return _gap(state, 'Order not found', order_id=action.order_id)
    try:
        updated = apply_event(order, action.event, at=action.at)
    except InvalidTransitionError as exc:
        return _reject(state, str(exc), order_id=order.id)
    return Transition(
        _replace_orders(state, updated),
        (StateEvent(EventKind.ORDER_STATUS_CHANGED, updated.id, updated.status.value),),
    )


def _add_item_to_order(state: AppState, action: AddItemToOrder) -> Transition:
    order = state.find_order(action.order_id)
    if order is None:
        return _gap(state, 'Order not found', order_id=action.order_id)
    if action.item.quantity < 0:
        return _reject(state, 'Quantities cannot be negative', order_id=order.id)
    updated = replace(order, items=merge_line(order.items, action.item), modified_at=action.at)
    return Transition(_replace_orders(state, updated), (StateEvent(EventKind.ORDER_UPDATED, order.id),))


def _update_order_item(state: AppState, action: UpdateOrderItem) -> Transition:
    order = state.find_order(action.order_id)
    if order is None:
        return _gap(state, 'Order not found', order_id=action.order_id)
    if _find_line(order, action.item_id) is None:
        return _gap(state, f'Item {action.item_id} is not on the order', order_id=order.id)
    if action.quantity is not None and action.quantity < 0:
        return _reject(state, 'Quantities cannot be negative', order_id=order.id)

    def _patch(line: OrderItem) -> OrderItem:
        if line.item_id != action.item_id:
            return line
        return replace(
            line,
            quantity=action.quantity if action.quantity is not None else line.quantity,
            unit=action.unit if action.unit is not None else line.unit,
        )

    updated = replace(order, items=tuple(_patch(line) for line in order.items), modified_at=action.at)
    return Transition(_replace_orders(state, updated), (StateEvent(EventKind.ORDER_UPDATED, order.id),))


def _delete_order_item(state: AppState, action: DeleteOrderItem) -> Transition:
    order = state.find_order(action.order_id)
    if order is None:
        return _gap(state, 'Order not found', order_id=action.order_id)
    if _find_line(order, action.item_id) is None:
        return _gap(state, f'Item {action.item_id} is not on the order', order_id=order.id)
    updated = replace(
        order,
        items=tuple(line for line in order.items if line.item_id != action.item_id),
        modified_at=action.at,
    )
    return Transition(_replace_orders(state, updated), (StateEvent(EventKind.ORDER_UPDATED, order.id),))


def _move_item(state: AppState, action: MoveItemBetweenOrders) -> Transition:
    if action.source_order_id == action.dest_order_id:
        return Transition(state)
    source = state.find_order(action.source_order_id)
    dest = state.find_order(action.dest_order_id)
    if source is None or dest is None:
        return _gap(state, 'Order not found', order_id=action.source_order_id if source is None else action.dest_order_id)
    line = _find_line(source, action.item_id)
    if line is None:
        return _gap(state, f'Item {action.item_id} is not on the order', order_id=source.id)

    updated_source = replace(
        source,
        items=tuple(existing for existing in source.items if existing.item_id != action.item_id),
        modified_at=action.at,
    )
    updated_dest = replace(dest, items=merge_line(dest.items, line), modified_at=action.at)
    return Transition(
        _replace_orders(state, updated_source, updated_dest),
        (
            StateEvent(EventKind.ORDER_UPDATED, source.id),
            StateEvent(EventKind.ORDER_UPDATED, dest.id),
        ),
    )


def _spoil_item(state: AppState, action: SpoilItem) -> Transition:
    source = state.find_order(action.order_id)
    if source is None:
        return _gap(state, 'Order not found', order_id=action.order_id)
    line = _find_line(source, action.item_id)
    if line is None:
        return _gap(state, f'Item {action.item_id} is not on the order', order_id=source.id)
    if line.is_spoiled:
        return _reject(state, f'{line.name} is already marked spoiled', order_id=source.id)
    if state.find_order(action.new_id):
        return _reject(state, f'Order id {action.new_id} already exists', order_id=action.new_id)

    master = state.find_item(line.item_id)
    supplier_id = master.supplier_id if master else source.supplier_id
    supplier_name = master.supplier_name if master else source.supplier_name

    spoiled_source = replace(
        source,
        items=tuple(replace(existing, is_spoiled=True) if existing.item_id == line.item_id else existing for existing in source.items),
        modified_at=action.at,
    )
    next_state = _replace_orders(state, spoiled_source)
    fresh = replace(line, is_spoiled=False)
    events = [StateEvent(EventKind.ITEM_SPOILED, source.id, line.item_id)]

    target = _open_order_for(next_state, store=source.store, supplier_id=supplier_id, exclude_id=source.id)
    if target is not None:
        reordered = replace(target, items=merge_line(target.items, fresh), modified_at=action.at)
        next_state = _replace_orders(next_state, reordered)
        events.append(StateEvent(EventKind.ORDER_UPDATED, target.id))
    else:
        next_state, created = _append_new_order(
            next_state,
            new_id=action.new_id,
            store=source.store,
            supplier_id=supplier_id,
            supplier_name=supplier_name,
            items=(fresh,),
            at=action.at,
        )
        events.append(StateEvent(EventKind.ORDER_CREATED, created.id, created.order_id))
    return Transition(next_state, tuple(events))


def _import_order_lines(state: AppState, action: ImportOrderLines) -> Transition:
    if any(_negative(group.items) for group in action.groups):
        return _reject(state, 'Quantities cannot be negative')

    next_state = state
    events: list[StateEvent] = []
    for index, group in enumerate(action.groups, start=1):
        if not group.items:
            continue
        target = _open_order_for(next_state, store=action.store, supplier_id=group.supplier_id)
        if target is not None:
            updated = replace(target, items=merge_lines(target.items, group.items), modified_at=action.at)
            next_state = _replace_orders(next_state, updated)
            events.append(StateEvent(EventKind.ORDER_UPDATED, target.id))
            continue
        new_id = f'{action.new_id}-{index}'
        if next_state.find_order(new_id):
            return _reject(state, f'Order id {new_id} already exists', order_id=new_id)
        next_state, created = _append_new_order(
            next_state,
            new_id=new_id,
            store=action.store,
            supplier_id=group.supplier_id,
            supplier_name=group.supplier_name,
            items=group.items,
            at=action.at,
        )
        events.append(StateEvent(EventKind.ORDER_CREATED, created.id, created.order_id))
    return Transition(next_state, tuple(events))


def _item_created(state: AppState, action: ItemCreated) -> Transition:
    if state.find_supplier(action.item.supplier_id) is None:
        return _gap(state, f'Supplier {action.item.supplier_id} not found')
    if state.find_item(action.item.id):
        return Transition(replace(state, items=tuple(action.item if item.id == action.item.id else item for item in state.items)))
    return Transition(replace(state, items=state.items + (action.item,)))


def _item_updated(state: AppState, action: ItemUpdated) -> Transition:
    updated_item = action.item
    if state.find_item(updated_item.id) is None:
        return _gap(state, f'Item {updated_item.id} not found')
    if state.find_supplier(updated_item.supplier_id) is None:
        return _gap(state, f'Supplier {updated_item.supplier_id} not found')

    # Cached copies on orders follow the master record; this is not an order edit.
    def _repair(order: Order) -> Order:
        if _find_line(order, updated_item.id) is None:
            return order
        return replace(
            order,
            items=tuple(
                replace(line, name=updated_item.name, unit=updated_item.unit) if line.item_id == updated_item.id else line
                for line in order.items
            ),
        )

    return Transition(
        replace(
            state,
            items=tuple(updated_item if item.id == updated_item.id else item for item in state.items),
            orders=tuple(_repair(order) for order in state.orders),
        )
    )


def _item_deleted(state: AppState, action: ItemDeleted) -> Transition:
    if state.find_item(action.item_id) is None:
        return _gap(state, f'Item {action.item_id} not found')
    return Transition(replace(state, items=tuple(item for item in state.items if item.id != action.item_id)))


def _supplier_created(state: AppState, action: SupplierCreated) -> Transition:
    if state.find_supplier(action.supplier.id):
        return Transition(state)
    return Transition(replace(state, suppliers=state.suppliers + (action.supplier,)))


def _supplier_updated(state: AppState, action: SupplierUpdated) -> Transition:
    supplier = action.supplier
    if state.find_supplier(supplier.id) is None:
        return _gap(state, f'Supplier {supplier.id} not found')
    return Transition(
        replace(
            state,
            suppliers=tuple(supplier if existing.id == supplier.id else existing for existing in state.suppliers),
            items=tuple(
                replace(item, supplier_name=supplier.name) if item.supplier_id == supplier.id else item
                for item in state.items
            ),
        )
    )


def _save_settings(state: AppState, action: SaveSettings) -> Transition:
    return Transition(replace(state, settings=action.settings))


def _replace_master_data(state: AppState, action: ReplaceMasterData) -> Transition:
    return Transition(
        replace_master_data(state, items=action.items, suppliers=action.suppliers, raw_feed=action.raw_feed)
    )


def _merge_remote_snapshot(state: AppState, action: MergeRemoteSnapshot) -> Transition:
    snapshot = RemoteSnapshot(items=action.items, suppliers=action.suppliers, orders=action.orders)
    return Transition(merge_snapshot(state, snapshot))


def _set_sync_status(state: AppState, action: SetSyncStatus) -> Transition:
    if state.sync_status == action.status:
        return Transition(state)
    return Transition(replace(state, sync_status=action.status))


HANDLERS: dict[type, Callable[[AppState, Action], Transition]] = {
    CreateOrder: _create_order,
    AddOrders: _add_orders,
    UpdateOrder: _update_order,
    DeleteOrder: _delete_order,
    ChangeOrderStatus: _change_order_status,
    AddItemToOrder: _add_item_to_order,
    UpdateOrderItem: _update_order_item,
    DeleteOrderItem: _delete_order_item,
    MoveItemBetweenOrders: _move_item,
    SpoilItem: _spoil_item,
    ImportOrderLines: _import_order_lines,
    ItemCreated: _item_created,
    ItemUpdated: _item_updated,
    ItemDeleted: _item_deleted,
    SupplierCreated: _supplier_created,
    SupplierUpdated: _supplier_updated,
    SaveSettings: _save_settings,
    ReplaceMasterData: _replace_master_data,
    MergeRemoteSnapshot: _merge_remote_snapshot,
    SetSyncStatus: _set_sync_status,
}


def apply(state: AppState, action: Action) -> Transition:
    """
    Map (state, action) to the next state plus the events it produced.
    Pure: no clock, no id generation, no I/O. Unknown actions leave the state as is.
    """
    handler = HANDLERS.get(type(action))
    if handler is None:
        return Transition(state)
    return handler(state, action)


def total_quantity(state: AppState, item_id: str) -> Decimal:
    return sum(
        (line.quantity for order in state.orders for line in order.items if line.item_id == item_id),
        Decimal('0'),
    )
