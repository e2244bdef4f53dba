from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from supply_desk.dependencies import get_store
from supply_desk.models import OrderItem, OrderStatus, StoreName, Unit
from supply_desk.services.actions import (
    AddItemToOrder,
    ChangeOrderStatus,
    CreateOrder,
    DeleteOrder,
    DeleteOrderItem,
    MoveItemBetweenOrders,
    SpoilItem,
    UpdateOrder,
    UpdateOrderItem,
)
from supply_desk.services.app_store import AppStore, order_guard
from supply_desk.services.import_service import ParsedLine, import_lines
from supply_desk.services.order_lifecycle_service import (
    OrderEvent,
    OrderPolicyError,
    ensure_deletable,
    ensure_items_editable,
)
from supply_desk.services.persistence_service import order_to_dict
from supply_desk.services.state_store import EventKind, Transition

router = APIRouter(prefix='/orders', tags=['orders'])


class OrderLineIn(BaseModel):
    item_id: str
    quantity: Decimal = Field(ge=0)
    unit: Unit | None = None
    name: str | None = None


class CreateOrderIn(BaseModel):
    store: StoreName
    supplier_id: str
    items: list[OrderLineIn] = []


class UpdateOrderIn(BaseModel):
    items: list[OrderLineIn] | None = None
    status: OrderStatus | None = None


class UpdateLineIn(BaseModel):
    quantity: Decimal | None = Field(default=None, ge=0)
    unit: Unit | None = None


class MoveLineIn(BaseModel):
    dest_order_id: str


class ParsedLineIn(BaseModel):
    quantity: Decimal
    unit: Unit | None = None
    matched_item_id: str | None = None
    new_item_name: str | None = None


class ImportIn(BaseModel):
    store: StoreName
    lines: list[ParsedLineIn]


def _order_line(store: AppStore, line: OrderLineIn) -> OrderItem:
    item = store.state.find_item(line.item_id)
    name = line.name or (item.name if item else '')
    if not name:
        raise HTTPException(status_code=404, detail=f'Item {line.item_id} not found')
    return OrderItem(
        item_id=line.item_id,
        name=name,
        quantity=line.quantity,
        unit=line.unit or (item.unit if item else None),
    )


def _dispatch(store: AppStore, action, *guards) -> Transition:
    try:
        transition = store.dispatch_guarded(action, *guards)
    except OrderPolicyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    for event in transition.events:
        if event.kind == EventKind.VALIDATION_GAP:
            raise HTTPException(status_code=404, detail=event.detail)
        if event.kind == EventKind.ACTION_REJECTED:
            raise HTTPException(status_code=409, detail=event.detail)
    return transition


def _order_response(store: AppStore, order_id: str) -> dict:
    order = store.state.find_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail='Order not found')
    return order_to_dict(order)


@router.get('')
def list_orders(
    store_name: StoreName | None = Query(default=None, alias='store'),
    status: OrderStatus | None = None,
    store: AppStore = Depends(get_store),
):
    orders = [
        order
        for order in store.state.orders
        if (store_name is None or order.store == store_name) and (status is None or order.status == status)
    ]
    orders.sort(key=lambda order: order.modified_at, reverse=True)
    return [order_to_dict(order) for order in orders]


@router.get('/{order_id}')
def get_order(order_id: str, store: AppStore = Depends(get_store)):
    return _order_response(store, order_id)


@router.post('', status_code=201)
def create_order(payload: CreateOrderIn, store: AppStore = Depends(get_store)):
    supplier = store.state.find_supplier(payload.supplier_id)
    if supplier is None:
        raise HTTPException(status_code=404, detail='Supplier not found')
    new_id = store.new_id()
    _dispatch(
        store,
        CreateOrder(
            store=payload.store,
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            new_id=new_id,
            at=store.now(),
            items=tuple(_order_line(store, line) for line in payload.items),
        ),
    )
    return _order_response(store, new_id)


@router.post('/import')
def import_order_lines(payload: ImportIn, store: AppStore = Depends(get_store)):
    outcome = import_lines(
        store,
        payload.store,
        [
            ParsedLine(
                quantity=line.quantity,
                unit=line.unit,
                matched_item_id=line.matched_item_id,
                new_item_name=line.new_item_name,
            )
            for line in payload.lines
        ],
    )
    return {'created': outcome.created, 'updated': outcome.updated, 'dropped': outcome.dropped}


@router.put('/{order_id}')
def update_order(order_id: str, payload: UpdateOrderIn, store: AppStore = Depends(get_store)):
    existing = store.state.find_order(order_id)
    if existing is None:
        raise HTTPException(status_code=404, detail='Order not found')
    order = existing
    guards = []
    if payload.items is not None:
        order = replace(order, items=tuple(_order_line(store, line) for line in payload.items))
        guards.append(order_guard(order_id, ensure_items_editable))
    if payload.status is not None:
        order = replace(order, status=payload.status)
    _dispatch(store, UpdateOrder(order=order, at=store.now()), *guards)
    return _order_response(store, order_id)


@router.delete('/{order_id}', status_code=204)
def delete_order(order_id: str, store: AppStore = Depends(get_store)):
    _dispatch(store, DeleteOrder(order_id), order_guard(order_id, ensure_deletable))


@router.post('/{order_id}/events/{event}')
def change_status(order_id: str, event: OrderEvent, store: AppStore = Depends(get_store)):
    _dispatch(store, ChangeOrderStatus(order_id=order_id, event=event, at=store.now()))
    return _order_response(store, order_id)


@router.post('/{order_id}/items')
def add_item(order_id: str, payload: OrderLineIn, store: AppStore = Depends(get_store)):
    _dispatch(
        store,
        AddItemToOrder(order_id=order_id, item=_order_line(store, payload), at=store.now()),
        order_guard(order_id, ensure_items_editable),
    )
    return _order_response(store, order_id)


@router.patch('/{order_id}/items/{item_id}')
def update_item(order_id: str, item_id: str, payload: UpdateLineIn, store: AppStore = Depends(get_store)):
    _dispatch(
        store,
        UpdateOrderItem(order_id=order_id, item_id=item_id, at=store.now(), quantity=payload.quantity, unit=payload.unit),
        order_guard(order_id, ensure_items_editable),
    )
    return _order_response(store, order_id)


@router.delete('/{order_id}/items/{item_id}')
def delete_item(order_id: str, item_id: str, store: AppStore = Depends(get_store)):
    _dispatch(
        store,
        DeleteOrderItem(order_id=order_id, item_id=item_id, at=store.now()),
        order_guard(order_id, ensure_items_editable),
    )
    return _order_response(store, order_id)


@router.post('/{order_id}/items/{item_id}/move')
def move_item(order_id: str, item_id: str, payload: MoveLineIn, store: AppStore = Depends(get_store)):
    _dispatch(
        store,
        MoveItemBetweenOrders(
            source_order_id=order_id,
            dest_order_id=payload.dest_order_id,
            item_id=item_id,
            at=store.now(),
        ),
        order_guard(order_id, ensure_items_editable),
        order_guard(payload.dest_order_id, ensure_items_editable),
    )
    return {
        'source': _order_response(store, order_id),
        'destination': _order_response(store, payload.dest_order_id),
    }


@router.post('/{order_id}/items/{item_id}/spoil')
def spoil_item(order_id: str, item_id: str, store: AppStore = Depends(get_store)):
    transition = _dispatch(store, SpoilItem(order_id=order_id, item_id=item_id, new_id=store.new_id(), at=store.now()))
    touched = [event.order_id for event in transition.events if event.kind in (EventKind.ORDER_CREATED, EventKind.ORDER_UPDATED)]
    return {
        'source': _order_response(store, order_id),
        'reorder': _order_response(store, touched[0]) if touched else None,
    }
