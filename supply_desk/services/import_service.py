from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from supply_desk.config import settings
from supply_desk.models import AppState, Item, OrderItem, StoreName, Unit
from supply_desk.services.actions import ImportOrderLines, SupplierLines
from supply_desk.services.app_store import AppStore
from supply_desk.services.state_store import EventKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedLine:
    quantity: Decimal
    unit: Unit | None = None
    matched_item_id: str | None = None
    new_item_name: str | None = None


class LineParser(Protocol):
    def parse(self, text: str, items: tuple[Item, ...]) -> list[ParsedLine]: ...


@dataclass(frozen=True)
class ImportPlan:
    groups: tuple[SupplierLines, ...]
    dropped: int


@dataclass(frozen=True)
class ImportOutcome:
    created: int
    updated: int
    dropped: int


def _new_item_id() -> str:
    return f'new_{uuid.uuid4().hex}'


def route_lines(
    state: AppState,
    lines: list[ParsedLine],
    *,
    catch_all_supplier: str,
    new_item_id: Callable[[], str] = _new_item_id,
) -> ImportPlan:
    """
    Resolve each parsed line to a supplier.
    Matched items follow their own supplier, unknown names go to the catch-all supplier,
    anything else is dropped and only counted.
    """
    grouped: dict[str, list[OrderItem]] = {}
    names: dict[str, str] = {}
    dropped = 0
    catch_all = state.find_supplier_by_name(catch_all_supplier)

    for line in lines:
        if line.quantity <= 0:
            dropped += 1
            continue
        supplier = None
        order_item = None
        if line.matched_item_id:
            item = state.find_item(line.matched_item_id)
            if item is not None:
                supplier = state.find_supplier(item.supplier_id)
                order_item = OrderItem(
                    item_id=item.id,
                    name=item.name,
                    quantity=line.quantity,
                    unit=line.unit or item.unit,
                )
        elif line.new_item_name and line.new_item_name.strip():
            supplier = catch_all
            order_item = OrderItem(
                item_id=new_item_id(),
                name=line.new_item_name.strip(),
                quantity=line.quantity,
                unit=line.unit,
            )

        if supplier is None or order_item is None:
            dropped += 1
            continue
        grouped.setdefault(supplier.id, []).append(order_item)
        names[supplier.id] = supplier.name

    groups = tuple(
        SupplierLines(supplier_id=supplier_id, supplier_name=names[supplier_id], items=tuple(order_items))
        for supplier_id, order_items in grouped.items()
    )
    return ImportPlan(groups=groups, dropped=dropped)


def import_lines(
    store: AppStore,
    store_name: StoreName,
    lines: list[ParsedLine],
    *,
    catch_all_supplier: str | None = None,
) -> ImportOutcome:
    plan = route_lines(
        store.state,
        lines,
        catch_all_supplier=catch_all_supplier or settings.catch_all_supplier,
    )
    if plan.dropped:
        logger.info('Dropped %s parsed lines without a supplier', plan.dropped)
    if not plan.groups:
        store.notifier.info('Could not parse any items from the list.')
        return ImportOutcome(created=0, updated=0, dropped=plan.dropped)

    transition = store.dispatch(
        ImportOrderLines(store=store_name, groups=plan.groups, new_id=store.new_id('imp'), at=store.now())
    )
    created = sum(1 for event in transition.events if event.kind == EventKind.ORDER_CREATED)
    updated = sum(1 for event in transition.events if event.kind == EventKind.ORDER_UPDATED)
    if updated:
        store.notifier.info(f'{updated} existing order(s) updated.')
    return ImportOutcome(created=created, updated=updated, dropped=plan.dropped)


def import_text(store: AppStore, store_name: StoreName, text: str, parser: LineParser) -> ImportOutcome:
    if not text.strip():
        return ImportOutcome(created=0, updated=0, dropped=0)
    return import_lines(store, store_name, parser.parse(text, store.state.items))
