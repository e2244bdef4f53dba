from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from supply_desk.models import (
    AppSettings,
    AppState,
    Base,
    Item,
    Order,
    OrderItem,
    OrderStatus,
    StateSnapshot,
    StoreName,
    Supplier,
    Unit,
)

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def parse_quantity(value) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f'Invalid quantity: {value!r}') from exc


def parse_unit(value: str | None) -> Unit | None:
    if not value:
        return None
    try:
        return Unit(value)
    except ValueError:
        logger.warning('Ignoring unknown unit %r', value)
        return None


# Snapshot documents keep the camelCase layout of earlier cached versions.


def supplier_to_dict(supplier: Supplier) -> dict:
    return {
        'id': supplier.id,
        'name': supplier.name,
        'chatId': supplier.chat_id,
        'modifiedAt': format_timestamp(supplier.modified_at),
    }


def _supplier_from_dict(raw: dict) -> Supplier:
    return Supplier(
        id=str(raw['id']),
        name=raw['name'],
        chat_id=raw.get('chatId') or raw.get('telegramGroupId'),
        modified_at=parse_timestamp(raw.get('modifiedAt')),
    )


def item_to_dict(item: Item) -> dict:
    return {
        'id': item.id,
        'name': item.name,
        'unit': item.unit.value if item.unit else None,
        'supplierId': item.supplier_id,
        'supplierName': item.supplier_name,
        'createdAt': format_timestamp(item.created_at),
        'modifiedAt': format_timestamp(item.modified_at),
    }


def _item_from_dict(raw: dict) -> Item:
    return Item(
        id=str(raw['id']),
        name=raw['name'],
        unit=parse_unit(raw.get('unit')),
        supplier_id=str(raw['supplierId']),
        supplier_name=raw.get('supplierName') or '',
        created_at=parse_timestamp(raw.get('createdAt')),
        modified_at=parse_timestamp(raw.get('modifiedAt')),
    )


def _order_item_to_dict(line: OrderItem) -> dict:
    return {
        'itemId': line.item_id,
        'name': line.name,
        'quantity': str(line.quantity),
        'unit': line.unit.value if line.unit else None,
        'isSpoiled': line.is_spoiled,
    }


def _order_item_from_dict(raw: dict) -> OrderItem:
    return OrderItem(
        item_id=str(raw['itemId']),
        name=raw.get('name') or '',
        quantity=parse_quantity(raw.get('quantity', 0)),
        unit=parse_unit(raw.get('unit')),
        is_spoiled=bool(raw.get('isSpoiled', False)),
    )


def order_to_dict(order: Order) -> dict:
    return {
        'id': order.id,
        'orderId': order.order_id,
        'store': order.store.value,
        'supplierId': order.supplier_id,
        'supplierName': order.supplier_name,
        'items': [_order_item_to_dict(line) for line in order.items],
        'status': order.status.value,
        'isSent': order.is_sent,
        'isReceived': order.is_received,
        'createdAt': format_timestamp(order.created_at),
        'modifiedAt': format_timestamp(order.modified_at),
        'completedAt': format_timestamp(order.completed_at),
    }


def _order_from_dict(raw: dict, *, loaded_at: datetime) -> Order:
    # Older snapshots stored the modification time as `lastUpdate`.
    modified_raw = raw.get('modifiedAt') or raw.get('lastUpdate')
    status = OrderStatus(raw.get('status') or OrderStatus.DISPATCHING.value)
    completed_at = parse_timestamp(raw.get('completedAt'))
    if status != OrderStatus.COMPLETED:
        completed_at = None
    return Order(
        id=str(raw['id']),
        order_id=raw.get('orderId') or str(raw['id']),
        store=StoreName(raw['store']),
        supplier_id=str(raw['supplierId']),
        supplier_name=raw.get('supplierName') or '',
        items=tuple(_order_item_from_dict(line) for line in raw.get('items') or []),
        status=status,
        is_sent=bool(raw.get('isSent', False)),
        is_received=bool(raw.get('isReceived', False)),
        created_at=parse_timestamp(raw.get('createdAt')) or EPOCH,
        modified_at=parse_timestamp(modified_raw) or loaded_at,
        completed_at=completed_at,
    )


def _settings_to_dict(settings: AppSettings) -> dict:
    return {
        'remoteDbUrl': settings.remote_db_url,
        'remoteDbKey': settings.remote_db_key,
        'csvUrl': settings.feed_url,
        'telegramToken': settings.telegram_token,
        'isAiEnabled': settings.is_ai_enabled,
        'messageTemplates': dict(settings.message_templates),
        'lastSyncedCsvContent': settings.last_synced_feed,
    }


def _settings_from_dict(raw: dict, defaults: AppSettings) -> AppSettings:
    return AppSettings(
        remote_db_url=raw.get('remoteDbUrl') or raw.get('supabaseUrl') or defaults.remote_db_url,
        remote_db_key=raw.get('remoteDbKey') or raw.get('supabaseKey') or defaults.remote_db_key,
        feed_url=raw.get('csvUrl') or defaults.feed_url,
        telegram_token=raw.get('telegramToken') or defaults.telegram_token,
        is_ai_enabled=raw.get('isAiEnabled', defaults.is_ai_enabled) is not False,
        message_templates=dict(raw.get('messageTemplates') or defaults.message_templates),
        last_synced_feed=raw.get('lastSyncedCsvContent'),
    )


def state_to_payload(state: AppState) -> dict:
    return {
        'suppliers': [supplier_to_dict(supplier) for supplier in state.suppliers],
        'items': [item_to_dict(item) for item in state.items],
        'orders': [order_to_dict(order) for order in state.orders],
        'orderIdCounters': dict(state.order_id_counters),
        'settings': _settings_to_dict(state.settings),
    }


def state_from_payload(
    payload: dict,
    *,
    default_settings: AppSettings | None = None,
    loaded_at: datetime | None = None,
) -> AppState:
    """Rebuild state from a stored document. Unknown keys are ignored and missing ones take defaults."""
    defaults = default_settings or AppSettings()
    loaded_at = loaded_at or datetime.now(tz=timezone.utc)
    return AppState(
        suppliers=tuple(_supplier_from_dict(raw) for raw in payload.get('suppliers') or []),
        items=tuple(_item_from_dict(raw) for raw in payload.get('items') or []),
        orders=tuple(_order_from_dict(raw, loaded_at=loaded_at) for raw in payload.get('orders') or []),
        order_id_counters={str(key): int(value) for key, value in (payload.get('orderIdCounters') or {}).items()},
        settings=_settings_from_dict(payload.get('settings') or {}, defaults),
    )


def create_schema(engine: Engine) -> None:
    Base.metadata.create_all(engine, tables=[StateSnapshot.__table__])


class SnapshotRepository:
    """Stores the whole application state as one JSON document under a fixed key."""

    def __init__(self, session_factory: sessionmaker, *, key: str) -> None:
        self.session_factory = session_factory
        self.key = key

    def load(self, *, default_settings: AppSettings | None = None) -> AppState:
        with self.session_factory() as db:
            row = db.execute(select(StateSnapshot).where(StateSnapshot.key == self.key)).scalar_one_or_none()
            payload = dict(row.payload) if row else None
        if payload is None:
            logger.info('No stored snapshot under %s, starting empty', self.key)
            return AppState(settings=default_settings or AppSettings())
        return state_from_payload(payload, default_settings=default_settings)

    def save(self, state: AppState) -> None:
        payload = state_to_payload(state)
        with self.session_factory() as db:
            row = db.execute(select(StateSnapshot).where(StateSnapshot.key == self.key)).scalar_one_or_none()
            if row is None:
                db.add(StateSnapshot(key=self.key, payload=payload))
            else:
                row.payload = payload
            db.commit()
