from __future__ import annotations

import json
import logging
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from supply_desk.config import settings
from supply_desk.models import Item, ItemDraft, Order, OrderItem, OrderStatus, StoreName, Supplier
from supply_desk.services.persistence_service import EPOCH, parse_quantity, parse_timestamp, parse_unit

logger = logging.getLogger(__name__)


class RemoteError(RuntimeError):
    pass


class RemoteNotConfiguredError(RemoteError):
    pass


def _supplier_from_row(row: dict) -> Supplier:
    return Supplier(
        id=str(row['id']),
        name=row['name'],
        chat_id=row.get('chat_id') or row.get('telegram_group_id'),
        modified_at=parse_timestamp(row.get('modified_at')),
    )


def _item_from_row(row: dict, supplier: Supplier) -> Item:
    return Item(
        id=str(row['id']),
        name=row['name'],
        unit=parse_unit(row.get('unit')),
        supplier_id=supplier.id,
        supplier_name=supplier.name,
        created_at=parse_timestamp(row.get('created_at')),
        modified_at=parse_timestamp(row.get('modified_at')),
    )


def _order_item_from_row(row: dict) -> OrderItem:
    return OrderItem(
        item_id=str(row['item_id']),
        name=row.get('name') or '',
        quantity=parse_quantity(row.get('quantity', 0)),
        unit=parse_unit(row.get('unit')),
        is_spoiled=bool(row.get('is_spoiled')),
    )


def _order_from_row(row: dict) -> Order:
    status = OrderStatus(row.get('status') or OrderStatus.DISPATCHING.value)
    created_at = parse_timestamp(row.get('created_at')) or EPOCH
    return Order(
        id=str(row['id']),
        order_id=row.get('order_id') or str(row['id']),
        store=StoreName(row['store']),
        supplier_id=str(row['supplier_id']),
        supplier_name=row.get('supplier_name') or '',
        items=tuple(_order_item_from_row(item) for item in row.get('order_items') or []),
        status=status,
        is_sent=bool(row.get('is_sent')),
        is_received=bool(row.get('is_received')),
        created_at=created_at,
        modified_at=parse_timestamp(row.get('modified_at')) or created_at,
        completed_at=parse_timestamp(row.get('completed_at')) if status == OrderStatus.COMPLETED else None,
    )


class RemoteDatabaseClient:
    """PostgREST endpoints holding suppliers, items and orders."""

    def __init__(self, *, url: str | None, key: str | None, timeout_seconds: int | None = None) -> None:
        if not url or not key:
            raise RemoteNotConfiguredError('Remote database URL and key are required')
        self.base_url = url.rstrip('/')
        self.timeout_seconds = timeout_seconds or settings.remote_timeout_seconds
        self.headers = {
            'apikey': key,
            'Authorization': f'Bearer {key}',
            'Content-Type': 'application/json',
        }

    def _request(self, method: str, path: str, payload: dict | None = None, *, returning: bool = False):
        headers = dict(self.headers)
        if returning:
            headers['Prefer'] = 'return=representation'
        req = Request(
            url=f'{self.base_url}{path}',
            data=json.dumps(payload).encode('utf-8') if payload is not None else None,
            headers=headers,
            method=method,
        )
        try:
            with urlopen(req, timeout=self.timeout_seconds) as response:
                body = response.read().decode('utf-8')
        except HTTPError as exc:
            body = exc.read().decode('utf-8', errors='ignore') if exc.fp else ''
            raise RemoteError(f'Remote database error {exc.code} on {method} {path}: {body}') from exc
        except URLError as exc:
            raise RemoteError(f'Remote database network error on {method} {path}: {exc.reason}') from exc
        except TimeoutError as exc:
            raise RemoteError(f'Remote database timed out on {method} {path}') from exc
        except UnicodeDecodeError as exc:
            raise RemoteError(f'Remote database returned undecodable body on {method} {path}') from exc

        if not body:
            return None
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise RemoteError(f'Remote database returned invalid JSON on {method} {path}') from exc

    def _first_row(self, rows, *, path: str) -> dict:
        if not rows:
            raise RemoteError(f'Remote database returned no row for {path}')
        return rows[0]

    def fetch_master_data(self) -> tuple[tuple[Item, ...], tuple[Supplier, ...]]:
        supplier_rows = self._request('GET', '/rest/v1/suppliers?select=*') or []
        item_rows = self._request('GET', '/rest/v1/items?select=*') or []

        items: list[Item] = []
        dropped = 0
        try:
            suppliers_by_id = {str(row['id']): _supplier_from_row(row) for row in supplier_rows}
            for row in item_rows:
                supplier = suppliers_by_id.get(str(row.get('supplier_id')))
                if supplier is None:
                    dropped += 1
                    continue
                items.append(_item_from_row(row, supplier))
        except (KeyError, TypeError, ValueError) as exc:
            raise RemoteError(f'Remote database returned malformed master data: {exc}') from exc
        if dropped:
            logger.warning('Dropped %s remote items referencing unknown suppliers', dropped)
        return tuple(items), tuple(suppliers_by_id.values())

    def fetch_orders(self) -> tuple[Order, ...]:
        rows = self._request('GET', '/rest/v1/orders?select=*,order_items(*)') or []
        orders: list[Order] = []
        for row in rows:
            try:
                orders.append(_order_from_row(row))
            except (KeyError, ValueError) as exc:
                logger.warning('Skipping malformed remote order %s: %s', row.get('id'), exc)
        return tuple(orders)

    def add_item(self, draft: ItemDraft, supplier: Supplier) -> Item:
        path = '/rest/v1/items?select=*'
        payload = {
            'name': draft.name,
            'unit': draft.unit.value if draft.unit else None,
            'supplier_id': draft.supplier_id,
        }
        row = self._first_row(self._request('POST', path, payload, returning=True), path=path)
        return _item_from_row(row, supplier)

    def update_item(self, item: Item, supplier: Supplier) -> Item:
        path = f'/rest/v1/items?id=eq.{quote(item.id)}&select=*'
        payload = {
            'name': item.name,
            'unit': item.unit.value if item.unit else None,
            'supplier_id': item.supplier_id,
        }
        row = self._first_row(self._request('PATCH', path, payload, returning=True), path=path)
        return _item_from_row(row, supplier)

    def delete_item(self, item_id: str) -> None:
        self._request('DELETE', f'/rest/v1/items?id=eq.{quote(item_id)}')

    def update_supplier(self, supplier: Supplier) -> Supplier:
        path = f'/rest/v1/suppliers?id=eq.{quote(supplier.id)}&select=*'
        row = self._first_row(
            self._request('PATCH', path, {'chat_id': supplier.chat_id}, returning=True),
            path=path,
        )
        return _supplier_from_row(row)

    def add_supplier(self, name: str) -> Supplier:
        path = '/rest/v1/suppliers?select=*'
        row = self._first_row(self._request('POST', path, {'name': name}, returning=True), path=path)
        return _supplier_from_row(row)
