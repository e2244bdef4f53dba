from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Union

from supply_desk.models import AppSettings, Item, Order, OrderItem, StoreName, Supplier, SyncStatus, Unit
from supply_desk.services.order_lifecycle_service import OrderEvent

# Every action that creates orders carries `new_id`; timestamps travel as `at`.
# The transition function never reads the clock or generates ids itself.


@dataclass(frozen=True)
class CreateOrder:
    store: StoreName
    supplier_id: str
    supplier_name: str
    new_id: str
    at: datetime
    items: tuple[OrderItem, ...] = ()


@dataclass(frozen=True)
class AddOrders:
    orders: tuple[Order, ...]


@dataclass(frozen=True)
class UpdateOrder:
    order: Order
    at: datetime


@dataclass(frozen=True)
class DeleteOrder:
    order_id: str


@dataclass(frozen=True)
class ChangeOrderStatus:
    order_id: str
    event: OrderEvent
    at: datetime


@dataclass(frozen=True)
class AddItemToOrder:
    order_id: str
    item: OrderItem
    at: datetime


@dataclass(frozen=True)
class UpdateOrderItem:
    order_id: str
    item_id: str
    at: datetime
    quantity: Decimal | None = None
    unit: Unit | None = None


@dataclass(frozen=True)
class DeleteOrderItem:
    order_id: str
    item_id: str
    at: datetime


@dataclass(frozen=True)
class MoveItemBetweenOrders:
    source_order_id: str
    dest_order_id: str
    item_id: str
    at: datetime


@dataclass(frozen=True)
class SpoilItem:
    order_id: str
    item_id: str
    new_id: str
    at: datetime


@dataclass(frozen=True)
class SupplierLines:
    supplier_id: str
    supplier_name: str
    items: tuple[OrderItem, ...]


@dataclass(frozen=True)
class ImportOrderLines:
    store: StoreName
    groups: tuple[SupplierLines, ...]
    new_id: str
    at: datetime


@dataclass(frozen=True)
class ItemCreated:
    item: Item


@dataclass(frozen=True)
class ItemUpdated:
    item: Item


@dataclass(frozen=True)
class ItemDeleted:
    item_id: str


@dataclass(frozen=True)
class SupplierCreated:
    supplier: Supplier


@dataclass(frozen=True)
class SupplierUpdated:
    supplier: Supplier


@dataclass(frozen=True)
class SaveSettings:
    settings: AppSettings


@dataclass(frozen=True)
class ReplaceMasterData:
    items: tuple[Item, ...]
    suppliers: tuple[Supplier, ...]
    raw_feed: str


@dataclass(frozen=True)
class MergeRemoteSnapshot:
    items: tuple[Item, ...]
    suppliers: tuple[Supplier, ...]
    orders: tuple[Order, ...]


@dataclass(frozen=True)
class SetSyncStatus:
    status: SyncStatus


Action = Union[
    CreateOrder,
    AddOrders,
    UpdateOrder,
    DeleteOrder,
    ChangeOrderStatus,
    AddItemToOrder,
    UpdateOrderItem,
    DeleteOrderItem,
    MoveItemBetweenOrders,
    SpoilItem,
    ImportOrderLines,
    ItemCreated,
    ItemUpdated,
    ItemDeleted,
    SupplierCreated,
    SupplierUpdated,
    SaveSettings,
    ReplaceMasterData,
    MergeRemoteSnapshot,
    SetSyncStatus,
]

