from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import JSON, DateTime, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class StoreName(str, Enum):
    CV2 = 'CV2'
    STOCKO2 = 'STOCKO2'
    WB = 'WB'
    SHANTI = 'SHANTI'
    KALI = 'KALI'


class SupplierName(str, Enum):
    ANGKOR_MILK = 'ANGKOR MILK'
    P_AND_P = 'P&P'
    MARKET = 'MARKET'
    KALI = 'KALI'
    MIKHAIL = 'MIKHAIL'
    STOCK_OUT = 'STOCK-OUT'
    PISEY = 'PISEY'


class Unit(str, Enum):
    KG = 'kg'
    PC = 'pc'
    L = 'L'
    BOX = 'box'
    PK = 'pk'
    BT = 'bt'
    CAN = 'can'
    ROLL = 'roll'
    BLOCK = 'block'
    GLASS = 'glass'


class OrderStatus(str, Enum):
    DISPATCHING = 'dispatching'
    ON_THE_WAY = 'on_the_way'
    COMPLETED = 'completed'


class SyncStatus(str, Enum):
    IDLE = 'idle'
    SYNCING = 'syncing'
    ERROR = 'error'
    OFFLINE = 'offline'


@dataclass(frozen=True)
class Store:
    name: StoreName


@dataclass(frozen=True)
class Supplier:
    id: str
    name: str
    chat_id: str | None = None
    modified_at: datetime | None = None


@dataclass(frozen=True)
class Item:
    id: str
    name: str
    unit: Unit | None
    supplier_id: str
    # Denormalized for display.
    supplier_name: str
    created_at: datetime | None = None
    modified_at: datetime | None = None


@dataclass(frozen=True)
class ItemDraft:
    name: str
    unit: Unit | None
    supplier_id: str


@dataclass(frozen=True)
class OrderItem:
    item_id: str
    name: str
    quantity: Decimal
    unit: Unit | None = None
    is_spoiled: bool = False


@dataclass(frozen=True)
class Order:
    id: str
    order_id: str
    store: StoreName
    supplier_id: str
    supplier_name: str
    created_at: datetime
    modified_at: datetime
    items: tuple[OrderItem, ...] = ()
    status: OrderStatus = OrderStatus.DISPATCHING
    is_sent: bool = False
    is_received: bool = False
    completed_at: datetime | None = None


@dataclass(frozen=True)
class AppSettings:
    remote_db_url: str | None = None
    remote_db_key: str | None = None
    feed_url: str | None = None
    telegram_token: str | None = None
    is_ai_enabled: bool = True
    message_templates: dict[str, str] = field(default_factory=dict)
    last_synced_feed: str | None = None

    @property
    def has_remote_db(self) -> bool:
        return bool(self.remote_db_url and self.remote_db_key)


@dataclass(frozen=True)
class AppState:
    suppliers: tuple[Supplier, ...] = ()
    items: tuple[Item, ...] = ()
    orders: tuple[Order, ...] = ()
    order_id_counters: dict[str, int] = field(default_factory=dict)
    settings: AppSettings = field(default_factory=AppSettings)
    sync_status: SyncStatus = SyncStatus.IDLE

    @property
    def stores(self) -> tuple[Store, ...]:
        return tuple(Store(name=name) for name in StoreName)

    def find_order(self, order_id: str) -> Order | None:
        return next((order for order in self.orders if order.id == order_id), None)

    def find_item(self, item_id: str) -> Item | None:
        return next((item for item in self.items if item.id == item_id), None)

    def find_supplier(self, supplier_id: str) -> Supplier | None:
        return next((supplier for supplier in self.suppliers if supplier.id == supplier_id), None)

    def find_supplier_by_name(self, name: str) -> Supplier | None:
        return next((supplier for supplier in self.suppliers if supplier.name == name), None)


class StateSnapshot(Base):
    __tablename__ = 'app_state_snapshots'

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
