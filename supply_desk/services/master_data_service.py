from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from supply_desk.models import AppSettings, Item, ItemDraft, Supplier
from supply_desk.services.actions import Action, ItemCreated, ItemDeleted, ItemUpdated, SupplierCreated, SupplierUpdated
from supply_desk.services.app_store import AppStore
from supply_desk.services.remote_db_service import RemoteDatabaseClient, RemoteError, RemoteNotConfiguredError

logger = logging.getLogger(__name__)

T = TypeVar('T')
RemoteFactory = Callable[[AppSettings], RemoteDatabaseClient]


class MutationInFlightError(RuntimeError):
    pass


def default_remote_factory(app_settings: AppSettings) -> RemoteDatabaseClient:
    return RemoteDatabaseClient(url=app_settings.remote_db_url, key=app_settings.remote_db_key)


class MasterDataAdapter:
    """
    Item and supplier changes are committed remotely first.
    The local store only sees the confirmed row; on any remote failure local state is untouched.
    """

    def __init__(self, store: AppStore, *, remote_factory: RemoteFactory = default_remote_factory) -> None:
        self.store = store
        self.remote_factory = remote_factory
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()

    @contextmanager
    def _claim(self, entity_key: str) -> Iterator[None]:
        with self._lock:
            if entity_key in self._in_flight:
                raise MutationInFlightError(f'Another change to {entity_key} is still in progress')
            self._in_flight.add(entity_key)
        try:
            yield
        finally:
            with self._lock:
                self._in_flight.discard(entity_key)

    def _remote(self, purpose: str) -> RemoteDatabaseClient:
        try:
            return self.remote_factory(self.store.state.settings)
        except RemoteNotConfiguredError:
            self.store.notifier.error(f'Remote database not configured. Cannot {purpose}.')
            raise

    def _call(self, call: Callable[[], T]) -> T:
        try:
            return call()
        except RemoteError as exc:
            self.store.notifier.error(f'Error: {exc}')
            raise

    def _commit(self, action: Action) -> None:
        transition = self.store.dispatch(action)
        if transition.rejected:
            # Remote accepted the change but the local cache could not follow; the next sync repairs it.
            logger.warning('Local cache skipped %s after remote commit: %s', type(action).__name__, transition.events)

    def _require_supplier(self, supplier_id: str) -> Supplier:
        supplier = self.store.state.find_supplier(supplier_id)
        if supplier is None:
            raise ValueError('Supplier not found')
        return supplier

    def add_item(self, draft: ItemDraft) -> Item:
        if not draft.name.strip():
            raise ValueError('Item name cannot be empty')
        supplier = self._require_supplier(draft.supplier_id)
        remote = self._remote('save item')
        with self._claim(f'item:new:{draft.supplier_id}:{draft.name.strip().lower()}'):
            item = self._call(lambda: remote.add_item(draft, supplier))
            self._commit(ItemCreated(item))
        self.store.notifier.success(f'Item "{item.name}" created.')
        return item

    def update_item(self, item: Item) -> Item:
        if self.store.state.find_item(item.id) is None:
            raise ValueError('Item not found')
        supplier = self._require_supplier(item.supplier_id)
        remote = self._remote('save item')
        with self._claim(f'item:{item.id}'):
            updated = self._call(lambda: remote.update_item(item, supplier))
            self._commit(ItemUpdated(updated))
        self.store.notifier.success(f'Item "{updated.name}" updated.')
        return updated

    def delete_item(self, item_id: str) -> None:
        if self.store.state.find_item(item_id) is None:
            raise ValueError('Item not found')
        remote = self._remote('delete item')
        with self._claim(f'item:{item_id}'):
            self._call(lambda: remote.delete_item(item_id))
            self._commit(ItemDeleted(item_id))
        self.store.notifier.success('Item deleted.')

    def update_supplier(self, supplier: Supplier) -> Supplier:
        self._require_supplier(supplier.id)
        remote = self._remote('update supplier')
        with self._claim(f'supplier:{supplier.id}'):
            updated = self._call(lambda: remote.update_supplier(supplier))
            self._commit(SupplierUpdated(updated))
        self.store.notifier.success(f'Supplier "{updated.name}" updated.')
        return updated

    def add_supplier(self, name: str) -> Supplier:
        name = name.strip()
        if not name:
            raise ValueError('Supplier name cannot be empty')
        existing = self.store.state.find_supplier_by_name(name)
        if existing is not None:
            return existing
        remote = self._remote('add supplier')
        with self._claim(f'supplier:new:{name.lower()}'):
            supplier = self._call(lambda: remote.add_supplier(name))
            self._commit(SupplierCreated(supplier))
        self.store.notifier.success(f'Supplier "{supplier.name}" added.')
        return supplier
