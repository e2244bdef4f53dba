from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from supply_desk.dependencies import get_master_data, get_store
from supply_desk.models import Item, ItemDraft, Supplier, Unit
from supply_desk.services.app_store import AppStore
from supply_desk.services.master_data_service import MasterDataAdapter, MutationInFlightError
from supply_desk.services.persistence_service import item_to_dict, supplier_to_dict
from supply_desk.services.remote_db_service import RemoteError, RemoteNotConfiguredError

router = APIRouter(tags=['master-data'])

T = TypeVar('T')


class ItemIn(BaseModel):
    name: str
    unit: Unit | None = None
    supplier_id: str


class SupplierIn(BaseModel):
    name: str


class SupplierPatch(BaseModel):
    chat_id: str | None = None


def _remote_first(call: Callable[[], T]) -> T:
    try:
        return call()
    except RemoteNotConfiguredError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except RemoteError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except MutationInFlightError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        status_code = 404 if 'not found' in str(exc) else 400
        raise HTTPException(status_code=status_code, detail=str(exc)) from exc


@router.get('/items')
def list_items(supplier_id: str | None = None, store: AppStore = Depends(get_store)):
    items = [item for item in store.state.items if supplier_id is None or item.supplier_id == supplier_id]
    items.sort(key=lambda item: item.name.lower())
    return [item_to_dict(item) for item in items]


@router.get('/suppliers')
def list_suppliers(store: AppStore = Depends(get_store)):
    return [supplier_to_dict(supplier) for supplier in sorted(store.state.suppliers, key=lambda s: s.name)]


@router.post('/items', status_code=201)
def add_item(payload: ItemIn, adapter: MasterDataAdapter = Depends(get_master_data)):
    draft = ItemDraft(name=payload.name, unit=payload.unit, supplier_id=payload.supplier_id)
    return item_to_dict(_remote_first(lambda: adapter.add_item(draft)))


@router.patch('/items/{item_id}')
def update_item(item_id: str, payload: ItemIn, adapter: MasterDataAdapter = Depends(get_master_data)):
    current = adapter.store.state.find_item(item_id)
    if current is None:
        raise HTTPException(status_code=404, detail='Item not found')
    item = Item(
        id=item_id,
        name=payload.name,
        unit=payload.unit,
        supplier_id=payload.supplier_id,
        supplier_name=current.supplier_name,
        created_at=current.created_at,
        modified_at=current.modified_at,
    )
    return item_to_dict(_remote_first(lambda: adapter.update_item(item)))


@router.delete('/items/{item_id}', status_code=204)
def delete_item(item_id: str, adapter: MasterDataAdapter = Depends(get_master_data)):
    _remote_first(lambda: adapter.delete_item(item_id))


@router.post('/suppliers', status_code=201)
def add_supplier(payload: SupplierIn, adapter: MasterDataAdapter = Depends(get_master_data)):
    return supplier_to_dict(_remote_first(lambda: adapter.add_supplier(payload.name)))


@router.patch('/suppliers/{supplier_id}')
def update_supplier(supplier_id: str, payload: SupplierPatch, adapter: MasterDataAdapter = Depends(get_master_data)):
    current = adapter.store.state.find_supplier(supplier_id)
    if current is None:
        raise HTTPException(status_code=404, detail='Supplier not found')
    supplier = Supplier(id=current.id, name=current.name, chat_id=payload.chat_id, modified_at=current.modified_at)
    return supplier_to_dict(_remote_first(lambda: adapter.update_supplier(supplier)))
