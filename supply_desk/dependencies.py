from fastapi import Request

from supply_desk.services.app_store import AppStore
from supply_desk.services.master_data_service import MasterDataAdapter
from supply_desk.services.sync_service import SyncOrchestrator


def get_store(request: Request) -> AppStore:
    return request.app.state.store


def get_master_data(request: Request) -> MasterDataAdapter:
    return request.app.state.master_data


def get_sync(request: Request) -> SyncOrchestrator:
    return request.app.state.sync
