from __future__ import annotations

from functools import lru_cache

from supply_desk.config import settings
from supply_desk.db import SessionLocal, engine
from supply_desk.models import AppSettings
from supply_desk.services.app_store import AppStore
from supply_desk.services.master_data_service import MasterDataAdapter
from supply_desk.services.persistence_service import SnapshotRepository, create_schema
from supply_desk.services.sync_service import SyncOrchestrator


def default_app_settings() -> AppSettings:
    return AppSettings(
        remote_db_url=settings.remote_db_url,
        remote_db_key=settings.remote_db_key,
        feed_url=settings.feed_url,
    )


@lru_cache(maxsize=1)
def get_store() -> AppStore:
    create_schema(engine)
    repository = SnapshotRepository(SessionLocal, key=settings.snapshot_key)
    initial = repository.load(default_settings=default_app_settings())
    return AppStore(initial, repository=repository)


def build_orchestrator(store: AppStore) -> SyncOrchestrator:
    return SyncOrchestrator(store)


def build_master_data(store: AppStore) -> MasterDataAdapter:
    return MasterDataAdapter(store)
