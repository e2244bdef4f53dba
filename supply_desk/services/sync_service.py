from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from supply_desk.config import settings
from supply_desk.models import AppSettings, SyncStatus
from supply_desk.services.actions import MergeRemoteSnapshot, ReplaceMasterData, SetSyncStatus
from supply_desk.services.app_store import AppStore
from supply_desk.services.feed_service import FeedClient, FeedFormatError, parse_feed
from supply_desk.services.master_data_service import RemoteFactory, default_remote_factory
from supply_desk.services.remote_db_service import RemoteError

logger = logging.getLogger(__name__)

FeedFactory = Callable[[str], FeedClient]


class SyncSource(str, Enum):
    REMOTE_DB = 'remote_db'
    FEED = 'feed'
    CACHE = 'cache'


@dataclass(frozen=True)
class SyncOutcome:
    status: SyncStatus
    source: SyncSource | None = None
    detail: str = ''


class ConnectivityProbe(Protocol):
    def is_online(self) -> bool: ...


class StaticConnectivity:
    def __init__(self, online: bool) -> None:
        self.online = online

    def is_online(self) -> bool:
        return self.online


class HttpConnectivityProbe:
    def __init__(self, *, url: str | None = None, timeout_seconds: int | None = None) -> None:
        self.url = url or settings.connectivity_probe_url
        self.timeout_seconds = timeout_seconds or settings.connectivity_timeout_seconds

    def is_online(self) -> bool:
        req = Request(url=self.url, method='HEAD')
        try:
            with urlopen(req, timeout=self.timeout_seconds):
                return True
        except HTTPError:
            # Any HTTP answer means the network is reachable.
            return True
        except (URLError, OSError) as exc:
            logger.info('Connectivity probe failed: %s', exc)
            return False


def default_connectivity() -> ConnectivityProbe:
    if settings.offline_mode:
        return StaticConnectivity(False)
    return HttpConnectivityProbe()


def default_feed_factory(url: str) -> FeedClient:
    return FeedClient(url=url)


class SyncOrchestrator:
    """
    Pulls remote data into the store. Sources are tried in priority order:
    remote database (full merge), flat feed (master data only), then the cached snapshot.
    Failures end in the `error` status and leave cached state usable.
    """

    def __init__(
        self,
        store: AppStore,
        *,
        connectivity: ConnectivityProbe | None = None,
        remote_factory: RemoteFactory = default_remote_factory,
        feed_factory: FeedFactory = default_feed_factory,
    ) -> None:
        self.store = store
        self.connectivity = connectivity or default_connectivity()
        self.remote_factory = remote_factory
        self.feed_factory = feed_factory
        self._running = threading.Lock()

    def run(self) -> SyncOutcome:
        if not self._running.acquire(blocking=False):
            return SyncOutcome(self.store.state.sync_status, detail='Sync already running')
        try:
            return self._run()
        except Exception as exc:
            # A sync always ends in a terminal status; the cached state stays usable.
            logger.exception('Sync aborted')
            self.store.notifier.error(f'Sync failed: {exc}. Using cached data.')
            return self._finish(SyncStatus.ERROR, None, str(exc))
        finally:
            self._running.release()

    def _finish(self, status: SyncStatus, source: SyncSource | None, detail: str = '') -> SyncOutcome:
        self.store.dispatch(SetSyncStatus(status))
        logger.info('Sync finished: status=%s source=%s %s', status.value, source.value if source else '-', detail)
        return SyncOutcome(status=status, source=source, detail=detail)

    def _run(self) -> SyncOutcome:
        self.store.dispatch(SetSyncStatus(SyncStatus.SYNCING))
        if not self.connectivity.is_online():
            self.store.notifier.info('Offline mode. Using cached data.')
            return self._finish(SyncStatus.OFFLINE, None)

        app_settings = self.store.state.settings
        if app_settings.has_remote_db:
            return self._sync_remote_db(app_settings)
        if app_settings.feed_url:
            return self._sync_feed(app_settings)

        self.store.notifier.info('Online, but no data source found. Using cached version.')
        return self._finish(SyncStatus.IDLE, SyncSource.CACHE)

    def _sync_remote_db(self, app_settings: AppSettings) -> SyncOutcome:
        self.store.notifier.info('Syncing with database...')
        try:
            remote = self.remote_factory(app_settings)
            items, suppliers = remote.fetch_master_data()
            orders = remote.fetch_orders()
        except RemoteError as exc:
            self.store.notifier.error(f'Sync failed: {exc}. Using cached data.')
            return self._finish(SyncStatus.ERROR, SyncSource.REMOTE_DB, str(exc))

        self.store.dispatch(MergeRemoteSnapshot(items=items, suppliers=suppliers, orders=orders))
        self.store.notifier.success('Sync complete.')
        return self._finish(
            SyncStatus.IDLE,
            SyncSource.REMOTE_DB,
            f'{len(items)} items, {len(suppliers)} suppliers, {len(orders)} orders',
        )

    def _sync_feed(self, app_settings: AppSettings) -> SyncOutcome:
        self.store.notifier.info('Fetching data from CSV...')
        try:
            raw = self.feed_factory(app_settings.feed_url).fetch_text()
        except RemoteError as exc:
            self.store.notifier.error(f'Failed to load from CSV: {exc}')
            return self._finish(SyncStatus.ERROR, SyncSource.FEED, str(exc))

        if raw == app_settings.last_synced_feed:
            return self._finish(SyncStatus.IDLE, SyncSource.FEED, 'Feed unchanged')

        try:
            items, suppliers = parse_feed(raw)
        except FeedFormatError as exc:
            self.store.notifier.error(f'Failed to load from CSV: {exc}')
            return self._finish(SyncStatus.ERROR, SyncSource.FEED, str(exc))

        self.store.dispatch(ReplaceMasterData(items=items, suppliers=suppliers, raw_feed=raw))
        self.store.notifier.success('Database loaded from CSV.')
        return self._finish(SyncStatus.IDLE, SyncSource.FEED, f'{len(items)} items, {len(suppliers)} suppliers')
