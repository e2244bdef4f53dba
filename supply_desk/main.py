import logging
import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from supply_desk.config import settings
from supply_desk.routers import master_data, orders, sync
from supply_desk.services.app_store import AppStore
from supply_desk.services.master_data_service import MasterDataAdapter
from supply_desk.services.provider_factory import build_master_data, build_orchestrator, get_store
from supply_desk.services.sync_service import SyncOrchestrator

logger = logging.getLogger(__name__)


def _start_background_sync(orchestrator: SyncOrchestrator) -> None:
    thread = threading.Thread(target=orchestrator.run, name='startup-sync', daemon=True)
    thread.start()


def create_app(
    *,
    store: AppStore | None = None,
    master_data_adapter: MasterDataAdapter | None = None,
    orchestrator: SyncOrchestrator | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, 'store', None) is None:
            app.state.store = get_store()
            app.state.master_data = build_master_data(app.state.store)
            app.state.sync = build_orchestrator(app.state.store)
            if settings.sync_on_startup:
                _start_background_sync(app.state.sync)
        logger.info('Serving %s orders from the local snapshot', len(app.state.store.state.orders))
        yield

    app = FastAPI(title='Supply Desk', lifespan=lifespan)
    app.state.store = store
    if store is not None:
        app.state.master_data = master_data_adapter or build_master_data(store)
        app.state.sync = orchestrator or build_orchestrator(store)

    app.include_router(orders.router)
    app.include_router(master_data.router)
    app.include_router(sync.router)

    @app.get('/robots.txt', response_class=PlainTextResponse)
    def robots_txt() -> str:
        return 'User-agent: *\nDisallow: /\n'

    return app


logging.basicConfig(level=settings.log_level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
app = create_app()
