from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from supply_desk.dependencies import get_store, get_sync
from supply_desk.models import AppSettings
from supply_desk.services.actions import SaveSettings
from supply_desk.services.app_store import AppStore
from supply_desk.services.sync_service import SyncOrchestrator

router = APIRouter(tags=['sync'])


class SettingsIn(BaseModel):
    remote_db_url: str | None = None
    remote_db_key: str | None = None
    feed_url: str | None = None
    telegram_token: str | None = None
    is_ai_enabled: bool = True
    message_templates: dict[str, str] = {}


def _mask(secret: str | None) -> str | None:
    if not secret:
        return None
    return f'***{secret[-4:]}' if len(secret) > 8 else '***'


def _keep_secret(incoming: str | None, current: str | None) -> str | None:
    # Masked values echoed back from GET /settings mean "unchanged".
    if incoming is None or (current and incoming == _mask(current)):
        return current
    return incoming


def _settings_out(app_settings: AppSettings) -> dict:
    return {
        'remote_db_url': app_settings.remote_db_url,
        'remote_db_key': _mask(app_settings.remote_db_key),
        'feed_url': app_settings.feed_url,
        'telegram_token': _mask(app_settings.telegram_token),
        'is_ai_enabled': app_settings.is_ai_enabled,
        'message_templates': dict(app_settings.message_templates),
    }


@router.post('/sync')
def run_sync(orchestrator: SyncOrchestrator = Depends(get_sync)):
    outcome = orchestrator.run()
    return {
        'status': outcome.status.value,
        'source': outcome.source.value if outcome.source else None,
        'detail': outcome.detail,
    }


@router.get('/sync/status')
def sync_status(store: AppStore = Depends(get_store)):
    return {'status': store.state.sync_status.value}


@router.get('/settings')
def get_settings(store: AppStore = Depends(get_store)):
    return _settings_out(store.state.settings)


@router.put('/settings')
def save_settings(payload: SettingsIn, store: AppStore = Depends(get_store)):
    current = store.state.settings
    store.dispatch(
        SaveSettings(
            AppSettings(
                remote_db_url=payload.remote_db_url,
                remote_db_key=_keep_secret(payload.remote_db_key, current.remote_db_key),
                feed_url=payload.feed_url,
                telegram_token=_keep_secret(payload.telegram_token, current.telegram_token),
                is_ai_enabled=payload.is_ai_enabled,
                message_templates=dict(payload.message_templates),
                last_synced_feed=current.last_synced_feed,
            )
        )
    )
    store.notifier.success('Settings saved.')
    return _settings_out(store.state.settings)


@router.get('/notifications')
def notifications(limit: int = Query(default=20, ge=1, le=50), store: AppStore = Depends(get_store)):
    return [
        {'level': note.level.value, 'message': note.message, 'created_at': note.created_at.isoformat()}
        for note in store.notifier.recent(limit=limit)
    ]
