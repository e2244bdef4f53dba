from __future__ import annotations

import argparse
import logging

from supply_desk.config import settings
from supply_desk.models import SyncStatus
from supply_desk.services.provider_factory import build_orchestrator, get_store
from supply_desk.services.sync_service import StaticConnectivity, SyncOrchestrator


def main() -> None:
    parser = argparse.ArgumentParser(description='Pull suppliers, items and orders into the local snapshot.')
    parser.add_argument(
        '--skip-probe',
        action='store_true',
        help='Assume the network is reachable instead of probing first.',
    )
    args = parser.parse_args()
    logging.basicConfig(level=settings.log_level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    store = get_store()
    if args.skip_probe:
        orchestrator = SyncOrchestrator(store, connectivity=StaticConnectivity(True))
    else:
        orchestrator = build_orchestrator(store)
    outcome = orchestrator.run()

    state = store.state
    source = outcome.source.value if outcome.source else 'none'
    print(
        f'Sync finished: status={outcome.status.value}, source={source}, '
        f'items={len(state.items)}, suppliers={len(state.suppliers)}, orders={len(state.orders)}'
    )
    if outcome.status == SyncStatus.ERROR:
        raise SystemExit(outcome.detail or 'Sync failed')


if __name__ == '__main__':
    main()
