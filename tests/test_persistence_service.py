from __future__ import annotations

import unittest
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.pool import StaticPool

from supply_desk.db import build_engine, build_session_factory
from supply_desk.models import (
    AppSettings,
    AppState,
    Item,
    Order,
    OrderItem,
    OrderStatus,
    StoreName,
    Supplier,
    SyncStatus,
    Unit,
)
from supply_desk.services.persistence_service import (
    EPOCH,
    SnapshotRepository,
    create_schema,
    parse_timestamp,
    parse_unit,
    state_from_payload,
    state_to_payload,
)

T0 = datetime(2024, 6, 5, 9, 0, tzinfo=timezone.utc)
LOADED_AT = datetime(2024, 7, 1, tzinfo=timezone.utc)


def _state() -> AppState:
    supplier = Supplier(id='sup-acme', name='ACME', chat_id='-100')
    item = Item(id='item-milk', name='Milk', unit=Unit.L, supplier_id=supplier.id, supplier_name='ACME', created_at=T0)
    order = Order(
        id='ord-1',
        order_id='0506_ACME_CV2_001',
        store=StoreName.CV2,
        supplier_id=supplier.id,
        supplier_name='ACME',
        items=(OrderItem(item_id=item.id, name='Milk', quantity=Decimal('2.5'), unit=Unit.L),),
        status=OrderStatus.COMPLETED,
        is_sent=True,
        is_received=True,
        created_at=T0,
        modified_at=T0,
        completed_at=T0,
    )
    return AppState(
        suppliers=(supplier,),
        items=(item,),
        orders=(order,),
        order_id_counters={'0506_ACME_CV2': 1},
        settings=AppSettings(remote_db_url='https://db.example.test', remote_db_key='secret', message_templates={'a': 'b'}),
    )


class PayloadTests(unittest.TestCase):
    def test_payload_restores_equal_state(self) -> None:
        state = _state()
        self.assertEqual(state_from_payload(state_to_payload(state)), state)

    def test_payload_uses_camel_case_keys(self) -> None:
        payload = state_to_payload(_state())
        self.assertEqual(set(payload), {'suppliers', 'items', 'orders', 'orderIdCounters', 'settings'})
        order = payload['orders'][0]
        self.assertEqual(order['orderId'], '0506_ACME_CV2_001')
        self.assertEqual(order['items'][0], {'itemId': 'item-milk', 'name': 'Milk', 'quantity': '2.5', 'unit': 'L', 'isSpoiled': False})

    def test_legacy_last_update_becomes_modified_at(self) -> None:
        payload = {
            'orders': [
                {
                    'id': 'ord-1',
                    'orderId': '0506_ACME_CV2_001',
                    'store': 'CV2',
                    'supplierId': 'sup-acme',
                    'supplierName': 'ACME',
                    'items': [],
                    'status': 'dispatching',
                    'lastUpdate': '2024-06-05T10:00:00.000Z',
                }
            ]
        }
        order = state_from_payload(payload, loaded_at=LOADED_AT).orders[0]
        self.assertEqual(order.modified_at, datetime(2024, 6, 5, 10, 0, tzinfo=timezone.utc))
        self.assertEqual(order.created_at, EPOCH)

    def test_missing_timestamps_fall_back_to_load_time(self) -> None:
        payload = {'orders': [{'id': 'o', 'store': 'WB', 'supplierId': 's', 'completedAt': '2024-06-05T10:00:00Z'}]}
        order = state_from_payload(payload, loaded_at=LOADED_AT).orders[0]
        self.assertEqual(order.modified_at, LOADED_AT)
        self.assertEqual(order.order_id, 'o')
        # Only completed orders carry a completion time.
        self.assertIsNone(order.completed_at)

    def test_unknown_fields_are_ignored_and_legacy_settings_read(self) -> None:
        payload = {
            'somethingNew': True,
            'settings': {'supabaseUrl': 'https://legacy.test', 'supabaseKey': 'k', 'theme': 'dark'},
            'items': [{'id': 'i', 'name': 'Thing', 'unit': 'furlong', 'supplierId': 's', 'extra': 1}],
        }
        state = state_from_payload(payload)
        self.assertEqual(state.settings.remote_db_url, 'https://legacy.test')
        self.assertTrue(state.settings.has_remote_db)
        self.assertIsNone(state.items[0].unit)

    def test_defaults_fill_missing_settings(self) -> None:
        state = state_from_payload({}, default_settings=AppSettings(feed_url='https://feed.test'))
        self.assertEqual(state.settings.feed_url, 'https://feed.test')
        self.assertEqual(state.orders, ())

    def test_timestamp_and_unit_parsing(self) -> None:
        self.assertEqual(parse_timestamp('2024-06-05T09:00:00'), T0)
        self.assertIsNone(parse_timestamp(''))
        self.assertEqual(parse_unit('kg'), Unit.KG)
        self.assertIsNone(parse_unit(None))


class SnapshotRepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = build_engine('sqlite://', poolclass=StaticPool)
        create_schema(self.engine)
        self.repository = SnapshotRepository(build_session_factory(self.engine), key='test_state')

    def tearDown(self) -> None:
        self.engine.dispose()

    def test_load_without_snapshot_returns_defaults(self) -> None:
        defaults = AppSettings(remote_db_url='https://db.test', remote_db_key='k')
        state = self.repository.load(default_settings=defaults)
        self.assertEqual(state, AppState(settings=defaults))

    def test_save_then_load(self) -> None:
        state = _state()
        self.repository.save(state)
        self.assertEqual(self.repository.load(), state)

    def test_save_overwrites_previous_snapshot(self) -> None:
        self.repository.save(_state())
        self.repository.save(AppState())
        self.assertEqual(self.repository.load(), AppState())

    def test_sync_status_is_not_persisted(self) -> None:
        self.repository.save(AppState(sync_status=SyncStatus.ERROR))
        self.assertEqual(self.repository.load().sync_status, SyncStatus.IDLE)


if __name__ == '__main__':
    unittest.main()
