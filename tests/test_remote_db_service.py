from __future__ import annotations

import json
import unittest
from decimal import Decimal
from unittest.mock import MagicMock, patch
from urllib.error import URLError

from supply_desk.models import ItemDraft, OrderStatus, StoreName, Supplier, Unit
from supply_desk.services.remote_db_service import RemoteDatabaseClient, RemoteError, RemoteNotConfiguredError


def _response(payload) -> MagicMock:
    response = MagicMock()
    response.read.return_value = json.dumps(payload).encode('utf-8') if payload is not None else b''
    return response


class RemoteDatabaseClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = RemoteDatabaseClient(url='https://db.test/', key='anon-key', timeout_seconds=3)

    def _patch(self, *payloads):
        urlopen = patch('supply_desk.services.remote_db_service.urlopen').start()
        self.addCleanup(patch.stopall)
        urlopen.return_value.__enter__.side_effect = [_response(payload) for payload in payloads]
        return urlopen

    def test_requires_url_and_key(self) -> None:
        with self.assertRaises(RemoteNotConfiguredError):
            RemoteDatabaseClient(url='https://db.test', key=None)

    def test_fetch_master_data_drops_items_with_unknown_supplier(self) -> None:
        urlopen = self._patch(
            [{'id': 1, 'name': 'ACME', 'chat_id': '-100'}],
            [
                {'id': 10, 'name': 'Milk', 'unit': 'L', 'supplier_id': 1},
                {'id': 11, 'name': 'Orphan', 'unit': 'pc', 'supplier_id': 99},
            ],
        )
        items, suppliers = self.client.fetch_master_data()

        self.assertEqual(suppliers, (Supplier(id='1', name='ACME', chat_id='-100'),))
        self.assertEqual([item.id for item in items], ['10'])
        self.assertEqual(items[0].supplier_name, 'ACME')
        first_request = urlopen.call_args_list[0].args[0]
        self.assertEqual(first_request.full_url, 'https://db.test/rest/v1/suppliers?select=*')
        self.assertEqual(first_request.get_header('Apikey'), 'anon-key')

    def test_fetch_orders_maps_rows_and_skips_malformed(self) -> None:
        self._patch(
            [
                {
                    'id': 'o1',
                    'order_id': '0506_ACME_CV2_001',
                    'store': 'CV2',
                    'supplier_id': 1,
                    'supplier_name': 'ACME',
                    'status': 'completed',
                    'is_sent': True,
                    'is_received': True,
                    'created_at': '2024-06-05T09:00:00+00:00',
                    'modified_at': '2024-06-05T11:00:00+00:00',
                    'completed_at': '2024-06-05T11:00:00+00:00',
                    'order_items': [{'item_id': 10, 'name': 'Milk', 'quantity': 2.5, 'unit': 'L', 'is_spoiled': False}],
                },
                {'id': 'bad', 'store': 'NOWHERE', 'supplier_id': 1},
            ]
        )
        orders = self.client.fetch_orders()

        self.assertEqual(len(orders), 1)
        order = orders[0]
        self.assertEqual(order.store, StoreName.CV2)
        self.assertEqual(order.status, OrderStatus.COMPLETED)
        self.assertEqual(order.items[0].quantity, Decimal('2.5'))
        self.assertEqual(order.items[0].unit, Unit.L)
        self.assertIsNotNone(order.completed_at)

    def test_add_item_posts_and_returns_confirmed_row(self) -> None:
        urlopen = self._patch([{'id': 42, 'name': 'Cream', 'unit': 'box', 'supplier_id': 1}])
        supplier = Supplier(id='1', name='ACME')
        item = self.client.add_item(ItemDraft(name='Cream', unit=Unit.BOX, supplier_id='1'), supplier)

        self.assertEqual(item.id, '42')
        self.assertEqual(item.unit, Unit.BOX)
        request = urlopen.call_args.args[0]
        self.assertEqual(request.get_method(), 'POST')
        self.assertEqual(request.get_header('Prefer'), 'return=representation')
        self.assertEqual(json.loads(request.data), {'name': 'Cream', 'unit': 'box', 'supplier_id': '1'})

    def test_empty_representation_is_an_error(self) -> None:
        self._patch([])
        with self.assertRaises(RemoteError):
            self.client.add_supplier('PISEY')

    def test_network_errors_are_wrapped(self) -> None:
        with patch('supply_desk.services.remote_db_service.urlopen', side_effect=URLError('down')):
            with self.assertRaises(RemoteError):
                self.client.delete_item('10')


if __name__ == '__main__':
    unittest.main()
