from __future__ import annotations

import unittest
from datetime import date, datetime

from supply_desk.models import StoreName
from supply_desk.services.order_id_service import counter_key, format_order_id, next_order_id


class OrderIdServiceTests(unittest.TestCase):
    def test_counter_key_uses_day_month_supplier_store(self) -> None:
        self.assertEqual(counter_key('ACME', StoreName.CV2, date(2024, 6, 5)), '0506_ACME_CV2')
        self.assertEqual(counter_key('P&P', 'WB', datetime(2024, 12, 31, 23, 59)), '3112_P&P_WB')

    def test_format_pads_counter_to_three_digits(self) -> None:
        self.assertEqual(format_order_id('0506_ACME_CV2', 1), '0506_ACME_CV2_001')
        self.assertEqual(format_order_id('0506_ACME_CV2', 1234), '0506_ACME_CV2_1234')

    def test_consecutive_orders_on_same_day_increment(self) -> None:
        on = date(2024, 6, 5)
        first, counters = next_order_id({}, supplier_name='ACME', store=StoreName.CV2, on=on)
        second, counters = next_order_id(counters, supplier_name='ACME', store=StoreName.CV2, on=on)
        self.assertEqual(first, '0506_ACME_CV2_001')
        self.assertEqual(second, '0506_ACME_CV2_002')
        self.assertEqual(counters, {'0506_ACME_CV2': 2})

    def test_counters_are_scoped_per_store_and_day(self) -> None:
        counters = {'0506_ACME_CV2': 7}
        other_store, counters = next_order_id(counters, supplier_name='ACME', store=StoreName.WB, on=date(2024, 6, 5))
        next_day, counters = next_order_id(counters, supplier_name='ACME', store=StoreName.CV2, on=date(2024, 6, 6))
        self.assertEqual(other_store, '0506_ACME_WB_001')
        self.assertEqual(next_day, '0606_ACME_CV2_001')
        self.assertEqual(counters['0506_ACME_CV2'], 7)

    def test_input_table_is_not_mutated(self) -> None:
        counters = {'0506_ACME_CV2': 1}
        order_id, updated = next_order_id(counters, supplier_name='ACME', store=StoreName.CV2, on=date(2024, 6, 5))
        self.assertEqual(order_id, '0506_ACME_CV2_002')
        self.assertEqual(counters, {'0506_ACME_CV2': 1})
        self.assertEqual(updated, {'0506_ACME_CV2': 2})

    def test_ids_are_unique_across_many_allocations(self) -> None:
        counters: dict[str, int] = {}
        seen = set()
        for _ in range(50):
            order_id, counters = next_order_id(counters, supplier_name='MARKET', store=StoreName.KALI, on=date(2024, 1, 2))
            seen.add(order_id)
        self.assertEqual(len(seen), 50)
        self.assertIn('0201_MARKET_KALI_050', seen)


if __name__ == '__main__':
    unittest.main()
