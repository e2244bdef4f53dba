from __future__ import annotations

import unittest
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from supply_desk.models import OrderStatus, StoreName
from supply_desk.services.order_lifecycle_service import (
    InvalidTransitionError,
    OrderEvent,
    OrderPolicyError,
    apply_event,
    can_delete,
    can_edit_items,
    ensure_deletable,
    ensure_items_editable,
    event_for,
    new_order,
)

T0 = datetime(2024, 6, 5, 9, 0, tzinfo=timezone.utc)


def _order():
    return new_order(
        id='ord-1',
        order_id='0506_ACME_CV2_001',
        store=StoreName.CV2,
        supplier_id='sup-1',
        supplier_name='ACME',
        at=T0,
    )


class OrderLifecycleServiceTests(unittest.TestCase):
    def test_new_order_starts_dispatching(self) -> None:
        order = _order()
        self.assertEqual(order.status, OrderStatus.DISPATCHING)
        self.assertFalse(order.is_sent)
        self.assertFalse(order.is_received)
        self.assertEqual(order.created_at, T0)
        self.assertEqual(order.modified_at, T0)
        self.assertIsNone(order.completed_at)

    def test_send_unsend_receive_flags(self) -> None:
        sent = apply_event(_order(), OrderEvent.SEND, at=T0 + timedelta(minutes=1))
        self.assertEqual(sent.status, OrderStatus.ON_THE_WAY)
        self.assertTrue(sent.is_sent)

        unsent = apply_event(sent, OrderEvent.UNSEND, at=T0 + timedelta(minutes=2))
        self.assertEqual(unsent.status, OrderStatus.DISPATCHING)
        self.assertFalse(unsent.is_sent)

        received = apply_event(sent, OrderEvent.RECEIVE, at=T0 + timedelta(minutes=3))
        self.assertEqual(received.status, OrderStatus.COMPLETED)
        self.assertTrue(received.is_received)
        self.assertEqual(received.completed_at, T0 + timedelta(minutes=3))
        self.assertEqual(received.modified_at, T0 + timedelta(minutes=3))

    def test_illegal_transitions_raise(self) -> None:
        with self.assertRaises(InvalidTransitionError):
            apply_event(_order(), OrderEvent.RECEIVE, at=T0)
        with self.assertRaises(InvalidTransitionError):
            apply_event(_order(), OrderEvent.UNSEND, at=T0)
        completed = apply_event(apply_event(_order(), OrderEvent.SEND, at=T0), OrderEvent.RECEIVE, at=T0)
        for event in OrderEvent:
            with self.assertRaises(InvalidTransitionError):
                apply_event(completed, event, at=T0)

    def test_completion_time_is_kept_when_already_set(self) -> None:
        sent = apply_event(_order(), OrderEvent.SEND, at=T0)
        earlier = T0 - timedelta(days=1)
        received = apply_event(replace(sent, completed_at=earlier), OrderEvent.RECEIVE, at=T0 + timedelta(hours=1))
        self.assertEqual(received.completed_at, earlier)

    def test_event_for_maps_status_pairs(self) -> None:
        self.assertEqual(event_for(OrderStatus.DISPATCHING, OrderStatus.ON_THE_WAY), OrderEvent.SEND)
        self.assertEqual(event_for(OrderStatus.ON_THE_WAY, OrderStatus.DISPATCHING), OrderEvent.UNSEND)
        self.assertEqual(event_for(OrderStatus.ON_THE_WAY, OrderStatus.COMPLETED), OrderEvent.RECEIVE)
        with self.assertRaises(InvalidTransitionError):
            event_for(OrderStatus.DISPATCHING, OrderStatus.COMPLETED)

    def test_policy_helpers(self) -> None:
        dispatching = _order()
        on_the_way = apply_event(dispatching, OrderEvent.SEND, at=T0)
        completed = apply_event(on_the_way, OrderEvent.RECEIVE, at=T0)

        self.assertTrue(can_delete(dispatching))
        self.assertFalse(can_delete(on_the_way))
        self.assertTrue(can_edit_items(on_the_way))
        self.assertFalse(can_edit_items(completed))

        ensure_deletable(dispatching)
        ensure_items_editable(on_the_way)
        with self.assertRaises(OrderPolicyError):
            ensure_deletable(completed)
        with self.assertRaises(OrderPolicyError):
            ensure_items_editable(completed)


if __name__ == '__main__':
    unittest.main()
