from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from supply_desk.models import AppState, Order
from supply_desk.services.actions import Action
from supply_desk.services.notification_service import Notifier
from supply_desk.services.persistence_service import SnapshotRepository
from supply_desk.services.state_store import EventKind, StateEvent, Transition, apply

logger = logging.getLogger(__name__)

StateGuard = Callable[[AppState], None]


def _local_now() -> datetime:
    return datetime.now().astimezone()


def order_guard(order_id: str, check: Callable[[Order], None]) -> StateGuard:
    """Run a policy check against the order if it exists; a missing order is left to the transition."""

    def _guard(state: AppState) -> None:
        order = state.find_order(order_id)
        if order is not None:
            check(order)

    return _guard


class AppStore:
    """
    Owns the application state and is the only writer to it.
    Actions are applied one at a time; each accepted transition is persisted before the next one runs.
    """

    def __init__(
        self,
        initial: AppState,
        *,
        repository: SnapshotRepository | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        self._state = initial
        self._lock = threading.Lock()
        self.repository = repository
        self.notifier = notifier or Notifier()
        self.clock = clock

    @property
    def state(self) -> AppState:
        return self._state

    def now(self) -> datetime:
        return self.clock()

    def new_id(self, prefix: str = 'ord') -> str:
        return f'{prefix}_{uuid.uuid4().hex}'

    def dispatch(self, action: Action) -> Transition:
        return self.dispatch_guarded(action)

    def dispatch_guarded(self, action: Action, *guards: StateGuard) -> Transition:
        with self._lock:
            for guard in guards:
                guard(self._state)
            transition = apply(self._state, action)
            if transition.state is not self._state:
                self._state = transition.state
                self._persist(transition.state)
        self._report(action, transition.events)
        return transition

    def _persist(self, state: AppState) -> None:
        if self.repository is None:
            return
        try:
            self.repository.save(state)
        except SQLAlchemyError:
            # Memory stays authoritative; the next accepted transition writes again.
            logger.exception('Could not persist state snapshot')
            self.notifier.error('Could not save data locally. Changes are kept in memory.')

    def _report(self, action: Action, events: tuple[StateEvent, ...]) -> None:
        for event in events:
            if event.kind == EventKind.VALIDATION_GAP:
                logger.info('%s ignored: %s (order=%s)', type(action).__name__, event.detail, event.order_id)
            elif event.kind == EventKind.ACTION_REJECTED:
                self.notifier.error(event.detail)
            elif event.kind == EventKind.ORDER_CREATED:
                self.notifier.success(f'Order {event.detail} created.')
            elif event.kind == EventKind.ITEM_SPOILED:
                self.notifier.info('Spoiled item re-ordered.')
