from __future__ import annotations

from dataclasses import dataclass, replace

from supply_desk.models import AppState, Item, Order, Supplier


@dataclass(frozen=True)
class RemoteSnapshot:
    items: tuple[Item, ...]
    suppliers: tuple[Supplier, ...]
    orders: tuple[Order, ...]


def pick_newer(local: Order, remote: Order) -> Order:
    """Record-level last writer wins. Equal timestamps resolve to the remote record."""
    if local.modified_at > remote.modified_at:
        return local
    return remote


def reconcile_orders(local_orders: tuple[Order, ...], remote_orders: tuple[Order, ...]) -> tuple[Order, ...]:
    local_by_id = {order.id: order for order in local_orders}
    merged: list[Order] = []
    seen: set[str] = set()

    for remote in remote_orders:
        if remote.id in seen:
            continue
        seen.add(remote.id)
        local = local_by_id.get(remote.id)
        merged.append(pick_newer(local, remote) if local is not None else remote)

    # Local-only orders were created offline and have not reached the remote yet.
    merged.extend(order for order in local_orders if order.id not in seen)
    return tuple(merged)


def merge_snapshot(state: AppState, snapshot: RemoteSnapshot) -> AppState:
    return replace(
        state,
        items=tuple(snapshot.items),
        suppliers=tuple(snapshot.suppliers),
        orders=reconcile_orders(state.orders, tuple(snapshot.orders)),
    )


def replace_master_data(
    state: AppState,
    *,
    items: tuple[Item, ...],
    suppliers: tuple[Supplier, ...],
    raw_feed: str,
) -> AppState:
    return replace(
        state,
        items=tuple(items),
        suppliers=tuple(suppliers),
        settings=replace(state.settings, last_synced_feed=raw_feed),
    )
