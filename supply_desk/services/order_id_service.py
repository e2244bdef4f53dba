from __future__ import annotations

from datetime import date, datetime


def counter_key(supplier_name: str, store: str, on: date | datetime) -> str:
    """Composite key `DDMM_supplier_store` scoping the order-id counters."""
    store_value = getattr(store, 'value', store)
    return f'{on.day:02d}{on.month:02d}_{supplier_name}_{store_value}'


def format_order_id(key: str, counter: int) -> str:
    return f'{key}_{counter:03d}'


def next_order_id(
    counters: dict[str, int],
    *,
    supplier_name: str,
    store: str,
    on: date | datetime,
) -> tuple[str, dict[str, int]]:
    """
    Allocate the next order id for (supplier, store, day).
    Returns the id and a new counter table; the input table is left untouched.
    """
    key = counter_key(supplier_name, store, on)
    counter = counters.get(key, 0) + 1
    return format_order_id(key, counter), {**counters, key: counter}
