from __future__ import annotations

import csv
import re
from io import StringIO
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from supply_desk.config import settings
from supply_desk.models import Item, Supplier, SupplierName, Unit
from supply_desk.services.remote_db_service import RemoteError

_WS_RE = re.compile(r'\s+')
_KNOWN_SUPPLIERS = {name.value for name in SupplierName}


class FeedFormatError(ValueError):
    pass


def parse_feed(raw: str) -> tuple[tuple[Item, ...], tuple[Supplier, ...]]:
    """
    Turn the published item sheet into master data.
    Needs `Name` and `Supplier` columns; rows for suppliers outside the known list are skipped.
    """
    reader = csv.DictReader(StringIO(raw.strip()))
    headers = {(header or '').strip().lower(): header for header in reader.fieldnames or []}
    if 'name' not in headers or 'supplier' not in headers:
        raise FeedFormatError('Feed must contain "Name" and "Supplier" columns')

    items: list[Item] = []
    suppliers: dict[str, Supplier] = {}
    for row in reader:
        item_name = (row.get(headers['name']) or '').strip()
        supplier_name = (row.get(headers['supplier']) or '').strip()
        if not item_name or supplier_name not in _KNOWN_SUPPLIERS:
            continue
        supplier = suppliers.setdefault(supplier_name, Supplier(id=f'sup_{supplier_name}', name=supplier_name))
        items.append(
            Item(
                id=f"csv_{supplier_name}_{_WS_RE.sub('_', item_name)}",
                name=item_name,
                unit=Unit.PC,
                supplier_id=supplier.id,
                supplier_name=supplier.name,
            )
        )
    return tuple(items), tuple(suppliers.values())


class FeedClient:
    def __init__(self, *, url: str, timeout_seconds: int | None = None) -> None:
        if not url:
            raise ValueError('Feed URL is required')
        self.url = url
        self.timeout_seconds = timeout_seconds or settings.remote_timeout_seconds

    def fetch_text(self) -> str:
        req = Request(url=self.url, method='GET')
        try:
            with urlopen(req, timeout=self.timeout_seconds) as response:
                return response.read().decode('utf-8')
        except HTTPError as exc:
            raise RemoteError(f'Feed fetch failed with status {exc.code}') from exc
        except URLError as exc:
            raise RemoteError(f'Feed network error: {exc.reason}') from exc
        except TimeoutError as exc:
            raise RemoteError('Feed fetch timed out') from exc
        except UnicodeDecodeError as exc:
            raise RemoteError('Feed is not valid UTF-8 text') from exc
