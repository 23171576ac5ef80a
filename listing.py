"""In-memory search, sort and paging for list screens."""
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional


def _timestamp(value: Any) -> float:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    return 0.0


def search(items: List[dict], term: Optional[str], fields: Iterable[str]) -> List[dict]:
    """Case-insensitive substring match on any of `fields`."""
    if not term:
        return items
    needle = term.lower()
    fields = list(fields)
    return [
        it for it in items
        if any(needle in str(it.get(f) or "").lower() for f in fields)
    ]


def newest_first(items: List[dict], field: str = "created_at") -> List[dict]:
    return sorted(items, key=lambda it: _timestamp(it.get(field)), reverse=True)


PRODUCT_SORTS: Dict[str, Callable[[List[dict]], List[dict]]] = {
    "newest": newest_first,
    "name": lambda items: sorted(items, key=lambda p: str(p.get("name", "")).lower()),
    "price-low": lambda items: sorted(items, key=lambda p: p.get("price", 0)),
    "price-high": lambda items: sorted(items, key=lambda p: p.get("price", 0), reverse=True),
    "stock": lambda items: sorted(items, key=lambda p: p.get("stock", 0)),
}


def sort_products(items: List[dict], sort: Optional[str]) -> List[dict]:
    sorter = PRODUCT_SORTS.get(sort or "newest")
    return sorter(items) if sorter else items


def paginate(items: List[dict], page: int, limit: int) -> Dict[str, Any]:
    page = max(page, 1)
    start = (page - 1) * limit
    return {
        "items": items[start:start + limit],
        "total": len(items),
        "page": page,
        "limit": limit,
        "pages": math.ceil(len(items) / limit) if limit else 0,
    }
