"""Dashboard counters and analytics figures, computed from full collection reads."""
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List

from listing import newest_first

LOW_STOCK_THRESHOLD = 10


def dashboard_stats(products: List[dict], categories: int, orders: List[dict], users: int) -> Dict[str, int]:
    return {
        "total_products": len(products),
        "total_categories": categories,
        "total_orders": len(orders),
        "total_users": users,
        "low_stock_products": sum(1 for p in products if p.get("stock", 0) < LOW_STOCK_THRESHOLD),
        "pending_orders": sum(1 for o in orders if o.get("status") == "Pending"),
    }


def top_products(orders: List[dict], limit: int = 5) -> List[Dict[str, Any]]:
    """Rank products by revenue across every order's item snapshots."""
    totals: Dict[str, Dict[str, Any]] = {}
    for order in orders:
        for item in order.get("items", []):
            row = totals.setdefault(item.get("id"), {"id": item.get("id"), "name": item.get("name"), "sales": 0, "revenue": 0.0})
            qty = int(item.get("quantity", 0))
            row["sales"] += qty
            row["revenue"] = round(row["revenue"] + float(item.get("price", 0)) * qty, 2)
    return sorted(totals.values(), key=lambda r: r["revenue"], reverse=True)[:limit]


def revenue_by_month(orders: List[dict]) -> List[Dict[str, Any]]:
    months: Dict[str, Dict[str, Any]] = {}
    for order in orders:
        created = order.get("created_at")
        if not isinstance(created, datetime):
            continue
        key = created.strftime("%Y-%m")
        row = months.setdefault(key, {"month": key, "revenue": 0.0, "orders": 0})
        row["revenue"] = round(row["revenue"] + float(order.get("total") or 0), 2)
        row["orders"] += 1
    return [months[k] for k in sorted(months)]


def products_by_category(products: List[dict]) -> List[Dict[str, Any]]:
    counts: Dict[str, int] = defaultdict(int)
    for p in products:
        counts[p.get("category") or "Uncategorized"] += 1
    return [{"name": name, "value": value} for name, value in sorted(counts.items())]


def analytics_summary(orders: List[dict], products: List[dict], customers: int) -> Dict[str, Any]:
    total_revenue = round(sum(float(o.get("total") or 0) for o in orders), 2)
    total_orders = len(orders)
    return {
        "total_revenue": total_revenue,
        "total_orders": total_orders,
        "total_customers": customers,
        "average_order_value": round(total_revenue / total_orders, 2) if total_orders else 0,
        "conversion_rate": round(total_orders / customers * 100, 2) if customers > 0 else 0,
        "top_products": top_products(orders),
        "revenue_by_month": revenue_by_month(orders),
        "category_breakdown": products_by_category(products),
        "recent_orders": newest_first(orders)[:5],
    }
