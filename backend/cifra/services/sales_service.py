# Overview: Seller dashboard reporting over the immutable sales ledger.

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Product, Sale
from cifra.time_utils import parse_iso_datetime, utcnow, to_utc_z


class ReportError(Exception):
    """Raised when report parameters are invalid."""
    pass


MAX_SUMMARY_DAYS = 366


def _parse_range(start: str | None, end: str | None):
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError as exc:
        raise ReportError(f"Invalid date: {exc}")
    return start_dt, end_dt


def list_sales(
    seller_id: int,
    *,
    start: str | None = None,
    end: str | None = None,
    product_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> dict:
    """Sales ledger for a seller, newest first, with product titles attached."""
    start_dt, end_dt = _parse_range(start, end)
    limit = min(max(limit, 1), 500)
    offset = max(offset, 0)

    q = (
        db.session.query(Sale, Product.title)
        .join(Product, Product.id == Sale.product_id)
        .filter(Sale.seller_id == seller_id)
    )
    if start_dt:
        q = q.filter(Sale.created_at >= start_dt)
    if end_dt:
        q = q.filter(Sale.created_at <= end_dt)
    if product_id is not None:
        q = q.filter(Sale.product_id == product_id)

    total = q.count()
    rows = q.order_by(Sale.created_at.desc(), Sale.id.desc()).offset(offset).limit(limit).all()

    items = []
    for sale, title in rows:
        d = sale.to_dict()
        d["product_title"] = title
        items.append(d)

    return {"items": items, "count": len(items), "total": total, "limit": limit, "offset": offset}


def get_sales_summary(seller_id: int, days: int = 30, top_n: int = 5) -> dict:
    """
    Totals over all time plus a per-day series and top products for the
    last `days` days.

    Days without sales appear in the series with zeros so charts don't
    need to fill gaps.
    """
    if days < 1 or days > MAX_SUMMARY_DAYS:
        raise ReportError(f"days must be between 1 and {MAX_SUMMARY_DAYS}")

    totals = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.amount), 0),
        func.coalesce(func.sum(Sale.platform_fee), 0),
        func.coalesce(func.sum(Sale.net_amount), 0),
    ).filter(Sale.seller_id == seller_id).one()

    today = utcnow().date()
    first_day = today - timedelta(days=days - 1)
    window_start = datetime.combine(first_day, time.min)

    series: dict[date, dict] = {}
    for offset in range(days):
        day = first_day + timedelta(days=offset)
        series[day] = {"date": day.isoformat(), "count": 0, "gross": 0, "net": 0}

    recent = db.session.query(Sale.created_at, Sale.amount, Sale.net_amount).filter(
        Sale.seller_id == seller_id,
        Sale.created_at >= window_start,
    ).all()
    for created_at, amount, net in recent:
        bucket = series.get(created_at.date())
        if bucket is None:
            continue
        bucket["count"] += 1
        bucket["gross"] += amount
        bucket["net"] += net

    top_rows = (
        db.session.query(
            Sale.product_id,
            Product.title,
            func.count(Sale.id).label("sales"),
            func.coalesce(func.sum(Sale.net_amount), 0).label("net"),
        )
        .join(Product, Product.id == Sale.product_id)
        .filter(Sale.seller_id == seller_id, Sale.created_at >= window_start)
        .group_by(Sale.product_id, Product.title)
        .order_by(func.count(Sale.id).desc(), Sale.product_id.asc())
        .limit(top_n)
        .all()
    )

    count, gross, fees, net = totals
    return {
        "sales_count": int(count),
        "gross": int(gross),
        "platform_fees": int(fees),
        "net": int(net),
        "days": days,
        "daily": list(series.values()),
        "top_products": [
            {"product_id": pid, "title": title, "sales": int(sales), "net": int(pnet)}
            for pid, title, sales, pnet in top_rows
        ],
    }


def list_customers(seller_id: int, limit: int = 200) -> list[dict]:
    """Distinct buyers with purchase count, total spent, and last purchase time."""
    rows = (
        db.session.query(
            Sale.buyer_email,
            func.count(Sale.id).label("purchases"),
            func.coalesce(func.sum(Sale.amount), 0).label("total_spent"),
            func.max(Sale.created_at).label("last_purchase_at"),
        )
        .filter(Sale.seller_id == seller_id)
        .group_by(Sale.buyer_email)
        .order_by(func.max(Sale.created_at).desc(), Sale.buyer_email.asc())
        .limit(min(max(limit, 1), 1000))
        .all()
    )
    return [
        {
            "email": email,
            "purchases": int(purchases),
            "total_spent": int(total),
            "last_purchase_at": to_utc_z(last),
        }
        for email, purchases, total, last in rows
    ]
