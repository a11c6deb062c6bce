import math
from datetime import date, datetime, time, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Query, Session, joinedload

from stockledger.config import settings
from stockledger.models.movement import Movement, MovementKind, utcnow
from stockledger.models.product import Product
from stockledger.models.user import User
from stockledger.schemas.movement import MovementFilters
from stockledger.services.stock_service import parse_kind


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min)


def window_start(days: int, now: datetime | None = None) -> datetime:
    """Midnight ``days`` days before today, matching a trailing day window."""
    today = (now or utcnow()).date()
    return _day_start(today - timedelta(days=days))


def _apply_filters(q: Query, filters: MovementFilters | None) -> Query:
    if not filters:
        return q
    if filters.product_id:
        q = q.filter(Movement.product_id == filters.product_id)
    if filters.kind:
        q = q.filter(Movement.kind == parse_kind(filters.kind))
    if filters.user_id:
        q = q.filter(Movement.user_id == filters.user_id)
    if filters.date_from:
        q = q.filter(Movement.created_at >= _day_start(filters.date_from))
    if filters.date_to:
        # inclusive of the whole end day
        q = q.filter(Movement.created_at < _day_start(filters.date_to + timedelta(days=1)))
    return q


def list_movements(
    db: Session,
    filters: MovementFilters | None = None,
    page: int = 1,
    limit: int | None = None,
) -> tuple[list[Movement], int]:
    limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
    page = max(page, 1)
    q = _apply_filters(db.query(Movement), filters)
    total = q.count()
    items = (
        q.options(joinedload(Movement.product), joinedload(Movement.user))
        .order_by(Movement.created_at.desc(), Movement.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def get_movement(db: Session, movement_id: int) -> Movement | None:
    return (
        db.query(Movement)
        .options(joinedload(Movement.product), joinedload(Movement.user))
        .filter(Movement.id == movement_id)
        .first()
    )


def product_history(db: Session, product_id: int) -> list[Movement]:
    """All movements of a product in commit order."""
    return db.query(Movement).filter(Movement.product_id == product_id).order_by(Movement.id.asc()).all()


def count_by_kind(db: Session, filters: MovementFilters | None = None) -> dict[str, dict]:
    q = _apply_filters(
        db.query(Movement.kind, func.count(Movement.id), func.coalesce(func.sum(Movement.quantity), 0)),
        filters,
    )
    summary = {k.value: {"count": 0, "quantity": 0} for k in MovementKind}
    for kind, count, quantity in q.group_by(Movement.kind).all():
        summary[MovementKind(kind).value] = {"count": int(count), "quantity": int(quantity)}
    return summary


def movements_today(db: Session) -> int:
    start = window_start(0)
    return db.query(func.count(Movement.id)).filter(Movement.created_at >= start).scalar() or 0


def daily_totals(db: Session, days: int = 30) -> list[dict]:
    """Per-day movement counts and quantity sums for the trailing window, newest day first."""
    rows = (
        db.query(Movement.created_at, Movement.kind, Movement.quantity)
        .filter(Movement.created_at >= window_start(days))
        .all()
    )
    by_day: dict[date, dict] = {}
    for created_at, kind, quantity in rows:
        day = created_at.date()
        if day not in by_day:
            by_day[day] = {
                "date": day.isoformat(),
                "total_movements": 0,
                "entries": 0,
                "exits": 0,
                "adjustments": 0,
                "quantity_in": 0,
                "quantity_out": 0,
            }
        d = by_day[day]
        d["total_movements"] += 1
        kind = MovementKind(kind)
        if kind == MovementKind.ENTRY:
            d["entries"] += 1
            d["quantity_in"] += quantity
        elif kind == MovementKind.EXIT:
            d["exits"] += 1
            d["quantity_out"] += quantity
        else:
            d["adjustments"] += 1
    for d in by_day.values():
        d["balance"] = d["quantity_in"] - d["quantity_out"]
    return [by_day[k] for k in sorted(by_day, reverse=True)]


def top_products(db: Session, days: int = 30, limit: int = 10) -> list[dict]:
    count = func.count(Movement.id).label("movements")
    results = (
        db.query(Product.id, Product.code, Product.name, count)
        .join(Movement, Movement.product_id == Product.id)
        .filter(Movement.created_at >= window_start(days))
        .group_by(Product.id, Product.code, Product.name)
        .order_by(count.desc(), Product.name)
        .limit(limit)
        .all()
    )
    return [
        {"product_id": r.id, "code": r.code, "name": r.name, "movements": int(r.movements)}
        for r in results
    ]


def top_users(db: Session, days: int = 30, limit: int = 5) -> list[dict]:
    count = func.count(Movement.id).label("movements")
    results = (
        db.query(User.id, User.username, User.display_name, count)
        .join(Movement, Movement.user_id == User.id)
        .filter(Movement.created_at >= window_start(days))
        .group_by(User.id, User.username, User.display_name)
        .order_by(count.desc(), User.username)
        .limit(limit)
        .all()
    )
    return [
        {"user_id": r.id, "username": r.username, "display_name": r.display_name, "movements": int(r.movements)}
        for r in results
    ]
