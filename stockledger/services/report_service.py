from sqlalchemy import case, func
from sqlalchemy.orm import Session, joinedload

from stockledger.exceptions import InsufficientStockError, ProductNotFoundError
from stockledger.models.movement import Movement, MovementKind
from stockledger.models.product import Category, Product
from stockledger.models.user import User
from stockledger.schemas.movement import MovementFilters
from stockledger.services import movement_service, product_service
from stockledger.services.stock_service import compute_stock_after

ACTIVITY_GROUPS = ("product", "user", "category")
INVENTORY_ORDERS = ("name", "stock", "price", "category")


def _active_products(db: Session):
    return db.query(Product).options(joinedload(Product.category)).filter(Product.active == True)  # noqa: E712


def stock_status(product: Product) -> str:
    if product.stock_current == 0:
        return "out_of_stock"
    if product.stock_current <= product.stock_minimum:
        return "low_stock"
    return "normal"


def low_stock(db: Session) -> list[Product]:
    return (
        _active_products(db)
        .filter(Product.stock_current <= Product.stock_minimum)
        .order_by((Product.stock_minimum - Product.stock_current).desc(), Product.name)
        .all()
    )


def valuation(db: Session) -> float:
    total = (
        db.query(func.coalesce(func.sum(Product.price * Product.stock_current), 0.0))
        .filter(Product.active == True)  # noqa: E712
        .scalar()
    )
    return round(float(total), 2)


def inventory_summary(db: Session) -> dict:
    products = _active_products(db).all()
    return {
        "total_products": len(products),
        "total_units_in_stock": sum(p.stock_current for p in products),
        "total_inventory_value": round(sum(p.stock_value for p in products), 2),
        "low_stock_count": sum(1 for p in products if p.stock_current <= p.stock_minimum),
        "out_of_stock_count": sum(1 for p in products if p.stock_current == 0),
        "movements_today": movement_service.movements_today(db),
        "top_products": movement_service.top_products(db, days=30, limit=10),
    }


def _group_by_category(products: list[Product]) -> list[dict]:
    cats: dict[str, dict] = {}
    for p in products:
        cat = p.category_name
        if cat not in cats:
            cats[cat] = {
                "category": cat,
                "product_count": 0,
                "total_units": 0,
                "total_value": 0.0,
                "low_stock_count": 0,
            }
        cats[cat]["product_count"] += 1
        cats[cat]["total_units"] += p.stock_current
        cats[cat]["total_value"] += p.stock_value
        if p.stock_current <= p.stock_minimum:
            cats[cat]["low_stock_count"] += 1
    for v in cats.values():
        v["total_value"] = round(v["total_value"], 2)
    return sorted(cats.values(), key=lambda c: c["product_count"], reverse=True)


def inventory_report(
    db: Session,
    category_id: int | None = None,
    max_stock: int | None = None,
    order: str = "name",
) -> dict:
    if order not in INVENTORY_ORDERS:
        raise ValueError(f"Unknown order {order!r}; expected one of {', '.join(INVENTORY_ORDERS)}")
    q = _active_products(db)
    if category_id:
        q = q.filter(Product.category_id == category_id)
    if max_stock is not None:
        q = q.filter(Product.stock_current <= max_stock)
    products = q.all()

    if order == "stock":
        products.sort(key=lambda p: p.stock_current)
    elif order == "price":
        products.sort(key=lambda p: p.price, reverse=True)
    elif order == "category":
        products.sort(key=lambda p: (p.category_name, p.name))
    else:
        products.sort(key=lambda p: p.name)

    return {
        "products": [
            {
                "id": p.id,
                "code": p.code,
                "name": p.name,
                "category": p.category_name,
                "price": p.price,
                "stock_current": p.stock_current,
                "stock_minimum": p.stock_minimum,
                "stock_value": round(p.stock_value, 2),
                "stock_status": stock_status(p),
            }
            for p in products
        ],
        "by_category": _group_by_category(_active_products(db).all()),
        "total_products": len(products),
    }


def activity(db: Session, days: int = 30, group_by: str = "product", limit: int | None = None) -> list[dict]:
    """Movement counts and entry/exit quantities over a trailing day window."""
    if group_by not in ACTIVITY_GROUPS:
        raise ValueError(f"Unknown grouping {group_by!r}; expected one of {', '.join(ACTIVITY_GROUPS)}")

    count = func.count(Movement.id).label("movements")
    entries = func.coalesce(
        func.sum(case((Movement.kind == MovementKind.ENTRY, Movement.quantity), else_=0)), 0
    ).label("entries")
    exits = func.coalesce(
        func.sum(case((Movement.kind == MovementKind.EXIT, Movement.quantity), else_=0)), 0
    ).label("exits")

    if group_by == "product":
        keys = (Product.id, Product.name)
        q = db.query(*keys, count, entries, exits).join(Movement, Movement.product_id == Product.id)
    elif group_by == "user":
        keys = (User.id, User.username)
        q = db.query(*keys, count, entries, exits).join(Movement, Movement.user_id == User.id)
    else:
        keys = (Category.id, Category.name)
        q = (
            db.query(*keys, count, entries, exits)
            .join(Product, Product.category_id == Category.id)
            .join(Movement, Movement.product_id == Product.id)
        )

    q = (
        q.filter(Movement.created_at >= movement_service.window_start(days))
        .group_by(*keys)
        .order_by(count.desc(), keys[1])
    )
    if limit:
        q = q.limit(limit)
    return [
        {
            "group": group_by,
            "id": r[0],
            "name": r[1],
            "movements": int(r.movements),
            "entries": int(r.entries),
            "exits": int(r.exits),
        }
        for r in q.all()
    ]


def dashboard(db: Session) -> dict:
    users_total = db.query(func.count(User.id)).scalar() or 0
    users_active = db.query(func.count(User.id)).filter(User.active == True).scalar() or 0  # noqa: E712
    today = movement_service.count_by_kind(
        db, MovementFilters(date_from=movement_service.window_start(0).date())
    )
    summary = inventory_summary(db)
    summary.pop("top_products")
    return {
        "general": {**summary, "total_categories": len(product_service.list_categories(db))},
        "users": {"total_users": users_total, "active_users": users_active},
        "today": today,
        "top_products": movement_service.top_products(db, days=7, limit=5),
        "top_categories": activity(db, days=30, group_by="category", limit=5),
        "top_users": movement_service.top_users(db, days=30, limit=5),
    }


def trends(db: Session, days: int = 30) -> dict:
    return {
        "days": days,
        "daily": movement_service.daily_totals(db, days=days),
        "top_products": activity(db, days=days, group_by="product", limit=10),
        "top_categories": activity(db, days=days, group_by="category", limit=5),
    }


def verify_ledger(db: Session, product_id: int) -> dict:
    """Replay a product's movements and report any break in the snapshot chain."""
    product = product_service.get_product(db, product_id, include_inactive=True)
    if not product:
        raise ProductNotFoundError(product_id)

    problems = []
    previous_after = None
    history = movement_service.product_history(db, product_id)
    for m in history:
        if previous_after is not None and m.stock_before != previous_after:
            problems.append({"movement_id": m.id, "issue": "stock_before does not match previous stock_after"})
        kind = MovementKind(m.kind)
        expected_qty = m.stock_after if kind == MovementKind.ADJUSTMENT else m.quantity
        try:
            expected_after, expected_recorded = compute_stock_after(kind, m.stock_before, expected_qty)
        except InsufficientStockError:
            problems.append({"movement_id": m.id, "issue": "exit exceeds stock_before"})
        else:
            if expected_after != m.stock_after or expected_recorded != m.quantity:
                problems.append({"movement_id": m.id, "issue": "snapshot does not match movement kind and quantity"})
        previous_after = m.stock_after

    if history and history[-1].stock_after != product.stock_current:
        problems.append({"movement_id": history[-1].id, "issue": "stock_current differs from last stock_after"})
    if not history and product.stock_current != 0:
        problems.append({"movement_id": None, "issue": "stock_current is non-zero with no movements"})

    return {
        "product_id": product_id,
        "stock_current": product.stock_current,
        "movements": len(history),
        "consistent": not problems,
        "problems": problems,
    }
