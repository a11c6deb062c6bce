import logging

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stockledger.exceptions import PersistenceFailureError
from stockledger.models.movement import Movement, MovementKind, utcnow
from stockledger.models.product import Category, Product
from stockledger.schemas.product import CategoryCreate, ProductCreate, ProductUpdate

logger = logging.getLogger(__name__)


def create_product(db: Session, data: ProductCreate, user_id: int) -> Product:
    """Create a product; opening stock is committed with its entry movement."""
    product = Product(
        name=data.name,
        description=data.description,
        price=data.price,
        cost_price=data.cost_price,
        stock_minimum=data.stock_minimum,
        stock_current=data.initial_stock,
        category_id=data.category_id,
    )
    try:
        db.add(product)
        db.flush()
        if data.initial_stock > 0:
            db.add(Movement(
                product_id=product.id,
                kind=MovementKind.ENTRY,
                quantity=data.initial_stock,
                stock_before=0,
                stock_after=data.initial_stock,
                reason="Initial stock on product creation",
                user_id=user_id,
                created_at=utcnow(),
            ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Creating product %r failed: %s", data.name, e)
        raise PersistenceFailureError(str(e)) from e

    db.refresh(product)
    logger.info("Created product %s (%s) with stock %d", product.id, product.code, product.stock_current)
    return product


def get_product(db: Session, product_id: int, include_inactive: bool = False) -> Product | None:
    q = db.query(Product).filter(Product.id == product_id)
    if not include_inactive:
        q = q.filter(Product.active == True)  # noqa: E712
    return q.first()


def get_product_for_update(db: Session, product_id: int) -> Product | None:
    """Fresh read of an active product, row-locked where the backend supports it."""
    return (
        db.query(Product)
        .filter(Product.id == product_id, Product.active == True)  # noqa: E712
        .with_for_update()
        .populate_existing()
        .first()
    )


def get_product_by_code(db: Session, code: str) -> Product | None:
    return db.query(Product).filter(Product.code == code, Product.active == True).first()  # noqa: E712


def list_products(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    category_id: int | None = None,
    search: str | None = None,
) -> list[Product]:
    q = db.query(Product).filter(Product.active == True)  # noqa: E712
    if category_id:
        q = q.filter(Product.category_id == category_id)
    if search:
        like = f"%{search}%"
        q = q.filter((Product.name.ilike(like)) | (Product.code.ilike(like)))
    return q.order_by(Product.created_at.desc(), Product.id.desc()).offset(skip).limit(limit).all()


def update_product(db: Session, product_id: int, data: ProductUpdate) -> Product | None:
    product = get_product(db, product_id)
    if not product:
        return None
    update_data = data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(product, field, value)
    db.commit()
    db.refresh(product)
    return product


def deactivate_product(db: Session, product_id: int) -> bool:
    product = get_product(db, product_id)
    if not product:
        return False
    product.active = False
    db.commit()
    logger.info("Deactivated product %s", product_id)
    return True


def set_stock(db: Session, product_id: int, new_value: int, expected: int | None = None) -> bool:
    """Overwrite stock_current inside the caller's transaction.

    With ``expected`` the write only happens if the row still holds that
    value. Returns False when no row was written. Never commits.
    """
    stmt = update(Product).where(Product.id == product_id, Product.active == True)  # noqa: E712
    if expected is not None:
        stmt = stmt.where(Product.stock_current == expected)
    result = db.execute(stmt.values(stock_current=new_value).execution_options(synchronize_session=False))
    return result.rowcount == 1


# --- Category service ---

def create_category(db: Session, data: CategoryCreate) -> Category:
    category = Category(name=data.name, description=data.description)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def get_category(db: Session, category_id: int) -> Category | None:
    return db.query(Category).filter(Category.id == category_id, Category.active == True).first()  # noqa: E712


def list_categories(db: Session) -> list[Category]:
    return db.query(Category).filter(Category.active == True).order_by(Category.name).all()  # noqa: E712
