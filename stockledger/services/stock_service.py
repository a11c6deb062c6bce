"""
Stock mutation engine: the only writer of Product.stock_current and Movement rows.

Each call validates the request, reads the product's current stock,
computes the new value for the movement kind and commits the stock
overwrite together with the movement row. The stock write is a
compare-and-set on the value that was read; if another movement committed
first the transaction is rolled back and the whole computation is retried
with a fresh read, up to ``settings.MOVEMENT_MAX_ATTEMPTS`` times.

    kind        input                 stock_after         recorded quantity
    entry       amount received       before + quantity   quantity
    exit        amount removed        before - quantity   quantity
    adjustment  new absolute stock    quantity            abs(quantity - before)
"""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from stockledger.config import settings
from stockledger.exceptions import (
    InsufficientStockError,
    InvalidMovementKindError,
    InvalidQuantityError,
    PersistenceFailureError,
    ProductNotFoundError,
)
from stockledger.models.movement import Movement, MovementKind, utcnow
from stockledger.services import product_service

logger = logging.getLogger(__name__)


@dataclass
class MovementResult:
    movement: Movement
    new_stock: int
    # True when request_id matched an already committed movement
    replayed: bool = False


class _StaleStock(Exception):
    """Stock changed between read and write."""


def parse_kind(kind) -> MovementKind:
    if isinstance(kind, MovementKind):
        return kind
    try:
        return MovementKind(str(kind).strip().lower())
    except ValueError:
        raise InvalidMovementKindError(kind) from None


def validate_quantity(kind: MovementKind, quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantityError(quantity, "must be an integer")
    if kind == MovementKind.ADJUSTMENT:
        if quantity < 0:
            raise InvalidQuantityError(quantity, "adjustment target must be zero or greater")
    elif quantity <= 0:
        raise InvalidQuantityError(quantity, "must be a positive integer")
    return quantity


def compute_stock_after(kind: MovementKind, stock_before: int, quantity: int, product_id=None) -> tuple[int, int]:
    """Return (stock_after, recorded_quantity) for a validated request.

    Raises InsufficientStockError for an exit larger than stock_before.
    """
    if kind == MovementKind.ENTRY:
        return stock_before + quantity, quantity
    if kind == MovementKind.EXIT:
        if quantity > stock_before:
            raise InsufficientStockError(product_id, requested=quantity, available=stock_before)
        return stock_before - quantity, quantity
    return quantity, abs(quantity - stock_before)


def apply_movement(
    db: Session,
    product_id: int,
    kind,
    quantity: int,
    reason: str | None,
    user_id: int,
    request_id: str | None = None,
) -> MovementResult:
    movement_kind = parse_kind(kind)
    quantity = validate_quantity(movement_kind, quantity)
    if request_id:
        existing = _find_by_request_id(db, request_id)
        if existing:
            return _replay(existing)

    max_attempts = max(1, settings.MOVEMENT_MAX_ATTEMPTS)
    for attempt in range(1, max_attempts + 1):
        try:
            result = _attempt(db, product_id, movement_kind, quantity, reason, user_id, request_id)
            break
        except _StaleStock:
            db.rollback()
            logger.warning(
                "Stock for product %s changed concurrently (attempt %d/%d), retrying",
                product_id, attempt, max_attempts,
            )
        except IntegrityError as e:
            db.rollback()
            if request_id:
                existing = _find_by_request_id(db, request_id)
                if existing:
                    return _replay(existing)
            logger.error("Movement on product %s violated a constraint: %s", product_id, e.orig)
            raise PersistenceFailureError(str(e.orig), attempts=attempt) from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Movement on product %s failed to commit: %s", product_id, e)
            raise PersistenceFailureError(str(e), attempts=attempt) from e
        except Exception:
            db.rollback()
            raise
    else:
        logger.error("Gave up on movement for product %s after %d attempts", product_id, max_attempts)
        raise PersistenceFailureError("concurrent updates kept winning the race", attempts=max_attempts)

    # Committed; nothing below may be reported as a failed write
    movement = result.movement
    db.refresh(movement)
    logger.info(
        "Movement %s: %s %d on product %s (%d -> %d) by user %s",
        movement.id, movement_kind.value, movement.quantity, product_id,
        movement.stock_before, movement.stock_after, user_id,
    )
    return result


def _attempt(
    db: Session,
    product_id: int,
    kind: MovementKind,
    quantity: int,
    reason: str | None,
    user_id: int,
    request_id: str | None,
) -> MovementResult:
    product = product_service.get_product_for_update(db, product_id)
    if not product:
        raise ProductNotFoundError(product_id)

    stock_before = product.stock_current
    stock_after, recorded_quantity = compute_stock_after(kind, stock_before, quantity, product_id)

    if not product_service.set_stock(db, product_id, stock_after, expected=stock_before):
        raise _StaleStock()

    movement = Movement(
        product_id=product_id,
        kind=kind,
        quantity=recorded_quantity,
        stock_before=stock_before,
        stock_after=stock_after,
        reason=reason,
        user_id=user_id,
        request_id=request_id,
        created_at=utcnow(),
    )
    db.add(movement)
    db.flush()
    db.commit()
    return MovementResult(movement=movement, new_stock=stock_after)


def _find_by_request_id(db: Session, request_id: str) -> Movement | None:
    return db.query(Movement).filter(Movement.request_id == request_id).first()


def _replay(movement: Movement) -> MovementResult:
    logger.info("Request %s already applied as movement %s", movement.request_id, movement.id)
    return MovementResult(movement=movement, new_stock=movement.stock_after, replayed=True)
