from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from stockledger.api.auth import require
from stockledger.config import settings
from stockledger.database import get_db
from stockledger.models.movement import Movement, MovementKind
from stockledger.models.user import User
from stockledger.schemas.movement import (
    MovementCreate,
    MovementDetailOut,
    MovementFilters,
    MovementOut,
    MovementPage,
    MovementRequest,
    MovementResultOut,
    Pagination,
)
from stockledger.schemas.product import LowStockOut
from stockledger.services import movement_service, report_service, stock_service

router = APIRouter(prefix="/inventory", tags=["Inventory"])


def _detail(m: Movement) -> MovementDetailOut:
    out = MovementDetailOut.model_validate(m)
    out.product_name = m.product.name if m.product else ""
    out.product_code = m.product.code if m.product else ""
    out.username = m.user.username if m.user else ""
    return out


def _apply(db: Session, kind, data: MovementRequest, user: User) -> MovementResultOut:
    result = stock_service.apply_movement(
        db,
        product_id=data.product_id,
        kind=kind,
        quantity=data.quantity,
        reason=data.reason,
        user_id=user.id,
        request_id=data.request_id,
    )
    return MovementResultOut(
        movement=MovementOut.model_validate(result.movement),
        new_stock=result.new_stock,
        replayed=result.replayed,
    )


@router.get("", response_model=MovementPage)
def list_movements(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    kind: str | None = None,
    product_id: int | None = Query(None, ge=1),
    user_id: int | None = Query(None, ge=1),
    date_from: date | None = None,
    date_to: date | None = None,
    db: Session = Depends(get_db),
    _: User = Depends(require("inventory:read")),
):
    filters = MovementFilters(
        product_id=product_id, kind=kind, user_id=user_id, date_from=date_from, date_to=date_to
    )
    items, total = movement_service.list_movements(db, filters, page=page, limit=limit)
    return MovementPage(
        items=[_detail(m) for m in items],
        pagination=Pagination(page=page, limit=limit, total=total, pages=movement_service.page_count(total, limit)),
    )


@router.post("/movements", response_model=MovementResultOut, status_code=201)
def create_movement(data: MovementCreate, db: Session = Depends(get_db), user: User = Depends(require("inventory"))):
    return _apply(db, data.kind, data, user)


@router.post("/entry", response_model=MovementResultOut, status_code=201)
def record_entry(data: MovementRequest, db: Session = Depends(get_db), user: User = Depends(require("inventory"))):
    return _apply(db, MovementKind.ENTRY, data, user)


@router.post("/exit", response_model=MovementResultOut, status_code=201)
def record_exit(data: MovementRequest, db: Session = Depends(get_db), user: User = Depends(require("inventory"))):
    return _apply(db, MovementKind.EXIT, data, user)


@router.post("/adjustment", response_model=MovementResultOut, status_code=201)
def record_adjustment(data: MovementRequest, db: Session = Depends(get_db), user: User = Depends(require("inventory"))):
    """``quantity`` is the counted stock; the recorded quantity is the size of the correction."""
    return _apply(db, MovementKind.ADJUSTMENT, data, user)


@router.get("/low-stock", response_model=list[LowStockOut])
def low_stock(db: Session = Depends(get_db), _: User = Depends(require("inventory:read"))):
    return report_service.low_stock(db)


@router.get("/summary")
def summary(db: Session = Depends(get_db), _: User = Depends(require("inventory:read"))):
    return report_service.inventory_summary(db)


@router.get("/{movement_id}", response_model=MovementDetailOut)
def get_movement(movement_id: int, db: Session = Depends(get_db), _: User = Depends(require("inventory:read"))):
    movement = movement_service.get_movement(db, movement_id)
    if not movement:
        raise HTTPException(404, "Movement not found")
    return _detail(movement)
