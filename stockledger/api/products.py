from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from stockledger.api.auth import require
from stockledger.database import get_db
from stockledger.models.user import User
from stockledger.schemas.movement import MovementOut
from stockledger.schemas.product import (
    CategoryCreate,
    CategoryOut,
    LowStockOut,
    ProductCreate,
    ProductOut,
    ProductUpdate,
)
from stockledger.services import movement_service, product_service, report_service

router = APIRouter(prefix="/products", tags=["Products"])
categories_router = APIRouter(prefix="/categories", tags=["Categories"])


@router.post("", response_model=ProductOut, status_code=201)
def create_product(data: ProductCreate, db: Session = Depends(get_db), user: User = Depends(require("products"))):
    if data.category_id and not product_service.get_category(db, data.category_id):
        raise HTTPException(400, f"Category {data.category_id} not found")
    return product_service.create_product(db, data, user_id=user.id)


@router.get("", response_model=list[ProductOut])
def list_products(
    skip: int = 0,
    limit: int = 100,
    category_id: int | None = None,
    q: str | None = None,
    db: Session = Depends(get_db),
    _: User = Depends(require("products:read")),
):
    return product_service.list_products(db, skip=skip, limit=limit, category_id=category_id, search=q)


@router.get("/low-stock", response_model=list[LowStockOut])
def low_stock(db: Session = Depends(get_db), _: User = Depends(require("products:read"))):
    return report_service.low_stock(db)


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: int, db: Session = Depends(get_db), _: User = Depends(require("products:read"))):
    product = product_service.get_product(db, product_id)
    if not product:
        raise HTTPException(404, "Product not found")
    return product


@router.patch("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: int,
    data: ProductUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require("products")),
):
    if data.category_id and not product_service.get_category(db, data.category_id):
        raise HTTPException(400, f"Category {data.category_id} not found")
    product = product_service.update_product(db, product_id, data)
    if not product:
        raise HTTPException(404, "Product not found")
    return product


@router.delete("/{product_id}", status_code=204)
def deactivate_product(product_id: int, db: Session = Depends(get_db), _: User = Depends(require("products"))):
    if not product_service.deactivate_product(db, product_id):
        raise HTTPException(404, "Product not found")


@router.get("/{product_id}/movements", response_model=list[MovementOut])
def product_movements(product_id: int, db: Session = Depends(get_db), _: User = Depends(require("inventory:read"))):
    product = product_service.get_product(db, product_id, include_inactive=True)
    if not product:
        raise HTTPException(404, "Product not found")
    return list(reversed(movement_service.product_history(db, product_id)))


@router.get("/{product_id}/ledger-check")
def ledger_check(product_id: int, db: Session = Depends(get_db), _: User = Depends(require("inventory:read"))):
    return report_service.verify_ledger(db, product_id)


# --- Category endpoints ---

@categories_router.post("", response_model=CategoryOut, status_code=201)
def create_category(data: CategoryCreate, db: Session = Depends(get_db), _: User = Depends(require("products"))):
    return product_service.create_category(db, data)


@categories_router.get("", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db), _: User = Depends(require("products:read"))):
    return product_service.list_categories(db)
