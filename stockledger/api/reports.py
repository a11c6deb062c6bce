from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from stockledger.api.auth import require
from stockledger.database import get_db
from stockledger.models.user import User
from stockledger.schemas.movement import MovementFilters
from stockledger.services import movement_service, report_service

router = APIRouter(prefix="/reports", tags=["Reports"])

PERIODS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), _: User = Depends(require("reports"))):
    return report_service.dashboard(db)


@router.get("/inventory")
def inventory_report(
    category_id: int | None = Query(None, ge=1),
    max_stock: int | None = Query(None, ge=0),
    order: str = "name",
    db: Session = Depends(get_db),
    _: User = Depends(require("reports")),
):
    try:
        return report_service.inventory_report(db, category_id=category_id, max_stock=max_stock, order=order)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("/valuation")
def valuation(db: Session = Depends(get_db), _: User = Depends(require("reports"))):
    return {"total_inventory_value": report_service.valuation(db)}


@router.get("/movements")
def movements_report(
    date_from: date | None = None,
    date_to: date | None = None,
    kind: str | None = None,
    user_id: int | None = Query(None, ge=1),
    db: Session = Depends(get_db),
    _: User = Depends(require("reports")),
):
    filters = MovementFilters(kind=kind, user_id=user_id, date_from=date_from, date_to=date_to)
    return {"by_kind": movement_service.count_by_kind(db, filters)}


@router.get("/activity")
def activity(
    days: int = Query(30, ge=1, le=366),
    group_by: str = "product",
    limit: int | None = Query(None, ge=1),
    db: Session = Depends(get_db),
    _: User = Depends(require("reports")),
):
    try:
        return report_service.activity(db, days=days, group_by=group_by, limit=limit)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("/trends")
def trends(period: str = "30d", db: Session = Depends(get_db), _: User = Depends(require("reports"))):
    if period not in PERIODS:
        raise HTTPException(400, f"Unknown period {period!r}; expected one of {', '.join(PERIODS)}")
    return {"period": period, **report_service.trends(db, days=PERIODS[period])}
