from datetime import date, datetime

from pydantic import BaseModel, Field

from stockledger.config import settings
from stockledger.models.movement import MovementKind


class MovementRequest(BaseModel):
    """Body for /inventory/entry, /inventory/exit and /inventory/adjustment.

    For adjustments ``quantity`` is the new absolute stock value.
    """

    product_id: int = Field(gt=0)
    quantity: int = Field(ge=0)
    reason: str | None = Field(None, max_length=settings.REASON_MAX_LENGTH)
    request_id: str | None = Field(None, max_length=100)


class MovementCreate(MovementRequest):
    # Validated by the stock engine so unknown kinds get a typed error
    kind: str


class MovementOut(BaseModel):
    id: int
    product_id: int
    kind: MovementKind
    quantity: int
    stock_before: int
    stock_after: int
    delta: int
    reason: str | None
    user_id: int
    request_id: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MovementDetailOut(MovementOut):
    product_name: str = ""
    product_code: str = ""
    username: str = ""


class MovementResultOut(BaseModel):
    movement: MovementOut
    new_stock: int
    replayed: bool = False


class MovementFilters(BaseModel):
    product_id: int | None = None
    kind: str | None = None
    user_id: int | None = None
    date_from: date | None = None
    date_to: date | None = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class MovementPage(BaseModel):
    items: list[MovementDetailOut]
    pagination: Pagination
