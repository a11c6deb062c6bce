from datetime import datetime

from pydantic import BaseModel, Field, field_validator


# --- Category schemas ---

class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field("", max_length=500)


class CategoryOut(BaseModel):
    id: int
    name: str
    description: str
    active: bool

    model_config = {"from_attributes": True}


# --- Product schemas ---

class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    price: float = Field(0.0, ge=0)
    cost_price: float = Field(0.0, ge=0)
    stock_minimum: int = Field(0, ge=0)
    # Recorded as an entry movement when positive
    initial_stock: int = Field(0, ge=0)
    category_id: int | None = None


class ProductUpdate(BaseModel):
    """Non-stock fields only; stock changes go through /inventory."""

    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    price: float | None = Field(None, ge=0)
    cost_price: float | None = Field(None, ge=0)
    stock_minimum: int | None = Field(None, ge=0)
    # null clears the category
    category_id: int | None = None

    @field_validator("name", "description", "price", "cost_price", "stock_minimum")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class ProductOut(BaseModel):
    id: int
    code: str
    name: str
    description: str
    price: float
    cost_price: float
    stock_minimum: int
    stock_current: int
    category_id: int | None
    category_name: str
    active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class LowStockOut(BaseModel):
    id: int
    code: str
    name: str
    stock_current: int
    stock_minimum: int
    deficit: int
    category_name: str

    model_config = {"from_attributes": True}
