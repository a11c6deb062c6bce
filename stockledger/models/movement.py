from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockledger.database import Base
from stockledger.exceptions import MovementImmutableError


def utcnow() -> datetime:
    """Naive UTC timestamp, stored the same way by SQLite and PostgreSQL."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MovementKind(str, PyEnum):
    ENTRY = "entry"
    EXIT = "exit"
    ADJUSTMENT = "adjustment"


class Movement(Base):
    """Append-only record of one stock change."""

    __tablename__ = "movements"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_movements_quantity_non_negative"),
        CheckConstraint("stock_before >= 0 AND stock_after >= 0", name="ck_movements_snapshots_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False, index=True)
    kind: Mapped[MovementKind] = mapped_column(
        Enum(MovementKind, values_callable=lambda e: [m.value for m in e], native_enum=False),
        nullable=False,
        index=True,
    )
    # Magnitude of change; for adjustments abs(stock_after - stock_before)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_before: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_after: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    # Client-supplied key that makes retried submissions apply once
    request_id: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    product: Mapped["Product"] = relationship("Product")  # noqa: F821
    user: Mapped["User"] = relationship("User")  # noqa: F821

    @property
    def delta(self) -> int:
        return self.stock_after - self.stock_before


@event.listens_for(Movement, "before_update")
def _block_movement_update(mapper, connection, target):
    raise MovementImmutableError(target.id, "update")


@event.listens_for(Movement, "before_delete")
def _block_movement_delete(mapper, connection, target):
    raise MovementImmutableError(target.id, "delete")
