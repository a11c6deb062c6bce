"""
Typed errors raised by the stock ledger.

Every error carries a class-level ``code`` (stable, machine-readable) and
keeps its context as attributes so routers can render structured responses
without parsing messages:

    StockLedgerError
    +-- ProductNotFoundError      PRODUCT_NOT_FOUND
    +-- InvalidQuantityError      INVALID_QUANTITY
    +-- InvalidMovementKindError  INVALID_MOVEMENT_KIND
    +-- InsufficientStockError    INSUFFICIENT_STOCK
    +-- PersistenceFailureError   PERSISTENCE_FAILURE
    +-- MovementImmutableError    MOVEMENT_IMMUTABLE

Validation errors are raised before anything is written. Only
PersistenceFailureError can follow a partially executed transaction, and it
is always raised after that transaction has been rolled back.
"""


class StockLedgerError(Exception):
    """Base class for all stock ledger errors."""

    code: str = "STOCK_LEDGER_ERROR"
    status_code: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "detail": self.message}


class ProductNotFoundError(StockLedgerError):
    code = "PRODUCT_NOT_FOUND"
    status_code = 404

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"Product {product_id} does not exist or is inactive")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "product_id": self.product_id}


class InvalidQuantityError(StockLedgerError):
    code = "INVALID_QUANTITY"

    def __init__(self, quantity, reason: str):
        self.quantity = quantity
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity!r}: {reason}")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "quantity": self.quantity}


class InvalidMovementKindError(StockLedgerError):
    code = "INVALID_MOVEMENT_KIND"

    def __init__(self, kind):
        self.kind = kind
        super().__init__(f"Invalid movement kind {kind!r}; expected entry, exit or adjustment")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "kind": str(self.kind)}


class InsufficientStockError(StockLedgerError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, product_id, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}. "
            f"Available: {available}, requested: {requested}"
        )

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "product_id": self.product_id,
            "requested": self.requested,
            "available": self.available,
        }


class PersistenceFailureError(StockLedgerError):
    """The movement could not be committed. Nothing was written."""

    code = "PERSISTENCE_FAILURE"
    status_code = 503

    def __init__(self, reason: str, attempts: int = 1):
        self.reason = reason
        self.attempts = attempts
        super().__init__(f"Movement not committed after {attempts} attempt(s): {reason}")


class MovementImmutableError(StockLedgerError):
    code = "MOVEMENT_IMMUTABLE"
    status_code = 409

    def __init__(self, movement_id, operation: str):
        self.movement_id = movement_id
        self.operation = operation
        super().__init__(f"Movement {movement_id} is append-only; {operation} is not allowed")
