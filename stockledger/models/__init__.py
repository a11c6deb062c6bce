from stockledger.models.movement import Movement, MovementKind
from stockledger.models.product import Category, Product
from stockledger.models.user import User

__all__ = ["Category", "Movement", "MovementKind", "Product", "User"]
