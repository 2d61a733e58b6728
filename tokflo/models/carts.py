from datetime import datetime
from typing import Any, Dict, List, Optional

from ..firestore_model import FirestoreDocument, utcnow
from ..pydantic_compat import CamelModel, Field


class CartItem(CamelModel):
    product_id: str
    store_id: Optional[str] = None
    seller_id: Optional[str] = None
    name: str = ""
    price: float = 0
    quantity: int = 1
    thumbnail: str = ""
    category: str = ""
    selected_variant: Optional[Dict[str, Any]] = None
    added_at: Optional[datetime] = None

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


class Cart(FirestoreDocument):
    """
    carts/{uid}: the one persisted copy of a user's cart. The document ID is
    the owner's uid and the totals are derived from ``items`` on every change.
    """

    user_id: str
    items: List[CartItem] = Field(default_factory=list)
    total_items: int = 0
    total_amount: float = 0
    currency: str = "SLE"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Settings:
        name = "carts"

    @classmethod
    def empty(cls, user_id: str) -> "Cart":
        return cls(id=user_id, user_id=user_id)

    def _find(self, product_id: str) -> Optional[CartItem]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def recalculate(self) -> "Cart":
        self.total_items = sum(item.quantity for item in self.items)
        self.total_amount = round(sum(item.line_total for item in self.items), 2)
        return self

    def add_item(self, item: CartItem) -> "Cart":
        """Merge into an existing line for the same product, or append."""
        existing = self._find(item.product_id)
        if existing is not None:
            existing.quantity += item.quantity
        else:
            if item.added_at is None:
                item.added_at = utcnow()
            self.items.append(item)
        return self.recalculate()

    def remove_item(self, product_id: str) -> "Cart":
        self.items = [item for item in self.items if item.product_id != product_id]
        return self.recalculate()

    def set_quantity(self, product_id: str, quantity: int) -> "Cart":
        if quantity <= 0:
            return self.remove_item(product_id)
        item = self._find(product_id)
        if item is not None:
            item.quantity = quantity
        return self.recalculate()

    def clear(self) -> "Cart":
        self.items = []
        return self.recalculate()

    def quantity_of(self, product_id: str) -> int:
        item = self._find(product_id)
        return item.quantity if item else 0

    def contains(self, product_id: str) -> bool:
        return self._find(product_id) is not None
