from datetime import datetime
from typing import Any, Dict, List, Optional

from ..firestore_model import FirestoreDocument
from ..pydantic_compat import CamelModel, Field, before_validator


class Address(CamelModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""


class StoreContact(CamelModel):
    email: str = ""
    phone: str = ""
    address: Address = Field(default_factory=Address)


class StoreSettings(CamelModel):
    allow_reviews: bool = True
    auto_approve_products: bool = True
    shipping_options: List[str] = Field(default_factory=list)


class Store(FirestoreDocument):
    owner_id: str
    name: str
    description: str = ""
    logo: str = ""
    banner: str = ""
    category: str = ""
    is_active: bool = True
    rating: float = 0
    total_reviews: int = 0
    total_products: int = 0
    total_sales: int = 0
    contact: StoreContact = Field(default_factory=StoreContact)
    settings: StoreSettings = Field(default_factory=StoreSettings)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Settings:
        name = "stores"


class Dimensions(CamelModel):
    length: float = 0
    width: float = 0
    height: float = 0


class Product(FirestoreDocument):
    store_id: str
    owner_id: str
    name: str
    description: str = ""
    category: str = ""
    subcategory: str = ""
    price: float
    original_price: Optional[float] = None
    currency: str = "SLE"
    images: List[str] = Field(default_factory=list)
    thumbnail: str = ""

    stock: int = 0
    sku: str = ""
    is_in_stock: bool = False
    low_stock_threshold: int = 5

    specifications: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    weight: Optional[float] = None
    dimensions: Optional[Dimensions] = None

    is_active: bool = True
    is_featured: bool = False
    rating: float = 0
    total_reviews: int = 0
    total_sales: int = 0
    views: int = 0
    likes: int = 0

    seo_title: str = ""
    seo_description: str = ""
    seo_keywords: List[str] = Field(default_factory=list)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Settings:
        name = "products"

    @before_validator
    def derive_in_stock(cls, values):
        if not isinstance(values, dict):
            return values
        if values.get("isInStock") is None and values.get("is_in_stock") is None:
            values = {**values, "isInStock": (values.get("stock") or 0) > 0}
        return values

    def matches(self, term: str) -> bool:
        """Case-insensitive match against name, description and tags."""
        needle = term.lower()
        return (
            needle in self.name.lower()
            or needle in self.description.lower()
            or any(needle in tag.lower() for tag in self.tags)
        )


class ProductReview(FirestoreDocument):
    """products/{productId}/reviews/{id}"""

    product_id: str
    user_id: str
    user_name: str = ""
    user_avatar: str = ""
    rating: int
    title: str = ""
    comment: str = ""
    images: List[str] = Field(default_factory=list)
    is_verified_purchase: bool = False
    helpful_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Settings:
        name = "reviews"
        parent = Product
