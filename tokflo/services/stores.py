"""
Stores, products and product reviews.

Listing queries use equality filters only and sort newest-first in Python,
so they run without composite indexes.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from ..enums import BatchOperation
from ..exceptions import NotFoundError, PermissionDeniedError, ValidationError
from ..models import Product, ProductReview, Store, User
from .profiles import require_user

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

# Fields callers may not set through the create and update calls
_PROTECTED_FIELDS = {"id", "owner_id", "store_id", "created_at", "total_products", "rating", "total_reviews"}
# Derived from stock
_COMPUTED_FIELDS = {"is_in_stock"}


def _newest_first(docs: Iterable[Any]) -> List[Any]:
    return sorted(docs, key=lambda doc: doc.created_at or _EPOCH, reverse=True)


def _check_changes(changes: dict) -> None:
    protected = (_PROTECTED_FIELDS | _COMPUTED_FIELDS) & set(changes)
    if protected:
        raise ValidationError(f"Fields cannot be changed: {', '.join(sorted(protected))}")


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------
async def create_store(owner_id: str, name: str, /, **details: Any) -> Store:
    """
    Open the owner's store and flag their profile with ``hasStore``.
    Each user owns at most one store.
    """
    _check_changes(details)
    if not (name or "").strip():
        raise ValidationError("Store name is required")
    owner = await require_user(owner_id)
    if owner.has_store or await get_user_store(owner_id) is not None:
        raise ValidationError("This user already has a store")

    store = Store(owner_id=owner_id, name=name.strip(), **details)
    await store.save()
    await owner.apply(values={"has_store": True, "store_id": store.id})
    logger.info(f"Store created: {store.id} owner={owner_id}")
    return store


async def get_store(store_id: str) -> Optional[Store]:
    return await Store.get(store_id)


async def require_store(store_id: str) -> Store:
    store = await get_store(store_id)
    if store is None:
        raise NotFoundError(f"Store {store_id} not found")
    return store


async def get_user_store(owner_id: str) -> Optional[Store]:
    return await Store.find_one(filters=[Store.owner_id == owner_id])


async def update_store(store_id: str, owner_id: str, /, **changes: Any) -> Store:
    _check_changes(changes)
    store = await require_store(store_id)
    if store.owner_id != owner_id:
        raise PermissionDeniedError("Only the owner can edit this store")
    return await store.apply(values=changes)


async def list_active_stores(limit: int = 20) -> List[Store]:
    stores = await Store.find_all(filters=[Store.is_active == True], limit=limit)  # noqa: E712
    return _newest_first(stores)


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------
async def create_product(
    store_id: str,
    owner_id: str,
    name: str,
    price: float,
    /,
    stock: int = 0,
    **details: Any,
) -> Product:
    _check_changes(details)
    if not (name or "").strip():
        raise ValidationError("Product name is required")
    if price is None or price < 0:
        raise ValidationError("Price must be zero or more")
    if stock < 0:
        raise ValidationError("Stock cannot be negative")

    store = await require_store(store_id)
    if store.owner_id != owner_id:
        raise PermissionDeniedError("Only the store owner can add products")

    product = Product(
        store_id=store_id,
        owner_id=owner_id,
        name=name.strip(),
        price=price,
        stock=stock,
        **details,
    )
    await Product.batch_write([
        (BatchOperation.CREATE, product),
        (BatchOperation.UPDATE, store, Store.build_changes(increments={"total_products": 1})),
    ])
    logger.info(f"Product created: {product.id} store={store_id}")
    return product


async def get_product(product_id: str) -> Optional[Product]:
    return await Product.get(product_id)


async def require_product(product_id: str) -> Product:
    product = await get_product(product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


async def _owned_product(product_id: str, owner_id: str) -> Product:
    product = await require_product(product_id)
    if product.owner_id != owner_id:
        raise PermissionDeniedError("Only the owner can change this product")
    return product


async def list_store_products(store_id: str, limit: int = 20) -> List[Product]:
    products = await Product.find_all(
        filters=[Product.store_id == store_id, Product.is_active == True],  # noqa: E712
        limit=limit,
    )
    return _newest_first(products)


async def list_active_products(limit: int = 20, category: Optional[str] = None) -> List[Product]:
    filters = [Product.is_active == True]  # noqa: E712
    if category:
        filters.append(Product.category == category)
    return _newest_first(await Product.find_all(filters=filters, limit=limit))


async def search_products(term: str, category: Optional[str] = None, limit: int = 20) -> List[Product]:
    """Case-insensitive match on name, description or tags."""
    products = await list_active_products(limit=limit, category=category)
    term = (term or "").strip()
    if term:
        products = [product for product in products if product.matches(term)]
    return products


async def update_product(product_id: str, owner_id: str, /, **changes: Any) -> Product:
    _check_changes(changes)
    product = await _owned_product(product_id, owner_id)
    if "stock" in changes:
        changes["is_in_stock"] = changes["stock"] > 0
    return await product.apply(values=changes)


async def update_product_stock(product_id: str, new_stock: int) -> Product:
    if new_stock < 0:
        raise ValidationError("Stock cannot be negative")
    product = await require_product(product_id)
    return await product.apply(values={"stock": new_stock, "is_in_stock": new_stock > 0})


async def increment_product_views(product_id: str) -> None:
    await Product.patch(product_id, increments={"views": 1})


async def delete_product(product_id: str, owner_id: str) -> None:
    product = await _owned_product(product_id, owner_id)
    await product.delete_children(ProductReview)

    operations = [(BatchOperation.DELETE, product)]
    store = await get_store(product.store_id)
    if store is not None:
        operations.append(
            (BatchOperation.UPDATE, store, Store.build_changes(increments={"total_products": -1}))
        )
    await Product.batch_write(operations)
    logger.info(f"Product deleted: {product_id}")


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------
async def add_product_review(
    product_id: str,
    user: User,
    rating: int,
    comment: str = "",
    title: str = "",
) -> ProductReview:
    """
    One review per user; the document ID is the reviewer's uid. The
    product's average ``rating`` and ``totalReviews`` are recomputed.
    """
    if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be a whole number from 1 to 5")
    product = await require_product(product_id)
    if await product.subcollection(ProductReview).exists(user.id):
        raise ValidationError("You have already reviewed this product")

    review = ProductReview(
        id=user.id,
        product_id=product_id,
        user_id=user.id,
        user_name=user.display_name or user.username or "",
        user_avatar=user.photo_url,
        rating=rating,
        title=title,
        comment=comment,
    )
    await review.put(parent=product)

    reviews = await list_product_reviews(product_id)
    average = round(sum(r.rating for r in reviews) / len(reviews), 1)
    await product.apply(values={"rating": average, "total_reviews": len(reviews)})
    return review


async def list_product_reviews(product_id: str) -> List[ProductReview]:
    product = await require_product(product_id)
    return _newest_first(await product.subcollection(ProductReview).find_all())
