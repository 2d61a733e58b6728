import logging

from ..exceptions import ValidationError
from ..models import Cart, CartItem
from .stores import require_product

logger = logging.getLogger(__name__)


async def get_cart(uid: str) -> Cart:
    """The user's cart, or an empty unsaved one."""
    cart = await Cart.get(uid)
    return cart if cart is not None else Cart.empty(uid)


async def add_to_cart(uid: str, product_id: str, quantity: int = 1) -> Cart:
    if quantity <= 0:
        raise ValidationError("Quantity must be at least 1")
    product = await require_product(product_id)
    if not product.is_active or not product.is_in_stock:
        raise ValidationError("Product not available")

    cart = await get_cart(uid)
    if cart.quantity_of(product_id) + quantity > product.stock:
        raise ValidationError("Insufficient stock")

    cart.add_item(CartItem(
        product_id=product.id,
        store_id=product.store_id,
        seller_id=product.owner_id,
        name=product.name,
        price=product.price,
        quantity=quantity,
        thumbnail=product.thumbnail or (product.images[0] if product.images else ""),
        category=product.category,
    ))
    await cart.put()
    logger.debug(f"Cart {uid}: +{quantity} x {product_id}")
    return cart


async def remove_from_cart(uid: str, product_id: str) -> Cart:
    cart = await get_cart(uid)
    cart.remove_item(product_id)
    return await cart.put()


async def update_cart_item_quantity(uid: str, product_id: str, quantity: int) -> Cart:
    """Set a line's quantity; zero or less removes it."""
    cart = await get_cart(uid)
    if quantity > 0 and cart.contains(product_id):
        product = await require_product(product_id)
        if quantity > product.stock:
            raise ValidationError("Insufficient stock")
    cart.set_quantity(product_id, quantity)
    return await cart.put()


async def clear_cart(uid: str) -> Cart:
    cart = await get_cart(uid)
    cart.clear()
    return await cart.put()
