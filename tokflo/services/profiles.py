import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..exceptions import NotFoundError, ValidationError
from ..firestore_model import utcnow
from ..models import Product, User
from ..pydantic_compat import get_model_fields

logger = logging.getLogger(__name__)


async def create_user_profile(
    uid: str,
    email: Optional[str],
    display_name: str = "",
    photo_url: str = "",
    phone_number: str = "",
    username: Optional[str] = None,
) -> User:
    """
    Create ``users/{uid}`` on first sign-in. An existing profile is
    returned untouched.
    """
    if not uid:
        raise ValueError("User ID is required")

    existing = await User.get(uid)
    if existing is not None:
        return existing

    now = utcnow()
    user = User(
        id=uid,
        uid=uid,
        email=email,
        username=username,
        display_name=display_name or "",
        photo_url=photo_url or "",
        phone_number=phone_number or "",
        last_login_at=now,
    )
    await user.put()
    logger.info(f"User profile created: {uid}")
    return user


async def get_user_profile(uid: str) -> Optional[User]:
    if not uid:
        raise ValueError("User ID is required")
    return await User.get(uid)


async def require_user(uid: str) -> User:
    user = await get_user_profile(uid)
    if user is None:
        raise NotFoundError(f"User {uid} not found")
    return user


async def update_user_profile(uid: str, **updates: Any) -> Dict[str, Any]:
    """Merge ``updates`` (python field names) into the profile document."""
    if not uid:
        raise ValueError("User ID is required")
    unknown = set(updates) - set(get_model_fields(User)) - {"id", "uid"}
    if unknown:
        raise ValidationError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
    changes = await User.patch(uid, values=updates, merge=True)
    logger.debug(f"User profile updated: {uid}")
    return changes


async def update_last_login(uid: str) -> None:
    if not uid:
        return
    await User.patch(uid, values={"last_login_at": utcnow()}, merge=True)


async def search_users(prefix: str, limit: int = 20) -> List[User]:
    """Users whose username starts with ``prefix`` (case-sensitive)."""
    prefix = (prefix or "").strip()
    if not prefix:
        return []
    return await User.find_all(
        filters=User.username.startswith(prefix),
        order_by=User.username,
        limit=limit,
    )


# ---------------------------------------------------------------------------
# Wishlist
# ---------------------------------------------------------------------------
async def add_to_wishlist(uid: str, product_id: str) -> None:
    await User.patch(uid, array_union={"wishlist": [product_id]})


async def remove_from_wishlist(uid: str, product_id: str) -> None:
    await User.patch(uid, array_remove={"wishlist": [product_id]})


async def get_wishlist_products(uid: str) -> List[Product]:
    """Wishlist products in wishlist order; deleted products are skipped."""
    user = await require_user(uid)
    ids = list(dict.fromkeys(user.wishlist))
    products = await asyncio.gather(*(Product.get(pid) for pid in ids))
    return [product for product in products if product is not None]
