import logging
from typing import List

from ..enums import BatchOperation, OrderByDirection
from ..exceptions import ValidationError
from ..firestore_model import utcnow
from ..models import Follower, Following, User
from .profiles import require_user

logger = logging.getLogger(__name__)


async def is_following(follower_id: str, target_id: str) -> bool:
    follower = await require_user(follower_id)
    return await follower.subcollection(Following).exists(target_id)


async def follow(follower: User, target_id: str) -> bool:
    """
    Write both edges and move both counters. Returns ``False`` when the
    edge already existed.
    """
    if follower.id == target_id:
        raise ValidationError("Users cannot follow themselves")
    target = await require_user(target_id)
    if await follower.subcollection(Following).exists(target_id):
        return False

    now = utcnow()
    following = Following(id=target_id, user_id=target_id, timestamp=now).bind_parent(follower)
    follower_edge = Follower(id=follower.id, user_id=follower.id, timestamp=now).bind_parent(target)
    await User.batch_write([
        (BatchOperation.CREATE, following),
        (BatchOperation.CREATE, follower_edge),
        (BatchOperation.UPDATE, follower, User.build_changes(increments={"total_following": 1})),
        (BatchOperation.UPDATE, target, User.build_changes(increments={"total_followers": 1})),
    ])
    logger.debug(f"Follow: {follower.id} -> {target_id}")
    return True


async def unfollow(follower_id: str, target_id: str) -> bool:
    """Remove both edges; ``False`` when there was nothing to remove."""
    follower = await require_user(follower_id)
    following = await Following.get(target_id, parent=follower)
    if following is None:
        return False

    target = await User.get(target_id)
    operations = [(BatchOperation.DELETE, following)]
    operations.append((BatchOperation.UPDATE, follower, User.build_changes(increments={"total_following": -1})))
    if target is not None:
        operations.append((BatchOperation.DELETE, Follower(id=follower_id, user_id=follower_id).bind_parent(target)))
        operations.append((BatchOperation.UPDATE, target, User.build_changes(increments={"total_followers": -1})))
    await User.batch_write(operations)
    logger.debug(f"Unfollow: {follower_id} -> {target_id}")
    return True


async def toggle_follow(follower: User, target_id: str) -> bool:
    """Returns ``True`` when ``follower`` now follows ``target_id``."""
    if await is_following(follower.id, target_id):
        await unfollow(follower.id, target_id)
        return False
    await follow(follower, target_id)
    return True


async def list_followers(user_id: str) -> List[Follower]:
    user = await require_user(user_id)
    return await user.subcollection(Follower).find_all(
        order_by=(Follower.timestamp, OrderByDirection.DESCENDING)
    )


async def list_following(user_id: str) -> List[Following]:
    user = await require_user(user_id)
    return await user.subcollection(Following).find_all(
        order_by=(Following.timestamp, OrderByDirection.DESCENDING)
    )
