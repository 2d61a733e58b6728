import logging
from typing import List, Optional

from ..enums import BatchOperation, OrderByDirection
from ..exceptions import NotFoundError, PermissionDeniedError, ValidationError
from ..firestore_model import utcnow
from ..models import Bookmark, Comment, Like, Post, Share, User
from ..pydantic_compat import BaseModel, Field
from .interactions import delete_comment_tree

logger = logging.getLogger(__name__)


class FeedPage(BaseModel):
    posts: List[Post] = Field(default_factory=list)
    next_cursor: Optional[str] = None


def _newest_first():
    return (Post.timestamp, OrderByDirection.DESCENDING)


async def create_post(
    author: User,
    caption: str,
    video_url: str,
    topic: str = "general",
    song_name: str = "",
    company: str = "",
) -> Post:
    """Publish a post whose video is already uploaded at ``video_url``."""
    if not video_url:
        raise ValidationError("A post needs a video URL")

    post = Post(
        caption=(caption or "").strip(),
        video=video_url,
        topic=topic or "general",
        song_name=song_name,
        user_id=author.id,
        username=author.username or author.display_name,
        profile_image=author.photo_url,
        company=company,
        timestamp=utcnow(),
    )
    await Post.batch_write([
        (BatchOperation.CREATE, post),
        (BatchOperation.UPDATE, author, User.build_changes(increments={"total_posts": 1})),
    ])
    author.total_posts += 1
    logger.info(f"Post created: {post.id} by {author.id}")
    return post


async def get_post(post_id: str) -> Post:
    post = await Post.get(post_id)
    if post is None:
        raise NotFoundError(f"Post {post_id} not found")
    return post


async def get_feed(limit: int = 10, cursor: Optional[str] = None) -> FeedPage:
    """
    One page of the global feed, newest first. Pass the previous page's
    ``next_cursor`` to continue; it is ``None`` on the last page.
    """
    if limit < 1:
        raise ValidationError("Feed limit must be at least 1")
    posts = await Post.find_all(order_by=_newest_first(), limit=limit + 1, start_after=cursor)
    if len(posts) > limit:
        posts = posts[:limit]
        return FeedPage(posts=posts, next_cursor=posts[-1].id)
    return FeedPage(posts=posts)


async def get_user_posts(user_id: str, limit: Optional[int] = None) -> List[Post]:
    return await Post.find_all(
        filters=[Post.user_id == user_id],
        order_by=_newest_first(),
        limit=limit,
    )


async def get_posts_by_topic(topic: str, limit: int = 20) -> List[Post]:
    return await Post.find_all(
        filters=[Post.topic == topic],
        order_by=_newest_first(),
        limit=limit,
    )


async def search_posts(prefix: str, limit: int = 20) -> List[Post]:
    """Posts whose caption starts with ``prefix``."""
    prefix = (prefix or "").strip()
    if not prefix:
        return []
    return await Post.find_all(filters=Post.caption.startswith(prefix), order_by=Post.caption, limit=limit)


async def delete_post(post_id: str, user_id: str) -> None:
    """Remove a post and everything stored under it. Owner only."""
    post = await get_post(post_id)
    if post.user_id != user_id:
        raise PermissionDeniedError("Only the author can delete this post")

    for comment in await Comment.find_all(parent=post):
        await delete_comment_tree(comment)
    for child_cls in (Like, Bookmark, Share):
        await post.delete_children(child_cls)

    operations = [(BatchOperation.DELETE, post)]
    author = await User.get(user_id)
    if author is not None:
        operations.append(
            (BatchOperation.UPDATE, author, User.build_changes(increments={"total_posts": -1}))
        )
    await Post.batch_write(operations)
    logger.info(f"Post deleted: {post_id}")
