"""
Likes, comments, replies, bookmarks and shares on posts.

Every edge document is written in the same batch as the counter it moves,
so ``likesCount`` and ``commentsCount`` never drift from the subcollections.
"""
import logging
from typing import List, Optional

from ..enums import BatchOperation, CommentType, OrderByDirection
from ..exceptions import NotFoundError, PermissionDeniedError, ValidationError
from ..firestore_model import utcnow
from ..models import Bookmark, Comment, CommentLike, Like, Post, Reply, Share, User

logger = logging.getLogger(__name__)


async def _require_post(post_id: str) -> Post:
    post = await Post.get(post_id)
    if post is None:
        raise NotFoundError(f"Post {post_id} not found")
    return post


async def _require_comment(post: Post, comment_id: str) -> Comment:
    comment = await Comment.get(comment_id, parent=post)
    if comment is None:
        raise NotFoundError(f"Comment {comment_id} not found on post {post.id}")
    return comment


def _message_fields(text: Optional[str], audio_data: Optional[str], duration: Optional[float]) -> dict:
    """Validate a text or voice message body."""
    if audio_data:
        return {"type": CommentType.VOICE, "audio_data": audio_data, "duration": duration}
    text = (text or "").strip()
    if not text:
        raise ValidationError("A comment needs text or a voice recording")
    return {"type": CommentType.TEXT, "text": text}


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------
async def toggle_like(post_id: str, user: User) -> bool:
    """Like or unlike; returns ``True`` when the post is now liked."""
    post = await _require_post(post_id)
    existing = await Like.get(user.id, parent=post)

    if existing is not None:
        await Post.batch_write([
            (BatchOperation.DELETE, existing),
            (BatchOperation.UPDATE, post, Post.build_changes(increments={"likes_count": -1})),
        ])
        logger.debug(f"Unlike: post={post_id} user={user.id}")
        return False

    like = Like(id=user.id, username=user.display_name or user.username or "", timestamp=utcnow())
    like.bind_parent(post)
    await Post.batch_write([
        (BatchOperation.CREATE, like),
        (BatchOperation.UPDATE, post, Post.build_changes(increments={"likes_count": 1})),
    ])
    logger.debug(f"Like: post={post_id} user={user.id}")
    return True


async def has_liked(post_id: str, user_id: str) -> bool:
    post = await _require_post(post_id)
    return await Like.exists(user_id, parent=post)


async def count_likes(post_id: str) -> int:
    post = await _require_post(post_id)
    return await post.subcollection(Like).count()


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
async def add_comment(
    post_id: str,
    user: User,
    text: Optional[str] = None,
    audio_data: Optional[str] = None,
    duration: Optional[float] = None,
) -> Comment:
    body = _message_fields(text, audio_data, duration)
    post = await _require_post(post_id)

    comment = Comment(
        user_id=user.id,
        username=user.display_name or user.username or "",
        profile_img=user.photo_url,
        type=body["type"],
        comment=body.get("text"),
        audio_data=body.get("audio_data"),
        duration=body.get("duration"),
        timestamp=utcnow(),
    )
    comment.bind_parent(post)
    await Post.batch_write([
        (BatchOperation.CREATE, comment),
        (BatchOperation.UPDATE, post, Post.build_changes(increments={"comments_count": 1})),
    ])
    logger.debug(f"Comment added: post={post_id} comment={comment.id}")
    return comment


async def list_comments(post_id: str, limit: Optional[int] = None) -> List[Comment]:
    post = await _require_post(post_id)
    return await post.subcollection(Comment).find_all(
        order_by=(Comment.timestamp, OrderByDirection.DESCENDING),
        limit=limit,
    )


async def delete_comment_tree(comment: Comment) -> None:
    """Delete a comment together with its replies and likes."""
    await comment.delete_children(Reply)
    await comment.delete_children(CommentLike)
    await comment.delete()


async def delete_comment(post_id: str, comment_id: str, user_id: str) -> None:
    post = await _require_post(post_id)
    comment = await _require_comment(post, comment_id)
    if comment.user_id != user_id:
        raise PermissionDeniedError("Only the author can delete this comment")

    await comment.delete_children(Reply)
    await comment.delete_children(CommentLike)
    await Post.batch_write([
        (BatchOperation.DELETE, comment),
        (BatchOperation.UPDATE, post, Post.build_changes(increments={"comments_count": -1})),
    ])
    logger.debug(f"Comment deleted: post={post_id} comment={comment_id}")


# ---------------------------------------------------------------------------
# Replies
# ---------------------------------------------------------------------------
async def add_reply(
    post_id: str,
    comment_id: str,
    user: User,
    text: Optional[str] = None,
    audio_data: Optional[str] = None,
    duration: Optional[float] = None,
) -> Reply:
    body = _message_fields(text, audio_data, duration)
    post = await _require_post(post_id)
    comment = await _require_comment(post, comment_id)

    reply = Reply(
        user_id=user.id,
        username=user.display_name or user.username or "",
        profile_img=user.photo_url,
        type=body["type"],
        reply=body.get("text"),
        audio_data=body.get("audio_data"),
        duration=body.get("duration"),
        timestamp=utcnow(),
    )
    reply.bind_parent(comment)
    await Comment.batch_write([
        (BatchOperation.CREATE, reply),
        (BatchOperation.UPDATE, comment, Comment.build_changes(increments={"replies_count": 1})),
    ])
    return reply


async def list_replies(post_id: str, comment_id: str) -> List[Reply]:
    """Replies in conversation order, oldest first."""
    post = await _require_post(post_id)
    comment = await _require_comment(post, comment_id)
    return await comment.subcollection(Reply).find_all(
        order_by=(Reply.timestamp, OrderByDirection.ASCENDING),
    )


async def delete_reply(post_id: str, comment_id: str, reply_id: str, user_id: str) -> None:
    post = await _require_post(post_id)
    comment = await _require_comment(post, comment_id)
    reply = await Reply.get(reply_id, parent=comment)
    if reply is None:
        raise NotFoundError(f"Reply {reply_id} not found")
    if reply.user_id != user_id:
        raise PermissionDeniedError("Only the author can delete this reply")

    await Comment.batch_write([
        (BatchOperation.DELETE, reply),
        (BatchOperation.UPDATE, comment, Comment.build_changes(increments={"replies_count": -1})),
    ])


async def toggle_comment_like(post_id: str, comment_id: str, user: User) -> bool:
    post = await _require_post(post_id)
    comment = await _require_comment(post, comment_id)
    existing = await CommentLike.get(user.id, parent=comment)

    if existing is not None:
        await Comment.batch_write([
            (BatchOperation.DELETE, existing),
            (BatchOperation.UPDATE, comment, Comment.build_changes(increments={"likes_count": -1})),
        ])
        return False

    like = CommentLike(id=user.id, username=user.display_name or user.username or "", timestamp=utcnow())
    like.bind_parent(comment)
    await Comment.batch_write([
        (BatchOperation.CREATE, like),
        (BatchOperation.UPDATE, comment, Comment.build_changes(increments={"likes_count": 1})),
    ])
    return True


# ---------------------------------------------------------------------------
# Bookmarks and shares
# ---------------------------------------------------------------------------
async def toggle_bookmark(post_id: str, user: User) -> bool:
    post = await _require_post(post_id)
    existing = await Bookmark.get(user.id, parent=post)
    if existing is not None:
        await existing.delete()
        return False
    bookmark = Bookmark(id=user.id, username=user.display_name or user.username or "", timestamp=utcnow())
    await bookmark.put(parent=post)
    return True


async def record_share(post_id: str, user_id: Optional[str] = None, platform: str = "link") -> Share:
    post = await _require_post(post_id)
    share = Share(user_id=user_id, platform=platform, timestamp=utcnow())
    return await share.save(parent=post)


async def count_shares(post_id: str) -> int:
    post = await _require_post(post_id)
    return await post.subcollection(Share).count()
