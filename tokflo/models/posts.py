from datetime import datetime
from typing import Optional

from ..enums import CommentType
from ..firestore_model import FirestoreDocument


class Post(FirestoreDocument):
    caption: str = ""
    video: str
    topic: str = "general"
    song_name: str = ""
    user_id: str
    username: str = ""
    profile_image: str = ""
    company: str = ""
    timestamp: Optional[datetime] = None
    likes_count: int = 0
    comments_count: int = 0

    class Settings:
        name = "posts"


class Like(FirestoreDocument):
    """posts/{postId}/likes/{uid}. The document ID is the liker's uid."""

    username: str = ""
    timestamp: Optional[datetime] = None

    class Settings:
        name = "likes"
        parent = Post


class Bookmark(FirestoreDocument):
    username: str = ""
    timestamp: Optional[datetime] = None

    class Settings:
        name = "bookmarks"
        parent = Post


class Share(FirestoreDocument):
    user_id: Optional[str] = None
    platform: str = "link"
    timestamp: Optional[datetime] = None

    class Settings:
        name = "shares"
        parent = Post


class Comment(FirestoreDocument):
    """
    Text comments keep the body in ``comment``; voice comments carry
    ``audio_data`` (a data URL or blob URL) and a ``duration`` in seconds.
    """

    user_id: Optional[str] = None
    username: str = ""
    profile_img: str = ""
    type: CommentType = CommentType.TEXT
    comment: Optional[str] = None
    audio_data: Optional[str] = None
    duration: Optional[float] = None
    likes_count: int = 0
    replies_count: int = 0
    timestamp: Optional[datetime] = None

    class Settings:
        name = "comments"
        parent = Post


class CommentLike(FirestoreDocument):
    username: str = ""
    timestamp: Optional[datetime] = None

    class Settings:
        name = "likes"
        parent = Comment


class Reply(FirestoreDocument):
    user_id: Optional[str] = None
    username: str = ""
    profile_img: str = ""
    type: CommentType = CommentType.TEXT
    reply: Optional[str] = None
    audio_data: Optional[str] = None
    duration: Optional[float] = None
    timestamp: Optional[datetime] = None

    class Settings:
        name = "replies"
        parent = Comment
