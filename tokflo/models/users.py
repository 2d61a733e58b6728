from datetime import datetime
from typing import List, Optional

from ..pydantic_compat import CamelModel, Field
from ..firestore_model import FirestoreDocument


class SocialLinks(CamelModel):
    twitter: str = ""
    instagram: str = ""
    linkedin: str = ""
    youtube: str = ""


class Preferences(CamelModel):
    email_notifications: bool = True
    push_notifications: bool = True
    marketing_emails: bool = False
    theme: str = "light"


class User(FirestoreDocument):
    """users/{uid}: profile, store flag and the denormalized social counters."""

    uid: str
    email: Optional[str] = None
    username: Optional[str] = None
    display_name: str = ""
    photo_url: str = Field(default="", alias="photoURL")
    bio: str = ""
    location: str = ""
    website: str = ""
    phone_number: str = ""
    social_links: SocialLinks = Field(default_factory=SocialLinks)
    preferences: Preferences = Field(default_factory=Preferences)

    has_store: bool = False
    store_id: Optional[str] = None
    wishlist: List[str] = Field(default_factory=list)
    recently_viewed: List[str] = Field(default_factory=list)

    total_posts: int = 0
    total_likes: int = 0
    total_followers: int = 0
    total_following: int = 0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    class Settings:
        name = "users"


class Follower(FirestoreDocument):
    """users/{target}/followers/{follower}; ``user_id`` is the follower."""

    user_id: str
    timestamp: Optional[datetime] = None

    class Settings:
        name = "followers"
        parent = User


class Following(FirestoreDocument):
    """users/{follower}/following/{target}; ``user_id`` is the followed user."""

    user_id: str
    timestamp: Optional[datetime] = None

    class Settings:
        name = "following"
        parent = User
