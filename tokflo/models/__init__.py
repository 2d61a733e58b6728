from .carts import Cart, CartItem
from .orders import (
    CheckoutCartItem,
    CustomerInfo,
    DeliveryAddress,
    LineItem,
    Order,
    OrderItem,
    PaymentDetails,
    ShippingAddress,
)
from .payments import (
    Payment,
    PaymentSettings,
    Payout,
    PayoutDestination,
    SellerInfo,
    SellerPayoutSummary,
    SellerProfile,
    SellerStats,
    ShippingRates,
    StoreConfig,
    Transaction,
    WebhookEvent,
)
from .posts import Bookmark, Comment, CommentLike, Like, Post, Reply, Share
from .stores import Product, ProductReview, Store
from .users import Follower, Following, Preferences, SocialLinks, User

# Every Firestore-backed document class, registered by init_tokflo()
DOCUMENT_MODELS = [
    User,
    Follower,
    Following,
    Post,
    Like,
    Bookmark,
    Share,
    Comment,
    CommentLike,
    Reply,
    Store,
    Product,
    ProductReview,
    Cart,
    Order,
    Payment,
    Payout,
    SellerPayoutSummary,
    Transaction,
    WebhookEvent,
    SellerProfile,
    StoreConfig,
]

__all__ = [model.__name__ for model in DOCUMENT_MODELS] + [
    "CartItem",
    "CheckoutCartItem",
    "CustomerInfo",
    "DeliveryAddress",
    "LineItem",
    "OrderItem",
    "PaymentDetails",
    "PaymentSettings",
    "PayoutDestination",
    "Preferences",
    "SellerInfo",
    "SellerStats",
    "ShippingAddress",
    "ShippingRates",
    "SocialLinks",
    "DOCUMENT_MODELS",
]
