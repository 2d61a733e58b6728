import os
from datetime import datetime
from typing import Any, AsyncGenerator, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.cloud.firestore_v1 import ArrayUnion, Increment

from tokflo import BatchOperation, FirestoreDB, FirestoreDocument, OrderByDirection, init_tokflo
from tokflo.enums import FirestoreOperators, OrderStatus
from tokflo.exceptions import ValidationError
from tokflo.firestore_fields import PREFIX_SENTINEL
from tokflo.models import Comment, Order, Post, Reply, SellerProfile, User
from tokflo import pydantic_compat
from tokflo.pydantic_compat import BaseModel, CamelModel, before_validator


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def mock_firestore_client():
    return MagicMock()


@pytest.fixture
def mock_db(mock_firestore_client):
    db = FirestoreDB.__new__(FirestoreDB)
    db.project_id = "test-project"
    db.database = None
    db.credentials = None
    db._emulator_host = None
    db.client = mock_firestore_client
    init_tokflo(db)
    return db


def make_post(pid="post_1"):
    return Post(id=pid, video="https://cdn.example/v.mp4", user_id="alice", caption="Hi")


def make_comment(cid="comment_1", post=None):
    comment = Comment(id=cid, user_id="bob", comment="Nice")
    return comment.bind_parent(post or make_post())


async def mock_stream(docs: List[Any]) -> AsyncGenerator[Any, None]:
    for doc in docs:
        yield doc


def snapshot(doc_id: str, data: dict, exists: bool = True):
    snap = MagicMock()
    snap.id = doc_id
    snap.exists = exists
    snap.to_dict.return_value = data
    return snap


# -----------------------------------------------------------------------------
# FirestoreDB
# -----------------------------------------------------------------------------
def test_firestore_db_emulator_toggle(monkeypatch):
    monkeypatch.setattr("tokflo.firestore_client.AsyncClient", MagicMock())
    monkeypatch.delenv("FIRESTORE_EMULATOR_HOST", raising=False)

    db = FirestoreDB(project_id="test-project")
    assert db.project_id == "test-project"
    assert db.client is not None

    db.use_emulator("localhost:9090")
    assert db._emulator_host == "localhost:9090"
    assert os.environ["FIRESTORE_EMULATOR_HOST"] == "localhost:9090"

    db.clear_emulator()
    assert db._emulator_host is None
    assert "FIRESTORE_EMULATOR_HOST" not in os.environ


def test_firestore_db_mock(monkeypatch):
    monkeypatch.setattr("tokflo.firestore_client.AsyncClient", MagicMock())
    db = FirestoreDB(project_id="test-project")
    db.mock_firestore_for_tests()
    assert isinstance(db.client, MagicMock)


def test_uninitialized_model_raises():
    class Scratch(FirestoreDocument):
        class Settings:
            name = "scratch"

        note: str = ""

    with pytest.raises(RuntimeError, match="must be initialized"):
        Scratch._client()


def test_before_validator_sees_raw_input():
    class Listing(CamelModel):
        stock: int = 0
        label: str = ""

        @before_validator
        def default_label(cls, values):
            if isinstance(values, dict) and not values.get("label"):
                values = {**values, "label": f"{values.get('stock', 0)} left"}
            return values

    assert Listing(stock=3).label == "3 left"
    assert Listing(stock=3, label="few").label == "few"
    assert set(pydantic_compat.__all__) <= set(dir(pydantic_compat))
    assert not hasattr(pydantic_compat, "model_copy_compat")


# -----------------------------------------------------------------------------
# Field descriptors
# -----------------------------------------------------------------------------
def test_field_descriptors_use_stored_names(mock_db):
    assert (Post.user_id == "alice") == ("userId", FirestoreOperators.EQ, "alice")
    assert (User.photo_url == "x") == ("photoURL", FirestoreOperators.EQ, "x")
    assert str(Post.id) == "__name__"
    assert (Post.likes_count > 3) == ("likesCount", FirestoreOperators.GT, 3)


def test_startswith_builds_range(mock_db):
    assert User.username.startswith("al") == [
        ("username", FirestoreOperators.GTE, "al"),
        ("username", FirestoreOperators.LTE, "al" + PREFIX_SENTINEL),
    ]


def test_instance_access_returns_value(mock_db):
    post = make_post()
    assert post.user_id == "alice"
    assert post.likes_count == 0


# -----------------------------------------------------------------------------
# Serialization
# -----------------------------------------------------------------------------
def test_to_firestore_uses_camel_case_and_enum_values(mock_db):
    order = Order(id="o1", order_id="o1", status=OrderStatus.PAID, total_amount=10.5)
    data = order.to_firestore()
    assert "id" not in data
    assert data["orderId"] == "o1"
    assert data["status"] == "paid"
    assert data["paymentStatus"] == "pending"
    assert data["totalAmount"] == 10.5


def test_field_alias_maps_dotted_paths(mock_db):
    assert SellerProfile.field_alias("stats.available_balance") == "stats.availableBalance"
    assert User.field_alias("photo_url") == "photoURL"
    assert User.field_alias("unknown_field") == "unknown_field"


def test_build_changes_transforms_and_stamp(mock_db):
    changes = User.build_changes(
        increments={"total_posts": 1},
        array_union={"wishlist": ["p1"]},
        values={"bio": "hello"},
    )
    assert isinstance(changes["totalPosts"], Increment)
    assert changes["totalPosts"].value == 1
    assert isinstance(changes["wishlist"], ArrayUnion)
    assert changes["bio"] == "hello"
    assert isinstance(changes["updatedAt"], datetime)

    # Post declares no updated_at, so nothing is stamped
    assert set(Post.build_changes(increments={"likes_count": -1})) == {"likesCount"}


# -----------------------------------------------------------------------------
# CRUD
# -----------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_save_document(mock_db):
    user = User(uid="u1", email="u1@example.com", photo_url="https://img/u1.png")

    doc_ref_mock = MagicMock()
    doc_ref_mock.id = "mock_id"
    doc_ref_mock.set = AsyncMock()
    collection_ref_mock = MagicMock()
    collection_ref_mock.document.return_value = doc_ref_mock
    User._db.client.collection.return_value = collection_ref_mock

    saved = await user.save()

    User._db.client.collection.assert_called_with("users")
    collection_ref_mock.document.assert_called_once_with()
    written = doc_ref_mock.set.await_args.args[0]
    assert written["uid"] == "u1"
    assert written["photoURL"] == "https://img/u1.png"
    assert isinstance(written["createdAt"], datetime)
    assert written["createdAt"] == written["updatedAt"]
    assert saved.id == "mock_id"


@pytest.mark.asyncio
async def test_save_with_taken_id_raises(mock_db):
    doc_ref_mock = MagicMock()
    doc_ref_mock.get = AsyncMock(return_value=snapshot("post_1", {}, exists=True))
    doc_ref_mock.set = AsyncMock()
    Post._db.client.collection.return_value.document.return_value = doc_ref_mock

    with pytest.raises(RuntimeError, match="already exists"):
        await make_post().save()
    doc_ref_mock.set.assert_not_awaited()


@pytest.mark.asyncio
async def test_put_overwrites_with_merge_flag(mock_db):
    doc_ref_mock = MagicMock()
    doc_ref_mock.set = AsyncMock()
    Post._db.client.collection.return_value.document.return_value = doc_ref_mock

    await make_post().put(merge=True)

    Post._db.client.collection.return_value.document.assert_called_with("post_1")
    assert doc_ref_mock.set.await_args.kwargs == {"merge": True}


@pytest.mark.asyncio
async def test_update_sends_included_fields(mock_db):
    doc_ref_mock = MagicMock()
    doc_ref_mock.update = AsyncMock()
    User._db.client.collection.return_value.document.return_value = doc_ref_mock

    user = User(id="u1", uid="u1", bio="old")
    user.bio = "new"
    await user.update(include={"bio"})

    payload = doc_ref_mock.update.await_args.args[0]
    assert set(payload) == {"bio", "updatedAt"}
    assert payload["bio"] == "new"


@pytest.mark.asyncio
async def test_apply_syncs_local_instance(mock_db):
    doc_ref_mock = MagicMock()
    doc_ref_mock.update = AsyncMock()
    User._db.client.collection.return_value.document.return_value = doc_ref_mock

    user = User(id="u1", uid="u1", total_posts=2, wishlist=["a"])
    await user.apply(increments={"total_posts": 3}, array_union={"wishlist": ["a", "b"]})

    assert user.total_posts == 5
    assert user.wishlist == ["a", "b"]
    doc_ref_mock.update.assert_awaited_once()


@pytest.mark.asyncio
async def test_apply_rejects_unknown_fields_before_writing(mock_db):
    doc_ref_mock = MagicMock()
    doc_ref_mock.update = AsyncMock()
    User._db.client.collection.return_value.document.return_value = doc_ref_mock

    user = User(id="u1", uid="u1", total_posts=2)
    with pytest.raises(ValidationError):
        await user.apply(values={"bio": "hi", "favourite_colour": "red"})
    with pytest.raises(ValidationError):
        await user.apply(increments={"karma": 1})

    doc_ref_mock.update.assert_not_awaited()
    assert user.bio != "hi"


@pytest.mark.asyncio
async def test_patch_merge_uses_set(mock_db):
    doc_ref_mock = MagicMock()
    doc_ref_mock.set = AsyncMock()
    doc_ref_mock.update = AsyncMock()
    User._db.client.collection.return_value.document.return_value = doc_ref_mock

    await User.patch("u1", values={"bio": "hey"}, merge=True)
    doc_ref_mock.set.assert_awaited_once()
    doc_ref_mock.update.assert_not_awaited()

    await User.patch("u1", values={"bio": "again"})
    doc_ref_mock.update.assert_awaited_once()


@pytest.mark.asyncio
async def test_delete_document(mock_db):
    doc_ref_mock = MagicMock()
    doc_ref_mock.delete = AsyncMock()
    Post._db.client.collection.return_value.document.return_value = doc_ref_mock

    await make_post().delete()
    doc_ref_mock.delete.assert_awaited_once()


@pytest.mark.asyncio
async def test_get_document(mock_db):
    doc_ref_mock = MagicMock()
    doc_ref_mock.get = AsyncMock(return_value=snapshot(
        "post_1", {"video": "v.mp4", "userId": "alice", "likesCount": 4},
    ))
    Post._db.client.collection.return_value.document.return_value = doc_ref_mock

    post = await Post.get("post_1")
    assert post.id == "post_1"
    assert post.user_id == "alice"
    assert post.likes_count == 4
    assert post.parent_path is None


@pytest.mark.asyncio
async def test_get_missing_and_empty_id(mock_db):
    doc_ref_mock = MagicMock()
    doc_ref_mock.get = AsyncMock(return_value=snapshot("nope", {}, exists=False))
    Post._db.client.collection.return_value.document.return_value = doc_ref_mock

    assert await Post.get("nope") is None
    with pytest.raises(ValueError):
        await Post.get("")


# -----------------------------------------------------------------------------
# Queries
# -----------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_find_builds_filters_order_and_limit(mock_db):
    query_mock = MagicMock()
    query_mock.where.return_value = query_mock
    query_mock.order_by.return_value = query_mock
    query_mock.limit.return_value = query_mock
    query_mock.stream = lambda: mock_stream([
        snapshot("p2", {"video": "b.mp4", "userId": "alice"}),
        snapshot("p1", {"video": "a.mp4", "userId": "alice"}),
    ])
    Post._db.client.collection.return_value = query_mock

    results = await Post.find_all(
        filters=[Post.user_id == "alice"],
        order_by=(Post.timestamp, OrderByDirection.DESCENDING),
        limit=5,
    )

    field_filter = query_mock.where.call_args.kwargs["filter"]
    assert field_filter.field_path == "userId"
    assert field_filter.op_string == "=="
    assert field_filter.value == "alice"
    query_mock.order_by.assert_called_once_with("timestamp", direction="DESCENDING")
    query_mock.limit.assert_called_once_with(5)
    assert [p.id for p in results] == ["p2", "p1"]


@pytest.mark.asyncio
async def test_find_with_projection(mock_db):
    query_mock = MagicMock()
    query_mock.where.return_value = query_mock
    query_mock.select.return_value = query_mock
    query_mock.stream = lambda: mock_stream([snapshot("p1", {"caption": "Hi"})])
    Post._db.client.collection.return_value = query_mock

    class CaptionOnly(BaseModel):
        id: Optional[str] = None
        caption: str

    results = [doc async for doc in Post.find(
        filters=[Post.topic == "music"],
        projection=CaptionOnly,
    )]
    query_mock.select.assert_called_once_with(["caption"])
    assert results[0].caption == "Hi"
    assert results[0].id == "p1"


@pytest.mark.asyncio
async def test_find_start_after_missing_cursor_raises(mock_db):
    collection_ref_mock = MagicMock()
    collection_ref_mock.document.return_value.get = AsyncMock(
        return_value=snapshot("gone", {}, exists=False)
    )
    Post._db.client.collection.return_value = collection_ref_mock

    with pytest.raises(ValueError, match="does not exist"):
        await Post.find_all(start_after="gone")


@pytest.mark.asyncio
async def test_count_uses_aggregation(mock_db):
    count_result = MagicMock()
    count_result.value = 7
    query_mock = MagicMock()
    query_mock.count.return_value.get = AsyncMock(return_value=[[count_result]])
    Post._db.client.collection.return_value = query_mock

    assert await Post.count() == 7


@pytest.mark.asyncio
async def test_count_falls_back_to_empty_select(mock_db):
    query_mock = MagicMock()
    query_mock.where.return_value = query_mock
    query_mock.count = MagicMock(side_effect=AttributeError("No .count() method"))
    query_mock.select.return_value.get = AsyncMock(return_value=[MagicMock(), MagicMock()])
    Post._db.client.collection.return_value = query_mock

    assert await Post.count([Post.topic == "music"]) == 2
    query_mock.select.assert_called_once_with([])


# -----------------------------------------------------------------------------
# Subcollections
# -----------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_save_comment_under_post(mock_db):
    doc_ref_mock = MagicMock()
    doc_ref_mock.id = "auto_cid"
    doc_ref_mock.set = AsyncMock()
    Comment._db.client.collection.return_value.document.return_value = doc_ref_mock

    comment = Comment(user_id="bob", comment="Nice")
    saved = await comment.save(parent=make_post())

    Comment._db.client.collection.assert_called_with("posts/post_1/comments")
    assert saved.id == "auto_cid"
    assert saved.parent_path == "posts/post_1"
    assert saved.document_path == "posts/post_1/comments/auto_cid"


@pytest.mark.asyncio
async def test_reply_path_is_three_levels_deep(mock_db):
    doc_ref_mock = MagicMock()
    doc_ref_mock.get = AsyncMock(return_value=snapshot("r1", {"reply": "thanks"}))
    Reply._db.client.collection.return_value.document.return_value = doc_ref_mock

    reply = await Reply.get("r1", parent=make_comment())

    Reply._db.client.collection.assert_called_with("posts/post_1/comments/comment_1/replies")
    assert reply.parent_path == "posts/post_1/comments/comment_1"


def test_subcollection_requires_parent(mock_db):
    with pytest.raises(RuntimeError, match="requires a parent"):
        Comment.collection_path()
    with pytest.raises(TypeError):
        Comment.collection_path(parent=User(id="u1", uid="u1"))


def test_subcollection_accessor_checks_parent(mock_db):
    post = make_post()
    assert post.subcollection(Comment).path == "posts/post_1/comments"
    with pytest.raises(ValueError):
        post.subcollection(Reply)


@pytest.mark.asyncio
async def test_delete_children_batches(mock_db):
    query_mock = MagicMock()
    query_mock.stream = lambda: mock_stream([snapshot("c1", {}), snapshot("c2", {})])
    batch_mock = MagicMock()
    batch_mock.commit = AsyncMock()
    Comment._db.client.collection.return_value = query_mock
    Comment._db.client.batch.return_value = batch_mock

    removed = await make_post().delete_children(Comment)

    assert removed == 2
    assert batch_mock.delete.call_count == 2
    batch_mock.commit.assert_awaited_once()


# -----------------------------------------------------------------------------
# Batches
# -----------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_batch_write(mock_db):
    batch_mock = MagicMock()
    batch_mock.commit = AsyncMock()
    Post._db.client.batch.return_value = batch_mock

    doc_ref_create = MagicMock()
    doc_ref_create.id = "new_post"
    doc_ref_update = MagicMock()
    doc_ref_delete = MagicMock()

    def mock_document(doc_id=None):
        if doc_id is None:
            return doc_ref_create
        return {"alice": doc_ref_update, "old_post": doc_ref_delete}[doc_id]

    Post._db.client.collection.return_value.document.side_effect = mock_document

    new_post = Post(video="v.mp4", user_id="alice")
    author = User(id="alice", uid="alice")
    counter = User.build_changes(increments={"total_posts": 1})

    await Post.batch_write([
        (BatchOperation.CREATE, new_post),
        (BatchOperation.UPDATE, author, counter),
        (BatchOperation.DELETE, make_post("old_post")),
    ])

    assert new_post.id == "new_post"
    batch_mock.set.assert_called_once_with(doc_ref_create, new_post.to_firestore())
    batch_mock.update.assert_called_once_with(doc_ref_update, counter)
    batch_mock.delete.assert_called_once_with(doc_ref_delete)
    batch_mock.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_batch_update_without_id_raises(mock_db):
    Post._db.client.batch.return_value = MagicMock()
    with pytest.raises(ValueError):
        await Post.batch_write([(BatchOperation.UPDATE, Post(video="v", user_id="a"))])
