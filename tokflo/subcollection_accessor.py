"""
Bound query helper: ``post.subcollection(Comment).find()`` is sugar for
``Comment.find(parent=post)``.
"""

from typing import TYPE_CHECKING, AsyncGenerator, List, Optional, Type

if TYPE_CHECKING:
    from .firestore_model import FirestoreDocument


class SubCollectionAccessor:
    """
    Queries one subcollection under a specific parent document.

    Example:
        comments = post.subcollection(Comment)
        async for comment in comments.find(order_by=(Comment.timestamp, OrderByDirection.ASCENDING)):
            print(comment.text)
    """

    def __init__(self, parent: "FirestoreDocument", child_cls: Type["FirestoreDocument"]):
        self._parent = parent
        self._child_cls = child_cls

        if child_cls.get_parent_class() is not type(parent):
            raise ValueError(
                f"{child_cls.__name__} does not declare "
                f"Settings.parent = {type(parent).__name__}"
            )

    @property
    def path(self) -> str:
        return self._child_cls.collection_path(parent=self._parent)

    async def add(self, doc: "FirestoreDocument", **kwargs) -> "FirestoreDocument":
        return await doc.save(parent=self._parent, **kwargs)

    async def put(self, doc: "FirestoreDocument", **kwargs) -> "FirestoreDocument":
        return await doc.put(parent=self._parent, **kwargs)

    async def get(self, doc_id: str) -> Optional["FirestoreDocument"]:
        return await self._child_cls.get(doc_id, parent=self._parent)

    async def find(self, filters=None, **kwargs) -> AsyncGenerator:
        async for doc in self._child_cls.find(filters=filters, parent=self._parent, **kwargs):
            yield doc

    async def find_all(self, filters=None, **kwargs) -> List["FirestoreDocument"]:
        return [doc async for doc in self.find(filters=filters, **kwargs)]

    async def find_one(self, filters=None, **kwargs):
        return await self._child_cls.find_one(filters=filters or [], parent=self._parent, **kwargs)

    async def count(self, filters=None) -> int:
        return await self._child_cls.count(filters=filters or [], parent=self._parent)

    async def exists(self, doc_id: str) -> bool:
        return await self._child_cls.exists(doc_id, parent=self._parent)

    async def delete(self, doc: "FirestoreDocument") -> None:
        await doc.delete()

    async def clear(self) -> int:
        """Delete every document in this subcollection."""
        return await self._parent.delete_children(self._child_cls)
