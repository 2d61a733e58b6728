import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncGenerator, ClassVar, Dict, List, Optional, Tuple, Type, Union

from google.cloud.firestore_v1 import ArrayRemove, ArrayUnion, AsyncClient, Increment
from google.cloud.firestore_v1.base_query import FieldFilter
from google.cloud.firestore_v1.field_path import FieldPath

from .enums import BatchOperation, FirestoreOperators, OrderByDirection
from .exceptions import ValidationError
from .firestore_client import FirestoreDB
from .firestore_fields import FirestoreField
from .pydantic_compat import (
    BaseModel,
    CamelModel,
    Field,
    PrivateAttr,
    get_model_fields,
    model_dump_compat,
    to_camel,
)

# Alias for the first element in order-by tuple
FieldType = Union[str, FirestoreField]
# Alias for field ordering tuples
FieldOrderType = Tuple[FieldType, OrderByDirection]
FilterType = Tuple[FieldType, Union[FirestoreOperators, str], Any]

# Firestore caps a write batch at 500 operations.
MAX_BATCH_SIZE = 500

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_stored(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return model_dump_compat(value, by_alias=True, exclude_none=True)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_to_stored(item) for item in value]
    if isinstance(value, dict):
        return {key: _to_stored(item) for key, item in value.items()}
    return value


def _op_string(op: Union[FirestoreOperators, str]) -> str:
    return op.value if isinstance(op, Enum) else op


class FirestoreDocument(CamelModel):
    """
    Async Pydantic model stored as one Firestore document.

    Subclasses declare ``Settings.name`` (collection id) and, for
    subcollections, ``Settings.parent`` (the owning document class). A
    ``created_at``/``updated_at`` pair, when declared, is stamped on writes.
    """

    id: Optional[str] = Field(default=None)

    # Injected by init_tokflo()
    _db: ClassVar[Optional[FirestoreDB]] = None

    # "posts/abc" for a comment stored under posts/abc/comments
    _parent_path: Optional[str] = PrivateAttr(default=None)

    class Settings:
        name: str = "BaseCollection"  # Override in subclasses

    @classmethod
    def initialize_fields(cls) -> None:
        for field_name, field_info in get_model_fields(cls).items():
            alias = (
                FieldPath.document_id() if field_name == "id"
                else (field_info.alias or field_name)  # type: ignore[attr-defined]
            )
            setattr(cls, field_name, FirestoreField(alias))

    @classmethod
    def initialize_db(cls, db: "FirestoreDB"):
        cls._db = db

    @classmethod
    def _client(cls) -> AsyncClient:
        if not cls._db:
            raise RuntimeError("Database must be initialized before using the model.")
        return cls._db.client

    # --------------------------------------------------------------------------
    # Paths
    # --------------------------------------------------------------------------
    @property
    def collection_name(self) -> str:
        return self.get_collection_name()

    @classmethod
    def get_collection_name(cls) -> str:
        if hasattr(cls, "Settings") and hasattr(cls.Settings, "name"):
            return cls.Settings.name
        return cls.__name__

    @classmethod
    def get_parent_class(cls) -> Optional[Type["FirestoreDocument"]]:
        return getattr(getattr(cls, "Settings", None), "parent", None)

    @classmethod
    def collection_path(
        cls,
        parent: Optional["FirestoreDocument"] = None,
        parent_path: Optional[str] = None,
    ) -> str:
        """
        Slash-separated collection path, e.g. ``posts/p1/comments``.
        """
        name = cls.get_collection_name()
        parent_cls = cls.get_parent_class()
        if parent_cls is None:
            return name
        if parent is not None:
            if not isinstance(parent, parent_cls):
                raise TypeError(
                    f"{cls.__name__} lives under {parent_cls.__name__}, "
                    f"got {type(parent).__name__}"
                )
            parent_path = parent.document_path
        if not parent_path:
            raise RuntimeError(f"{cls.__name__} is a subcollection and requires a parent document.")
        return f"{parent_path}/{name}"

    @property
    def parent_path(self) -> Optional[str]:
        return self._parent_path

    @property
    def document_path(self) -> str:
        if not self.id:
            raise ValueError(f"{type(self).__name__} has no ID yet.")
        return f"{self.collection_path(parent_path=self._parent_path)}/{self.id}"

    def bind_parent(self, parent: Optional["FirestoreDocument"]) -> "FirestoreDocument":
        if parent is not None:
            self._parent_path = self.collection_path(parent=parent).rsplit("/", 1)[0]
        return self

    def _document_ref(self):
        if not self.id:
            raise ValueError("Cannot address a document without an ID.")
        collection_ref = self._client().collection(self.collection_path(parent_path=self._parent_path))
        return collection_ref.document(self.id)

    @classmethod
    def _from_snapshot(cls, snapshot, parent_path: Optional[str] = None, constructor=None):
        data = snapshot.to_dict() or {}
        data["id"] = snapshot.id
        obj = (constructor or cls)(**data)
        if parent_path and isinstance(obj, FirestoreDocument):
            obj._parent_path = parent_path
        return obj

    # --------------------------------------------------------------------------
    # Serialization
    # --------------------------------------------------------------------------
    @classmethod
    def field_alias(cls, name: str) -> str:
        """Stored name for a python attribute; dotted paths map per segment."""
        head, _, rest = name.partition(".")
        fields = get_model_fields(cls)
        stored = (fields[head].alias or head) if head in fields else head  # type: ignore[attr-defined]
        if rest:
            stored += "." + ".".join(to_camel(part) for part in rest.split("."))
        return stored

    def to_firestore(self, exclude_none: bool = True, include: Optional[set] = None) -> Dict[str, Any]:
        return model_dump_compat(
            self,
            exclude={"id"},
            include=include,
            exclude_none=exclude_none,
            by_alias=True,
        )

    def _stamp(self, created: bool = False) -> None:
        fields = get_model_fields(type(self))
        now = utcnow()
        if created and "created_at" in fields and getattr(self, "created_at", None) is None:
            self.created_at = now
        if "updated_at" in fields:
            self.updated_at = now

    @classmethod
    def build_changes(
        cls,
        increments: Optional[Dict[str, Union[int, float]]] = None,
        array_union: Optional[Dict[str, List[Any]]] = None,
        array_remove: Optional[Dict[str, List[Any]]] = None,
        values: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Update payload keyed by stored field names, with Firestore transforms
        for counters and array membership.
        """
        changes: Dict[str, Any] = {}
        for name, value in (values or {}).items():
            changes[cls.field_alias(name)] = _to_stored(value)
        for name, step in (increments or {}).items():
            changes[cls.field_alias(name)] = Increment(step)
        for name, items in (array_union or {}).items():
            changes[cls.field_alias(name)] = ArrayUnion(list(items))
        for name, items in (array_remove or {}).items():
            changes[cls.field_alias(name)] = ArrayRemove(list(items))
        if "updated_at" in get_model_fields(cls):
            changes.setdefault(cls.field_alias("updated_at"), utcnow())
        return changes

    # --------------------------------------------------------------------------
    # CRUD operations: create/update/delete
    # --------------------------------------------------------------------------
    async def save(
        self,
        parent: Optional["FirestoreDocument"] = None,
        exclude_none: bool = True,
    ) -> "FirestoreDocument":
        """
        Create the document. A missing ID is generated; an existing one must
        not already be taken.
        """
        self.bind_parent(parent)
        collection_ref = self._client().collection(self.collection_path(parent_path=self._parent_path))

        if not self.id:
            doc_ref = collection_ref.document()
            self.id = doc_ref.id
        else:
            doc_ref = collection_ref.document(self.id)
            if (await doc_ref.get()).exists:
                raise RuntimeError("Error creating object: provided ID already exists.")

        self._stamp(created=True)
        await doc_ref.set(self.to_firestore(exclude_none=exclude_none))
        logger.debug(f"Save: {self.collection_path(parent_path=self._parent_path)} - id={self.id}")
        return self

    async def put(
        self,
        parent: Optional["FirestoreDocument"] = None,
        merge: bool = False,
        exclude_none: bool = True,
    ) -> "FirestoreDocument":
        """
        Write the whole document, creating or overwriting it.
        """
        self.bind_parent(parent)
        collection_ref = self._client().collection(self.collection_path(parent_path=self._parent_path))
        doc_ref = collection_ref.document(self.id) if self.id else collection_ref.document()
        self.id = doc_ref.id if not self.id else self.id

        self._stamp(created=True)
        await doc_ref.set(self.to_firestore(exclude_none=exclude_none), merge=merge)
        logger.debug(f"Put: {self.document_path} merge={merge}")
        return self

    async def update(
        self,
        include: Optional[set] = None,
        exclude_none: bool = True,
    ) -> "FirestoreDocument":
        """
        Send the current values of ``include`` (or every field) to an
        existing document.
        """
        doc_ref = self._document_ref()
        self._stamp()
        if include is not None and "updated_at" in get_model_fields(type(self)):
            include = set(include) | {"updated_at"}

        updates = self.to_firestore(exclude_none=exclude_none, include=include)
        logger.debug(f"Update: {self.document_path}, updates={updates}")
        if updates:
            await doc_ref.update(updates)
        return self

    async def apply(
        self,
        increments: Optional[Dict[str, Union[int, float]]] = None,
        array_union: Optional[Dict[str, List[Any]]] = None,
        array_remove: Optional[Dict[str, List[Any]]] = None,
        values: Optional[Dict[str, Any]] = None,
    ) -> "FirestoreDocument":
        """
        Server-side transforms (counters, array membership) plus plain
        values. The local instance is brought in line with the write.
        """
        fields = get_model_fields(type(self))
        names = [*(values or {}), *(increments or {}), *(array_union or {}), *(array_remove or {})]
        unknown = sorted({name for name in names if name.partition(".")[0] not in fields})
        if unknown:
            raise ValidationError(f"Unknown fields for {type(self).__name__}: {', '.join(unknown)}")

        changes = self.build_changes(increments, array_union, array_remove, values)
        await self._document_ref().update(changes)

        for name, value in (values or {}).items():
            if "." not in name:
                setattr(self, name, value)
        for name, step in (increments or {}).items():
            if "." not in name:
                setattr(self, name, (getattr(self, name, 0) or 0) + step)
        for name, items in (array_union or {}).items():
            current = list(getattr(self, name, None) or [])
            setattr(self, name, current + [i for i in items if i not in current])
        for name, items in (array_remove or {}).items():
            current = list(getattr(self, name, None) or [])
            setattr(self, name, [i for i in current if i not in items])
        if "updated_at" in get_model_fields(type(self)):
            self.updated_at = changes[self.field_alias("updated_at")]
        return self

    @classmethod
    async def patch(
        cls,
        doc_id: str,
        values: Optional[Dict[str, Any]] = None,
        increments: Optional[Dict[str, Union[int, float]]] = None,
        array_union: Optional[Dict[str, List[Any]]] = None,
        array_remove: Optional[Dict[str, List[Any]]] = None,
        parent: Optional["FirestoreDocument"] = None,
        merge: bool = False,
    ) -> Dict[str, Any]:
        """
        Change a document by ID without reading it first. ``merge=True``
        creates the document when it is missing; otherwise it must exist.
        Returns the payload that was sent.
        """
        changes = cls.build_changes(increments, array_union, array_remove, values)
        doc_ref = cls._client().collection(cls.collection_path(parent=parent)).document(doc_id)
        if merge:
            await doc_ref.set(changes, merge=True)
        else:
            await doc_ref.update(changes)
        logger.debug(f"Patch: {cls.get_collection_name()}/{doc_id} fields={list(changes)}")
        return changes

    async def delete(self) -> None:
        await self._document_ref().delete()
        logger.debug(f"Delete: {self.document_path}")

    async def delete_children(self, child_cls: Type["FirestoreDocument"]) -> int:
        """
        Delete every document of ``child_cls`` stored under this document.
        Returns how many were removed.
        """
        children = [child async for child in child_cls.find(parent=self)]
        db_client = self._client()
        for i in range(0, len(children), MAX_BATCH_SIZE):
            batch = db_client.batch()
            for child in children[i:i + MAX_BATCH_SIZE]:
                batch.delete(child._document_ref())
            await batch.commit()
        return len(children)

    def subcollection(self, child_cls: Type["FirestoreDocument"]):
        from .subcollection_accessor import SubCollectionAccessor

        return SubCollectionAccessor(self, child_cls)

    # --------------------------------------------------------------------------
    # Get a document by ID
    # --------------------------------------------------------------------------
    @classmethod
    async def get(
        cls,
        doc_id: str,
        parent: Optional["FirestoreDocument"] = None,
    ) -> Optional["FirestoreDocument"]:
        if not doc_id:
            raise ValueError(f"{cls.__name__}.get() needs a document ID.")
        path = cls.collection_path(parent=parent)
        doc_snap = await cls._client().collection(path).document(doc_id).get()

        if doc_snap.exists:
            return cls._from_snapshot(doc_snap, parent_path=path.rsplit("/", 1)[0] if parent else None)
        return None

    @classmethod
    async def exists(cls, doc_id: str, parent: Optional["FirestoreDocument"] = None) -> bool:
        path = cls.collection_path(parent=parent)
        doc_snap = await cls._client().collection(path).document(doc_id).get()
        return doc_snap.exists

    # --------------------------------------------------------------------------
    # Count documents
    # --------------------------------------------------------------------------
    @classmethod
    async def count(
        cls,
        filters: Optional[List[FilterType]] = None,
        parent: Optional["FirestoreDocument"] = None,
    ) -> int:
        """
        Number of documents matching ``filters``. Falls back to an empty
        projection when the SDK has no aggregation support.
        """
        query = cls._build_query(cls._client(), filters=filters or [], parent=parent)
        try:
            count_snapshot = await query.count().get()
            return count_snapshot[0][0].value
        except AttributeError:
            logger.warning("Firestore: Performing count by fetching all items with empty select")
            docs = await query.select([]).get()
            return len(docs)

    # --------------------------------------------------------------------------
    # Find (asynchronous generator)
    # --------------------------------------------------------------------------
    @classmethod
    async def find(
        cls,
        filters: Optional[List[FilterType]] = None,
        projection: Optional[Type[BaseModel]] = None,
        order_by: Optional[
            Union[List[Union[FieldType, FieldOrderType]], Union[FieldType, FieldOrderType]]
        ] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        start_after: Optional[Union[str, "FirestoreDocument"]] = None,
        parent: Optional["FirestoreDocument"] = None,
    ) -> AsyncGenerator[Union["FirestoreDocument", BaseModel], None]:
        """
        Yield documents matching ``filters``.

        ``start_after`` takes the ID (or instance) of the last document of the
        previous page; it must be combined with the same ``order_by``.
        """
        db_client = cls._client()
        path = cls.collection_path(parent=parent)
        query = cls._build_query(db_client, filters=filters or [], projection=projection, parent=parent)

        if order_by:
            if not isinstance(order_by, list):
                order_by = [order_by]
            for order_by_field in order_by:
                if isinstance(order_by_field, tuple):
                    field, direction = order_by_field
                    query = query.order_by(str(field), direction=str(direction))
                else:
                    query = query.order_by(str(order_by_field))

        if start_after is not None:
            cursor_id = start_after.id if isinstance(start_after, FirestoreDocument) else start_after
            cursor_snap = await db_client.collection(path).document(cursor_id).get()
            if not cursor_snap.exists:
                raise ValueError(f"Cursor document {path}/{cursor_id} does not exist.")
            query = query.start_after(cursor_snap)

        if offset is not None:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        parent_path = path.rsplit("/", 1)[0] if parent is not None else None
        async for doc in query.stream():
            yield cls._from_snapshot(doc, parent_path=parent_path, constructor=projection)

    @classmethod
    async def find_one(
        cls,
        filters: Optional[List[FilterType]] = None,
        projection: Optional[Type[BaseModel]] = None,
        order_by: Optional[Union[FieldType, FieldOrderType]] = None,
        parent: Optional["FirestoreDocument"] = None,
    ) -> Optional["FirestoreDocument"]:
        async for obj in cls.find(
            filters=filters, projection=projection, order_by=order_by, limit=1, parent=parent
        ):
            return obj
        return None

    @classmethod
    async def find_all(cls, **kwargs) -> List["FirestoreDocument"]:
        return [obj async for obj in cls.find(**kwargs)]

    # --------------------------------------------------------------------------
    # Internal query builder
    # --------------------------------------------------------------------------
    @classmethod
    def _build_query(
        cls,
        db_client: AsyncClient,
        filters: List[FilterType],
        projection: Optional[Type[BaseModel]] = None,
        parent: Optional["FirestoreDocument"] = None,
    ):
        query = db_client.collection(cls.collection_path(parent=parent))

        for (field_name, op, value) in filters:
            query = query.where(filter=FieldFilter(str(field_name), _op_string(op), value))

        if projection:
            select_fields = [
                (info.alias or name)  # type: ignore[attr-defined]
                for name, info in get_model_fields(projection).items()
                if name != "id"
            ]
            logger.debug(f"Build Query: select fields: {select_fields}")
            query = query.select(select_fields)

        return query

    # --------------------------------------------------------------------------
    # Batch operations
    # --------------------------------------------------------------------------
    @classmethod
    async def batch_write(
        cls,
        operations: List[
            Union[
                Tuple[BatchOperation, "FirestoreDocument"],
                Tuple[BatchOperation, "FirestoreDocument", Dict[str, Any]],
            ]
        ],
    ):
        """
        Commit create/update/delete operations atomically.

        An UPDATE may carry a third element: the exact payload to send (see
        :meth:`build_changes`) instead of the model's current values.
        """
        db_client = cls._client()
        batch = db_client.batch()

        for operation in operations:
            op, model_instance = operation[0], operation[1]
            payload = operation[2] if len(operation) > 2 else None
            collection_ref = db_client.collection(
                model_instance.collection_path(parent_path=model_instance.parent_path)
            )

            if not model_instance.id and op != BatchOperation.CREATE:
                raise ValueError(f"Cannot {op.value} without an ID assigned on {model_instance}.")

            doc_ref = (
                collection_ref.document(model_instance.id)
                if model_instance.id
                else collection_ref.document()
            )

            if op == BatchOperation.CREATE:
                if not model_instance.id:
                    model_instance.id = doc_ref.id
                model_instance._stamp(created=True)
                batch.set(doc_ref, model_instance.to_firestore())

            elif op == BatchOperation.UPDATE:
                if payload is None:
                    model_instance._stamp()
                    payload = model_instance.to_firestore()
                batch.update(doc_ref, payload)

            elif op == BatchOperation.DELETE:
                batch.delete(doc_ref)

        await batch.commit()
        logger.debug(f"Batch: committed {len(operations)} operations")
