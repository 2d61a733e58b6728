"""
FakeFirestore: asynchronous in-memory stand-in for
``google.cloud.firestore_v1.AsyncClient`` used by the service tests.

Supports: collection(path), document(), get(), set(merge=), update() with
dotted paths and Increment/ArrayUnion/ArrayRemove transforms, delete(),
where(filter=FieldFilter), order_by(), limit(), offset(), start_after(),
select(), stream(), count() and batch().
"""
import copy
import functools
import random
import string
from datetime import datetime
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

from google.api_core.exceptions import NotFound
from google.cloud.firestore_v1 import ArrayRemove, ArrayUnion, Increment

DOCUMENT_ID = "__name__"
_MISSING = object()
_ID_CHARS = string.ascii_letters + string.digits


def _auto_id() -> str:
    return "".join(random.choice(_ID_CHARS) for _ in range(20))


def _type_rank(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        return 2
    if isinstance(value, datetime):
        return 3
    if isinstance(value, str):
        return 4
    if isinstance(value, bytes):
        return 5
    if isinstance(value, list):
        return 8
    return 9


def _compare(a: Any, b: Any) -> int:
    rank_a, rank_b = _type_rank(a), _type_rank(b)
    if rank_a != rank_b:
        return -1 if rank_a < rank_b else 1
    if rank_a in (0, 9):
        return 0
    if a == b:
        return 0
    return -1 if a < b else 1


def _lookup(data: Dict[str, Any], path: str) -> Any:
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _apply_value(current: Any, value: Any) -> Any:
    if isinstance(value, Increment):
        base = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
        return base + value.value
    if isinstance(value, ArrayUnion):
        items = list(current) if isinstance(current, list) else []
        return items + [item for item in value.values if item not in items]
    if isinstance(value, ArrayRemove):
        items = list(current) if isinstance(current, list) else []
        return [item for item in items if item not in value.values]
    return copy.deepcopy(value)


def _set_path(data: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    target = data
    for part in parts[:-1]:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        target = target[part]
    target[parts[-1]] = _apply_value(target.get(parts[-1]), value)


def _merge(target: Dict[str, Any], data: Dict[str, Any]) -> None:
    for key, value in data.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = _apply_value(target.get(key), value)


class FakeDocumentSnapshot:
    def __init__(self, reference: "FakeDocumentReference", data: Optional[Dict[str, Any]]):
        self.reference = reference
        self.id = reference.id
        self.exists = data is not None
        self._data = copy.deepcopy(data) if data is not None else None

    def to_dict(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._data) if self._data is not None else None

    def get(self, field_path: str) -> Any:
        if field_path == DOCUMENT_ID:
            return self.id
        value = _lookup(self._data or {}, field_path)
        return None if value is _MISSING else value


class FakeDocumentReference:
    def __init__(self, db: "FakeFirestore", path: str):
        self._db = db
        self.path = path
        self.id = path.rsplit("/", 1)[-1]

    def collection(self, name: str) -> "FakeCollectionReference":
        return FakeCollectionReference(self._db, f"{self.path}/{name}")

    async def get(self, **kwargs) -> FakeDocumentSnapshot:
        return FakeDocumentSnapshot(self, self._db.documents.get(self.path))

    async def set(self, data: Dict[str, Any], merge: bool = False) -> None:
        self._db._set(self.path, data, merge)

    async def update(self, data: Dict[str, Any]) -> None:
        self._db._update(self.path, data)

    async def delete(self) -> None:
        self._db.documents.pop(self.path, None)


class FakeAggregationQuery:
    def __init__(self, query: "FakeQuery"):
        self._query = query

    async def get(self) -> List[List[SimpleNamespace]]:
        return [[SimpleNamespace(alias="count", value=len(self._query._results()))]]


class FakeQuery:
    def __init__(
        self,
        db: "FakeFirestore",
        path: str,
        filters: Tuple = (),
        orders: Tuple = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        cursor: Optional[FakeDocumentSnapshot] = None,
        fields: Optional[List[str]] = None,
    ):
        self._db = db
        self._path = path
        self._filters = filters
        self._orders = orders
        self._limit = limit
        self._offset = offset
        self._cursor = cursor
        self._fields = fields

    def _copy(self, **changes) -> "FakeQuery":
        state = dict(
            filters=self._filters,
            orders=self._orders,
            limit=self._limit,
            offset=self._offset,
            cursor=self._cursor,
            fields=self._fields,
        )
        state.update(changes)
        return FakeQuery(self._db, self._path, **state)

    # Query builders ---------------------------------------------------------

    def where(self, filter=None, **kwargs) -> "FakeQuery":  # noqa: A002
        return self._copy(filters=self._filters + ((filter.field_path, filter.op_string, filter.value),))

    def order_by(self, field_path: str, direction: str = "ASCENDING") -> "FakeQuery":
        return self._copy(orders=self._orders + ((str(field_path), str(direction)),))

    def limit(self, count: int) -> "FakeQuery":
        return self._copy(limit=count)

    def offset(self, num_to_skip: int) -> "FakeQuery":
        return self._copy(offset=num_to_skip)

    def start_after(self, snapshot: FakeDocumentSnapshot) -> "FakeQuery":
        return self._copy(cursor=snapshot)

    def select(self, field_paths: List[str]) -> "FakeQuery":
        return self._copy(fields=list(field_paths))

    def count(self, alias: Optional[str] = None) -> FakeAggregationQuery:
        return FakeAggregationQuery(self)

    # Execution --------------------------------------------------------------

    def _value(self, path: str, doc_id: str, data: Dict[str, Any]) -> Any:
        return doc_id if path == DOCUMENT_ID else _lookup(data, path)

    def _matches(self, doc_id: str, data: Dict[str, Any]) -> bool:
        for field, op, expected in self._filters:
            value = self._value(str(field), doc_id, data)
            if op == "==":
                ok = value is not _MISSING and _compare(value, expected) == 0
            elif op == "!=":
                ok = value is not _MISSING and value is not None and _compare(value, expected) != 0
            elif op in ("<", "<=", ">", ">="):
                if value is _MISSING or _type_rank(value) != _type_rank(expected):
                    return False
                result = _compare(value, expected)
                ok = {"<": result < 0, "<=": result <= 0, ">": result > 0, ">=": result >= 0}[op]
            elif op == "in":
                ok = value is not _MISSING and any(_compare(value, item) == 0 for item in expected)
            elif op == "not-in":
                ok = value is not _MISSING and value is not None and all(
                    _compare(value, item) != 0 for item in expected
                )
            elif op == "array_contains":
                ok = isinstance(value, list) and expected in value
            elif op == "array_contains_any":
                ok = isinstance(value, list) and any(item in value for item in expected)
            else:
                raise ValueError(f"Unsupported operator: {op}")
            if not ok:
                return False
        return True

    def _sort_key_compare(self, left, right) -> int:
        (left_id, left_data), (right_id, right_data) = left, right
        for field, direction in self._orders + ((DOCUMENT_ID, "ASCENDING"),):
            result = _compare(
                self._value(field, left_id, left_data),
                self._value(field, right_id, right_data),
            )
            if result:
                return -result if direction == "DESCENDING" else result
        return 0

    def _results(self) -> List[Tuple[str, Dict[str, Any]]]:
        rows = [
            (path.rsplit("/", 1)[-1], data)
            for path, data in self._db.documents.items()
            if path.rsplit("/", 1)[0] == self._path
        ]
        rows = [(doc_id, data) for doc_id, data in rows if self._matches(doc_id, data)]
        # Documents without an ordered field are excluded, as in Firestore
        rows = [
            (doc_id, data) for doc_id, data in rows
            if all(self._value(field, doc_id, data) is not _MISSING for field, _ in self._orders)
        ]
        rows.sort(key=functools.cmp_to_key(self._sort_key_compare))

        if self._cursor is not None:
            cursor = (self._cursor.id, self._cursor.to_dict() or {})
            rows = [row for row in rows if self._sort_key_compare(row, cursor) > 0]
        if self._offset:
            rows = rows[self._offset:]
        if self._limit is not None:
            rows = rows[:self._limit]
        return rows

    def _snapshot(self, doc_id: str, data: Dict[str, Any]) -> FakeDocumentSnapshot:
        if self._fields is not None:
            data = {key: value for key, value in data.items() if key in self._fields}
        return FakeDocumentSnapshot(FakeDocumentReference(self._db, f"{self._path}/{doc_id}"), data)

    async def stream(self, **kwargs):
        for doc_id, data in self._results():
            yield self._snapshot(doc_id, data)

    async def get(self, **kwargs) -> List[FakeDocumentSnapshot]:
        return [self._snapshot(doc_id, data) for doc_id, data in self._results()]


class FakeCollectionReference(FakeQuery):
    def __init__(self, db: "FakeFirestore", path: str):
        super().__init__(db, path)
        self.id = path.rsplit("/", 1)[-1]

    def document(self, document_id: Optional[str] = None) -> FakeDocumentReference:
        return FakeDocumentReference(self._db, f"{self._path}/{document_id or _auto_id()}")


class FakeWriteBatch:
    def __init__(self, db: "FakeFirestore"):
        self._db = db
        self._writes: List[Tuple[str, FakeDocumentReference, Any]] = []

    def set(self, reference: FakeDocumentReference, data: Dict[str, Any], merge: bool = False):
        self._writes.append(("set_merge" if merge else "set", reference, data))

    def update(self, reference: FakeDocumentReference, data: Dict[str, Any]):
        self._writes.append(("update", reference, data))

    def delete(self, reference: FakeDocumentReference):
        self._writes.append(("delete", reference, None))

    async def commit(self):
        self._db.commits += 1
        snapshot = copy.deepcopy(self._db.documents)
        try:
            for kind, reference, data in self._writes:
                if kind == "delete":
                    self._db.documents.pop(reference.path, None)
                elif kind == "update":
                    self._db._update(reference.path, data)
                else:
                    self._db._set(reference.path, data, merge=(kind == "set_merge"))
        except NotFound:
            self._db.documents = snapshot
            raise
        return [SimpleNamespace(update_time=None) for _ in self._writes]


class FakeFirestore:
    """
    Documents live in ``documents`` keyed by full path
    (``posts/p1/comments/c1``). ``commits`` counts committed batches.
    """

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.commits = 0

    def collection(self, path: str) -> FakeCollectionReference:
        return FakeCollectionReference(self, path)

    def document(self, path: str) -> FakeDocumentReference:
        return FakeDocumentReference(self, path)

    def batch(self) -> FakeWriteBatch:
        return FakeWriteBatch(self)

    def seed(self, path: str, data: Dict[str, Any]) -> None:
        """Pre-populate a document for test setup."""
        self.documents[path] = copy.deepcopy(data)

    def data(self, path: str) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self.documents.get(path))

    def paths(self, collection_path: str) -> List[str]:
        return sorted(
            path for path in self.documents
            if path.rsplit("/", 1)[0] == collection_path
        )

    # Write helpers ----------------------------------------------------------

    def _set(self, path: str, data: Dict[str, Any], merge: bool) -> None:
        if merge and path in self.documents:
            _merge(self.documents[path], data)
            return
        stored: Dict[str, Any] = {}
        _merge(stored, data)
        self.documents[path] = stored

    def _update(self, path: str, data: Dict[str, Any]) -> None:
        if path not in self.documents:
            raise NotFound(f"No document to update: {path}")
        for key, value in data.items():
            _set_path(self.documents[path], key, value)
