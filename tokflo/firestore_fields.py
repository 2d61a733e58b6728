from typing import Any, List, Tuple

from .enums import FirestoreOperators

# Highest code point in the Basic Multilingual Plane private use area; the
# upper bound of a Firestore prefix range.
PREFIX_SENTINEL = "\uf8ff"


class FirestoreField:
    """
    Class-level descriptor used to write Firestore filters against the
    document's stored (camelCase) field names.

    Examples
    --------
    >>> Post.user_id == "uid-1"
    ('userId', FirestoreOperators.EQ, 'uid-1')

    Instance access returns the real value; class access returns the
    descriptor so comparison operators yield filter tuples.
    """

    def __init__(self, field_name: str):
        self.field_name = field_name

    def __get__(self, instance, owner):
        if instance is None:
            return self
        return getattr(instance, self.field_name, None)

    def __str__(self) -> str:  # noqa: DunderStr
        return str(self.field_name)

    __repr__ = __str__

    def __hash__(self) -> int:  # noqa: DunderHash
        return hash(str(self.field_name))

    # ------------------------------------------------------------------ #
    # Comparison operators build (field, operator, value) tuples         #
    # ------------------------------------------------------------------ #

    def __eq__(self, other):  # type: ignore[override]
        return (self.field_name, FirestoreOperators.EQ, other)

    def __ne__(self, other):  # type: ignore[override]
        return (self.field_name, FirestoreOperators.NE, other)

    def __lt__(self, other):
        return (self.field_name, FirestoreOperators.LT, other)

    def __le__(self, other):
        return (self.field_name, FirestoreOperators.LTE, other)

    def __gt__(self, other):
        return (self.field_name, FirestoreOperators.GT, other)

    def __ge__(self, other):
        return (self.field_name, FirestoreOperators.GTE, other)

    def in_(self, values: List[Any]) -> tuple:
        return (self.field_name, FirestoreOperators.IN, values)

    def not_in_(self, values: List[Any]) -> tuple:
        return (self.field_name, FirestoreOperators.NOT_IN, values)

    def array_contains(self, value: Any) -> tuple:
        return (self.field_name, FirestoreOperators.ARRAY_CONTAINS, value)

    def array_contains_any(self, values: List[Any]) -> tuple:
        return (self.field_name, FirestoreOperators.ARRAY_CONTAINS_ANY, values)

    def startswith(self, prefix: str) -> List[Tuple[Any, FirestoreOperators, str]]:
        """
        Range filters matching every string that begins with ``prefix``.

        Firestore has no LIKE; the query must also order by this field.
        """
        return [
            (self.field_name, FirestoreOperators.GTE, prefix),
            (self.field_name, FirestoreOperators.LTE, prefix + PREFIX_SENTINEL),
        ]
