from typing import List, Optional, Type

from .enums import BatchOperation, FirestoreOperators, OrderByDirection
from .firestore_client import FirestoreDB
from .firestore_fields import FirestoreField
from .firestore_model import FirestoreDocument
from .models import DOCUMENT_MODELS
from .subcollection_accessor import SubCollectionAccessor

__version__ = "0.1.0"


def init_tokflo(database: FirestoreDB, document_models: Optional[List[Type[FirestoreDocument]]] = None):
    """Bind every document model (all TokFlo models by default) to ``database``."""
    for model in document_models or DOCUMENT_MODELS:
        model.initialize_db(database)
        model.initialize_fields()


__all__ = [
    "FirestoreDocument",
    "FirestoreField",
    "FirestoreDB",
    "SubCollectionAccessor",
    "BatchOperation",
    "FirestoreOperators",
    "OrderByDirection",
    "init_tokflo",
]
