"""Database module."""

from ivrflow.db.changeset_store import ChangeSetStore
from ivrflow.db.database import close_database, get_db, init_database, transaction
from ivrflow.db.routing_store import RoutingStore
from ivrflow.db.segment_store import ReplaceScopeResult, SegmentGraphStore
from ivrflow.db.type_dictionary import SegmentTypeRegistry

# Global instances
type_registry = SegmentTypeRegistry()
segment_store = SegmentGraphStore(type_registry)
changeset_store = ChangeSetStore()
routing_store = RoutingStore()

__all__ = [
    "get_db",
    "init_database",
    "close_database",
    "transaction",
    "SegmentGraphStore",
    "ReplaceScopeResult",
    "ChangeSetStore",
    "RoutingStore",
    "SegmentTypeRegistry",
    "segment_store",
    "changeset_store",
    "routing_store",
    "type_registry",
]
