"""Services for IVR Flow Studio."""

from ivrflow.db import changeset_store, routing_store, segment_store, type_registry
from ivrflow.services.changeset_manager import ChangeSetLifecycleManager, ensure_transition
from ivrflow.services.flow_export import FlowExporter
from ivrflow.services.flow_import import FlowImporter
from ivrflow.services.flow_service import FlowService
from ivrflow.services.version_history import RoutingVersionHistory

# Global instances wired to the global stores
changeset_manager = ChangeSetLifecycleManager(
    segment_store, changeset_store, routing_store, type_registry
)
flow_service = FlowService(changeset_manager, segment_store, routing_store, type_registry)
flow_exporter = FlowExporter(flow_service)
flow_importer = FlowImporter(changeset_manager, segment_store, routing_store, type_registry)
version_history = RoutingVersionHistory(routing_store)

__all__ = [
    "ChangeSetLifecycleManager",
    "FlowExporter",
    "FlowImporter",
    "FlowService",
    "RoutingVersionHistory",
    "ensure_transition",
    "changeset_manager",
    "flow_service",
    "flow_exporter",
    "flow_importer",
    "version_history",
]
