"""Export a flow as a portable, versioned document."""

import logging
from datetime import datetime, timezone

from ivrflow.graph import apply_order
from ivrflow.models import FLOW_DOCUMENT_VERSION, FlowDocument
from ivrflow.services.flow_service import FlowService

logger = logging.getLogger(__name__)


class FlowExporter:
    """Builds FlowDocuments for backup and migration between environments."""

    def __init__(self, flows: FlowService) -> None:
        self._flows = flows

    async def export(
        self,
        routing_id: str,
        change_set_id: str | None = None,
        exported_by: str | None = None,
    ) -> FlowDocument:
        """Export the published flow, or a draft.

        Segments come out in execution order with ``segment_order`` filled in,
        alongside the validation report of the exported flow.
        """
        flow = await self._flows.load_flow(routing_id, change_set_id)
        segments = apply_order(flow.segments, flow.init_segment)

        document = FlowDocument.model_validate(
            {
                **flow.model_dump(),
                "version": FLOW_DOCUMENT_VERSION,
                "segments": segments,
                "exported_at": datetime.now(timezone.utc),
                "exported_by": exported_by,
            }
        )
        logger.info(
            "Exported %s (%s, %d segments)",
            routing_id,
            change_set_id or "published",
            len(segments),
        )
        return document
