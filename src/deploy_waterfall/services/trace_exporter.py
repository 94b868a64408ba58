"""Trace Exporter - renders a reconciled deployment tree as a Jaeger trace.

The output follows the Jaeger UI JSON import format:

    {"data": [{"traceID": ..., "spans": [...], "processes": {...}}]}

Every deployment becomes one span. Resources become spans that reuse the
owning deployment's spanID and reference it as CHILD_OF.
"""

import json
import uuid
from datetime import tzinfo
from typing import Any, Optional
from urllib.parse import quote

from deploy_waterfall.config import DEFAULT_PORTAL_URL
from deploy_waterfall.models import DeploymentNode, ResourceSpan
from deploy_waterfall.utils.time_utils import (
    duration_micros,
    format_local_time,
    to_epoch_micros,
)


TEMPLATE_PROCESS = "tmp"
OVERARCHING_PROCESS = "prt"
RESOURCE_PROCESS = "rsc"

PROCESSES = {
    TEMPLATE_PROCESS: {"serviceName": "template"},
    OVERARCHING_PROCESS: {"serviceName": "overarching"},
    RESOURCE_PROCESS: {"serviceName": "resource"},
}


class TraceExporter:
    """Builds a single-trace Jaeger document from a deployment tree."""

    def __init__(
        self,
        portal_url_template: str = DEFAULT_PORTAL_URL,
        tz: Optional[tzinfo] = None,
    ):
        """Initialize the exporter.

        Args:
            portal_url_template: Deep link template with an {id} placeholder
            tz: Timezone for the human-readable start/end tags (default: local)
        """
        self.portal_url_template = portal_url_template
        self.tz = tz

    def export(self, root: DeploymentNode) -> dict[str, Any]:
        """Build the trace document.

        Args:
            root: Reconciled root deployment

        Returns:
            Jaeger JSON document with one trace and a fresh traceID
        """
        trace_id = uuid.uuid4().hex
        spans: list[dict[str, Any]] = []
        self._add_spans(spans, trace_id, root)
        return {
            "data": [
                {
                    "traceID": trace_id,
                    "spans": spans,
                    "processes": {key: dict(value) for key, value in PROCESSES.items()},
                }
            ]
        }

    def to_json(self, root: DeploymentNode, indent: Optional[int] = None) -> str:
        """Export the tree and serialize it to a JSON string."""
        return json.dumps(self.export(root), indent=indent, ensure_ascii=False)

    def _add_spans(self, spans: list[dict[str, Any]], trace_id: str, deployment: DeploymentNode) -> None:
        spans.append(self._deployment_span(trace_id, deployment))
        for resource in deployment.resources:
            spans.append(self._resource_span(trace_id, deployment, resource))
        for child in deployment.child_deployments:
            self._add_spans(spans, trace_id, child)

    def _deployment_span(self, trace_id: str, deployment: DeploymentNode) -> dict[str, Any]:
        references = []
        if not deployment.is_root:
            references.append(self._child_of(trace_id, deployment.parent_uid))

        return {
            "traceID": trace_id,
            "spanID": deployment.uid,
            "operationName": deployment.name,
            "references": references,
            "startTime": to_epoch_micros(deployment.start_time),
            "duration": duration_micros(deployment.duration),
            "processID": (
                TEMPLATE_PROCESS if deployment.is_timing_from_parent else OVERARCHING_PROCESS
            ),
            "tags": [
                _tag("error", deployment.is_failed),
                _tag("correlation-id", deployment.correlation_id),
                _tag("start-time", format_local_time(deployment.start_time, self.tz)),
                _tag("end-time", format_local_time(deployment.end_time, self.tz)),
                _tag("url", self.portal_url(deployment)),
            ],
            "logs": [],
        }

    def _resource_span(
        self,
        trace_id: str,
        deployment: DeploymentNode,
        resource: ResourceSpan,
    ) -> dict[str, Any]:
        tags = [
            _tag("error", resource.is_failed),
            _tag("start-time", format_local_time(resource.start_time, self.tz)),
            _tag("end-time", format_local_time(resource.end_time, self.tz)),
        ]
        if resource.is_failed:
            tags.append(_tag("statusCode", resource.status_code))
            tags.append(_tag("statusMessage", resource.status_message))

        return {
            "traceID": trace_id,
            # Resources share the owning deployment's span id
            "spanID": deployment.uid,
            "operationName": resource.operation_name,
            "references": [self._child_of(trace_id, deployment.uid)],
            "startTime": to_epoch_micros(resource.start_time),
            "duration": duration_micros(resource.duration),
            "processID": RESOURCE_PROCESS,
            "tags": tags,
            "logs": [],
        }

    def portal_url(self, deployment: DeploymentNode) -> str:
        """Portal deep link for a deployment, with its id URL-escaped."""
        return self.portal_url_template.format(id=quote(deployment.id, safe=""))

    @staticmethod
    def _child_of(trace_id: str, span_id: str) -> dict[str, str]:
        return {"refType": "CHILD_OF", "traceID": trace_id, "spanID": span_id}


def _tag(key: str, value: Any) -> dict[str, Any]:
    if isinstance(value, bool):
        return {"key": key, "type": "bool", "value": value}
    return {"key": key, "type": "string", "value": value}
