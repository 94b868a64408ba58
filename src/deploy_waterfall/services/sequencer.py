"""Deployment Sequencer - rebuilds a nested deployment as a reconciled timeline tree.

Responsible for:
- Walking a deployment and its nested deployments depth-first
- Turning "Create" operations into resource spans
- Repairing start/end times so every node sits inside its parent's window
- Ordering sibling deployments into a contiguous waterfall

ARM reports each operation's timestamp independently, with no ordering or
containment guarantees between a deployment and its children. The sequencer
imposes one consistent timeline:

1. A record's timestamp is its end; start = timestamp - duration. Without a
   duration the start falls back to the walk anchor (the root's start).
2. A deployment is moved to start exactly where the previous sibling ended.
3. Every interval is clipped into its parent's window.
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from deploy_waterfall.models import (
    DeploymentHandle,
    DeploymentNode,
    DeploymentRecord,
    OperationRecord,
    ResourceSpan,
)
from deploy_waterfall.services.arm_client import DeploymentSource

logger = logging.getLogger(__name__)


class DeploymentDataError(Exception):
    """Raised when a record lacks data the timeline cannot be built without."""
    pass


class BuildCancelled(Exception):
    """Raised when a build is cancelled before it completes."""
    pass


@dataclass(frozen=True)
class SequencingContext:
    """Read-only state threaded through every recursive call."""

    source: DeploymentSource
    subscription_id: str
    first_deployment_time: datetime
    cancel_event: Optional[threading.Event] = None

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise BuildCancelled("Deployment walk cancelled")


@dataclass(frozen=True)
class Window:
    """A reconciled [start, start + duration] interval."""

    start: datetime
    duration: timedelta

    @property
    def end(self) -> datetime:
        return self.start + self.duration


@dataclass(frozen=True)
class _Owner:
    """The parts of a deployment its children need while it is being built."""

    uid: str
    window: Window


def clip_to_window(start: datetime, duration: timedelta, window: Window) -> Window:
    """Shift or shrink an interval so it lies within the window.

    A start before the window is pinned to the window start. An end after the
    window is pinned to the window end, moving the start back by the
    duration; if that overshoots the window start the duration shrinks.

    Args:
        start: Candidate start time
        duration: Candidate duration (negative values are treated as zero)
        window: Enclosing interval

    Returns:
        The clipped interval
    """
    duration = max(duration, timedelta(0))
    if start < window.start:
        start = window.start
    if start + duration > window.end:
        end = window.end
        start = end - duration
        if start < window.start:
            start = window.start
            duration = end - start
    return Window(start=start, duration=duration)


def sequence_after(start: datetime, previous: Window) -> datetime:
    """Move a sibling's start to where the previous sibling ended.

    Closes a gap after the previous sibling and forbids starting while the
    previous sibling is still running.
    """
    if start != previous.end:
        logger.debug("Moving sibling start %s to previous end %s", start, previous.end)
    return previous.end


class DeploymentSequencer:
    """Builds a reconciled DeploymentNode tree from a deployment source."""

    def build_tree(
        self,
        source: DeploymentSource,
        handle: DeploymentHandle,
        cancel_event: Optional[threading.Event] = None,
    ) -> DeploymentNode:
        """Fetch a deployment and every nested deployment into one tree.

        Args:
            source: Supplies deployment and operation records
            handle: Root deployment
            cancel_event: Optional event; when set the walk aborts before the next fetch

        Returns:
            The fully reconciled root DeploymentNode

        Raises:
            DeploymentDataError: If the root lacks a timestamp or duration
            BuildCancelled: If cancel_event is set mid-walk
            SourceFetchError: If any fetch fails (propagated from the source)
        """
        if cancel_event is not None and cancel_event.is_set():
            raise BuildCancelled("Deployment walk cancelled")

        record = source.get_deployment(handle)
        end = self._require_timestamp(record)
        if record.properties.duration is None:
            raise DeploymentDataError(
                f"Root deployment {record.id} has no duration; cannot anchor the timeline"
            )

        context = SequencingContext(
            source=source,
            subscription_id=handle.subscription_id,
            first_deployment_time=end - record.properties.duration,
            cancel_event=cancel_event,
        )
        logger.info("Building waterfall for %s", handle)
        return self._build_node(
            context,
            handle,
            record,
            parent=None,
            previous=None,
        )

    def _build_node(
        self,
        context: SequencingContext,
        handle: DeploymentHandle,
        record: DeploymentRecord,
        parent: Optional["_Owner"],
        previous: Optional[DeploymentNode],
    ) -> DeploymentNode:
        """Reconcile one deployment and, recursively, everything it created.

        Args:
            context: Walk-wide read-only state
            handle: This deployment's handle
            record: This deployment's already fetched record
            parent: The owning deployment, None for the root
            previous: Last completed sibling, None for the first child
        """
        window, timing_from_parent = self._reconcile_window(context, record, parent, previous)

        uid = str(uuid.uuid4())
        if previous is not None:
            parent_uid = previous.uid
        elif parent is not None:
            parent_uid = parent.uid
        else:
            parent_uid = ""

        context.check_cancelled()
        operations = context.source.get_operations(handle)
        owner = _Owner(uid=uid, window=window)

        resources: list[ResourceSpan] = []
        children: list[DeploymentNode] = []
        for operation in operations:
            target = operation.properties.target_resource
            if not operation.is_create or target is None:
                continue
            if target.is_deployment:
                previous_child = children[-1] if children else None
                children.append(self._build_child(context, operation, owner, previous_child))
            else:
                resources.append(self._build_resource(operation, window))

        return DeploymentNode(
            id=record.id,
            uid=uid,
            parent_uid=parent_uid,
            name=record.name,
            resource_group=handle.resource_group,
            correlation_id=record.properties.correlation_id or "",
            start_time=window.start,
            duration=window.duration,
            status_code=record.properties.provisioning_state or "",
            status_message=record.error_message,
            is_timing_from_parent=timing_from_parent,
            resources=resources,
            child_deployments=children,
        )

    def _build_child(
        self,
        context: SequencingContext,
        operation: OperationRecord,
        owner: "_Owner",
        previous: Optional[DeploymentNode],
    ) -> DeploymentNode:
        target = operation.properties.target_resource
        if not target.resource_name:
            raise DeploymentDataError(f"Operation {operation.id} targets a deployment without a name")
        child_handle = DeploymentHandle(
            subscription_id=context.subscription_id,
            deployment_name=target.resource_name,
            resource_group=target.resource_group,
        )
        context.check_cancelled()
        record = context.source.get_deployment(child_handle)
        return self._build_node(context, child_handle, record, parent=owner, previous=previous)

    def _reconcile_window(
        self,
        context: SequencingContext,
        record: DeploymentRecord,
        parent: Optional["_Owner"],
        previous: Optional[DeploymentNode],
    ) -> tuple[Window, bool]:
        """Compute a deployment's corrected interval.

        Returns:
            The interval and whether its start was inferred from the walk anchor
        """
        end = self._require_timestamp(record)
        duration = record.properties.duration
        timing_from_parent = duration is None

        if duration is None:
            start = context.first_deployment_time
            duration = max(end - start, timedelta(0))
            start = end - duration
            logger.debug("Deployment %s has no duration; anchored at %s", record.name, start)
        else:
            start = end - duration

        if previous is not None:
            start = sequence_after(start, Window(previous.start_time, previous.duration))

        if parent is None:
            return Window(start=start, duration=duration), timing_from_parent

        clipped = clip_to_window(start, duration, parent.window)
        if clipped.start != start or clipped.duration != duration:
            logger.debug(
                "Clipped deployment %s into parent window [%s, %s]",
                record.name, parent.window.start, parent.window.end,
            )
        return clipped, timing_from_parent

    def _build_resource(self, operation: OperationRecord, window: Window) -> ResourceSpan:
        """Turn a create operation into a resource span inside the owner's window."""
        props = operation.properties
        target = props.target_resource
        if props.timestamp is None:
            raise DeploymentDataError(f"Operation {operation.id} has no timestamp")

        end = props.timestamp
        duration = props.duration or timedelta(0)
        clipped = clip_to_window(end - duration, duration, window)

        status_message = props.status_message.text if props.status_message else ""
        return ResourceSpan(
            id=target.id or "",
            name=target.resource_name or "",
            operation_id=operation.operation_id or operation.id,
            start_time=clipped.start,
            duration=clipped.duration,
            provisioning_state=props.provisioning_state or "",
            provisioning_operation=props.provisioning_operation,
            status_code=props.status_code or "",
            status_message=status_message,
        )

    @staticmethod
    def _require_timestamp(record: DeploymentRecord) -> datetime:
        if record.properties.timestamp is None:
            raise DeploymentDataError(f"Deployment {record.id} has no timestamp")
        return record.properties.timestamp

