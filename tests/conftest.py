"""Shared fixtures: an in-memory deployment source and ARM payload builders."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest

# Add src to path to enable direct module imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from deploy_waterfall.models import (
    DeploymentHandle,
    DeploymentNode,
    DeploymentRecord,
    OperationRecord,
    ResourceSpan,
)
from deploy_waterfall.services.arm_client import SourceFetchError


SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000001"

# Reference end time of the root deployment in most scenarios
T = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def arm_timestamp(dt: datetime) -> str:
    """Format like ARM does, with seven fractional digits."""
    return f"{dt:%Y-%m-%dT%H:%M:%S}.{dt.microsecond:06d}0Z"


def arm_duration(td: timedelta) -> str:
    """Format like ARM does, e.g. "PT1M30.5S"."""
    hours, rest = divmod(td.total_seconds(), 3600)
    minutes, seconds = divmod(rest, 60)
    return f"PT{int(hours)}H{int(minutes)}M{seconds:g}S"


def deployment_id(name: str, resource_group: Optional[str] = None) -> str:
    base = f"/subscriptions/{SUBSCRIPTION_ID}"
    if resource_group:
        base += f"/resourceGroups/{resource_group}"
    return f"{base}/providers/Microsoft.Resources/deployments/{name}"


def deployment_payload(
    name: str,
    end: Optional[datetime],
    duration: Optional[timedelta],
    resource_group: Optional[str] = None,
    state: str = "Succeeded",
    error_message: Optional[str] = None,
    correlation_id: str = "corr-0001",
) -> dict:
    """ARM JSON body of GET .../deployments/{name}."""
    properties: dict = {"provisioningState": state, "correlationId": correlation_id}
    if end is not None:
        properties["timestamp"] = arm_timestamp(end)
    if duration is not None:
        properties["duration"] = arm_duration(duration)
    if error_message:
        properties["error"] = {"code": "DeploymentFailed", "message": error_message}
    return {"id": deployment_id(name, resource_group), "name": name, "properties": properties}


def resource_operation(
    name: str,
    end: Optional[datetime],
    duration: Optional[timedelta],
    resource_group: str = "rg-app",
    resource_type: str = "Microsoft.Storage/storageAccounts",
    kind: str = "Create",
    state: str = "Succeeded",
    status_code: str = "OK",
    status_message=None,
) -> dict:
    """ARM JSON of one deployment operation creating a plain resource."""
    properties: dict = {
        "provisioningOperation": kind,
        "provisioningState": state,
        "statusCode": status_code,
        "targetResource": {
            "id": (
                f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/{resource_group}"
                f"/providers/{resource_type}/{name}"
            ),
            "resourceType": resource_type,
            "resourceName": name,
        },
    }
    if end is not None:
        properties["timestamp"] = arm_timestamp(end)
    if duration is not None:
        properties["duration"] = arm_duration(duration)
    if status_message is not None:
        properties["statusMessage"] = status_message
    return {"id": f"op-{name}", "operationId": f"op-{name}", "properties": properties}


def deployment_operation(
    name: str,
    resource_group: Optional[str] = None,
    kind: str = "Create",
) -> dict:
    """ARM JSON of an operation that started a nested deployment."""
    return {
        "id": f"op-deploy-{name}",
        "operationId": f"op-deploy-{name}",
        "properties": {
            "provisioningOperation": kind,
            "provisioningState": "Succeeded",
            "timestamp": arm_timestamp(T),
            "duration": "PT1S",
            "targetResource": {
                "id": deployment_id(name, resource_group),
                "resourceType": "Microsoft.Resources/deployments",
                "resourceName": name,
            },
        },
    }


class FakeDeploymentSource:
    """In-memory DeploymentSource keyed by (resource group, deployment name)."""

    def __init__(self):
        self.deployments: dict[tuple, dict] = {}
        self.operations: dict[tuple, list[dict]] = {}
        self.calls: list[tuple[str, str]] = []
        self.on_operations = None
        self.closed = False

    def add(self, payload: dict, operations: Optional[list[dict]] = None,
            resource_group: Optional[str] = None) -> "FakeDeploymentSource":
        key = (resource_group, payload["name"])
        self.deployments[key] = payload
        self.operations[key] = operations or []
        return self

    def get_deployment(self, handle: DeploymentHandle) -> DeploymentRecord:
        self.calls.append(("deployment", str(handle)))
        key = (handle.resource_group, handle.deployment_name)
        if key not in self.deployments:
            raise SourceFetchError(f"ARM API error: 404 - DeploymentNotFound: {handle}", 404)
        return DeploymentRecord.from_dict(self.deployments[key])

    def get_operations(self, handle: DeploymentHandle) -> list[OperationRecord]:
        self.calls.append(("operations", str(handle)))
        if self.on_operations is not None:
            self.on_operations(handle)
        key = (handle.resource_group, handle.deployment_name)
        return [OperationRecord.from_dict(op) for op in self.operations.get(key, [])]

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def make_resource(name: str, start: datetime, duration: timedelta,
                  state: str = "Succeeded", **kwargs) -> ResourceSpan:
    return ResourceSpan(
        id=(
            f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/rg-app"
            f"/providers/Microsoft.Storage/storageAccounts/{name}"
        ),
        name=name,
        operation_id=f"op-{name}",
        start_time=start,
        duration=duration,
        provisioning_state=state,
        provisioning_operation="Create",
        **kwargs,
    )


def make_node(name: str, start: datetime, duration: timedelta,
              resource_group: Optional[str] = None, uid: Optional[str] = None,
              parent_uid: str = "", resources=(), children=(), **kwargs) -> DeploymentNode:
    return DeploymentNode(
        id=deployment_id(name, resource_group),
        uid=uid or f"uid-{name}",
        parent_uid=parent_uid,
        name=name,
        resource_group=resource_group,
        start_time=start,
        duration=duration,
        resources=list(resources),
        child_deployments=list(children),
        **kwargs,
    )


@pytest.fixture
def source():
    """An empty fake deployment source."""
    return FakeDeploymentSource()


@pytest.fixture
def root_handle():
    return DeploymentHandle(
        subscription_id=SUBSCRIPTION_ID,
        deployment_name="main",
        resource_group="rg-app",
    )
