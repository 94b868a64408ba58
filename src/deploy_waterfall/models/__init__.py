"""Data models for the deployment waterfall tool.

All entities use Pydantic for validation and serialization.
- DeploymentHandle / DeploymentRecord / OperationRecord: raw ARM data
- DeploymentNode / ResourceSpan: the reconciled ownership tree
"""

from deploy_waterfall.models.base import WaterfallModel, ensure_utc
from deploy_waterfall.models.arm import (
    DeploymentHandle,
    DeploymentProperties,
    DeploymentRecord,
    ErrorDetail,
    OperationProperties,
    OperationRecord,
    ProvisioningOperationKind,
    StatusMessage,
    TargetResource,
)
from deploy_waterfall.models.resource import ResourceSpan
from deploy_waterfall.models.deployment import DeploymentNode

__all__ = [
    # Base
    "WaterfallModel",
    "ensure_utc",
    # ARM records
    "DeploymentHandle",
    "DeploymentProperties",
    "DeploymentRecord",
    "ErrorDetail",
    "OperationProperties",
    "OperationRecord",
    "ProvisioningOperationKind",
    "StatusMessage",
    "TargetResource",
    # Reconciled tree
    "ResourceSpan",
    "DeploymentNode",
]
