"""ARM source records - raw deployment and operation data as reported by the API.

These models mirror the JSON returned by the Azure Resource Manager
deployments endpoints. Field names follow Python conventions while the
camelCase ARM names are accepted as aliases.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import BeforeValidator, Field, field_validator

from deploy_waterfall.models.base import WaterfallModel, ensure_utc


DEPLOYMENTS_RESOURCE_TYPE = "deployments"

# /subscriptions/{sub}/resourceGroups/{rg}/...
RESOURCE_GROUP_SEGMENT_INDEX = 4


class ProvisioningOperationKind(str, Enum):
    """Kind of provisioning operation reported for a deployment operation."""
    CREATE = "Create"
    DELETE = "Delete"
    READ = "Read"
    ACTION = "Action"
    WAITING = "Waiting"
    AZURE_ASYNC_OPERATION_WAITING = "AzureAsyncOperationWaiting"
    RESOURCE_CACHE_WAITING = "ResourceCacheWaiting"
    EVALUATE_DEPLOYMENT_OUTPUT = "EvaluateDeploymentOutput"
    DEPLOYMENT_CLEANUP = "DeploymentCleanup"
    NOT_SPECIFIED = "NotSpecified"
    UNKNOWN = "Unknown"

    @classmethod
    def _missing_(cls, value: object) -> "ProvisioningOperationKind":
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.lower():
                    return member
        return cls.UNKNOWN


def _parse_operation_kind(value: Any) -> Any:
    if isinstance(value, str):
        return ProvisioningOperationKind(value)
    return value


OperationKind = Annotated[
    Optional[ProvisioningOperationKind], BeforeValidator(_parse_operation_kind)
]


class DeploymentHandle(WaterfallModel):
    """Identifies a deployment at subscription or resource group scope."""

    subscription_id: str
    deployment_name: str
    resource_group: Optional[str] = None

    @property
    def is_resource_group_scoped(self) -> bool:
        return self.resource_group is not None

    @property
    def scope(self) -> str:
        """Scope in "subscriptionId" or "subscriptionId/resourceGroup" form."""
        if self.is_resource_group_scoped:
            return f"{self.subscription_id}/{self.resource_group}"
        return self.subscription_id

    @property
    def path(self) -> str:
        """ARM resource path of the deployment."""
        base = f"/subscriptions/{self.subscription_id}"
        if self.is_resource_group_scoped:
            base += f"/resourcegroups/{self.resource_group}"
        return f"{base}/providers/Microsoft.Resources/deployments/{self.deployment_name}"

    def __str__(self) -> str:
        return f"{self.scope}/{self.deployment_name}"


class ErrorDetail(WaterfallModel):
    """ARM error body."""

    code: Optional[str] = None
    message: Optional[str] = None


class DeploymentProperties(WaterfallModel):
    """The `properties` block of a deployment record."""

    timestamp: Optional[datetime] = None
    duration: Optional[timedelta] = None
    provisioning_state: Optional[str] = Field(None, alias="provisioningState")
    correlation_id: Optional[str] = Field(None, alias="correlationId")
    error: Optional[ErrorDetail] = None

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class DeploymentRecord(WaterfallModel):
    """A deployment as returned by GET .../deployments/{name}."""

    id: str
    name: str
    properties: DeploymentProperties = Field(default_factory=DeploymentProperties)

    @property
    def error_message(self) -> str:
        if self.properties.error and self.properties.error.message:
            return self.properties.error.message
        return ""


class TargetResource(WaterfallModel):
    """The resource an operation acted on."""

    id: Optional[str] = None
    resource_type: Optional[str] = Field(None, alias="resourceType")
    resource_name: Optional[str] = Field(None, alias="resourceName")

    @property
    def is_deployment(self) -> bool:
        """True when the target is itself a nested deployment."""
        if not self.resource_type:
            return False
        return self.resource_type.split("/")[-1].lower() == DEPLOYMENTS_RESOURCE_TYPE

    @property
    def resource_group(self) -> Optional[str]:
        """Resource group segment of the target id, None when subscription scoped."""
        if not self.id or "/resourcegroups/" not in self.id.lower():
            return None
        return self.id.split("/")[RESOURCE_GROUP_SEGMENT_INDEX]


class StatusMessage(WaterfallModel):
    """Operation status message; ARM sends either an object or a bare string."""

    status: Any = None
    error: Optional[ErrorDetail] = None

    @property
    def text(self) -> str:
        if self.status is not None:
            return self.status if isinstance(self.status, str) else str(self.status)
        if self.error and self.error.message:
            return self.error.message
        return ""


class OperationProperties(WaterfallModel):
    """The `properties` block of a deployment operation."""

    provisioning_operation: OperationKind = Field(
        None, alias="provisioningOperation"
    )
    provisioning_state: Optional[str] = Field(None, alias="provisioningState")
    timestamp: Optional[datetime] = None
    duration: Optional[timedelta] = None
    status_code: Optional[str] = Field(None, alias="statusCode")
    status_message: Optional[StatusMessage] = Field(None, alias="statusMessage")
    target_resource: Optional[TargetResource] = Field(None, alias="targetResource")

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @field_validator("status_message", mode="before")
    @classmethod
    def wrap_plain_status(cls, v: Any) -> Any:
        if isinstance(v, str):
            return {"status": v}
        return v


class OperationRecord(WaterfallModel):
    """A single deployment operation from GET .../deployments/{name}/operations."""

    id: str
    operation_id: Optional[str] = Field(None, alias="operationId")
    properties: OperationProperties = Field(default_factory=OperationProperties)

    @property
    def is_create(self) -> bool:
        return self.properties.provisioning_operation == ProvisioningOperationKind.CREATE
