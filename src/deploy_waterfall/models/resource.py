"""ResourceSpan entity - one leaf resource provisioning operation."""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import ConfigDict, Field, computed_field, field_validator

from deploy_waterfall.models.arm import ProvisioningOperationKind
from deploy_waterfall.models.base import WaterfallModel


FAILED_STATE = "Failed"


class ResourceSpan(WaterfallModel):
    """A resource created by a deployment, with its reconciled time range.

    The end time is always derived from start_time + duration so the two can
    never disagree.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Full ARM resource id")
    name: str
    operation_id: str = ""
    start_time: datetime
    duration: timedelta = Field(default=timedelta(0))
    provisioning_state: str = ""
    provisioning_operation: Optional[ProvisioningOperationKind] = None
    status_code: str = ""
    status_message: str = ""

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, v: timedelta) -> timedelta:
        if v < timedelta(0):
            raise ValueError("duration must be >= 0")
        return v

    @computed_field
    @property
    def end_time(self) -> datetime:
        return self.start_time + self.duration

    @property
    def is_failed(self) -> bool:
        return self.provisioning_state == FAILED_STATE

    @property
    def operation_name(self) -> str:
        """Resource path with the subscription/resource group/provider prefix removed.

        Example:
            /subscriptions/s/resourceGroups/rg/providers/Microsoft.Web/sites/app
            -> Microsoft.Web/sites/app
        """
        parts = [p for p in self.id.split("/") if p]
        lowered = [p.lower() for p in parts]
        if "providers" in lowered:
            last = len(lowered) - 1 - lowered[::-1].index("providers")
            return "/".join(parts[last + 1:])
        if lowered[:1] == ["subscriptions"]:
            parts = parts[2:]
            if [p.lower() for p in parts[:1]] == ["resourcegroups"]:
                parts = parts[2:]
        return "/".join(parts)
