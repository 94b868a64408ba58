"""DeploymentNode entity - one deployment in the reconciled ownership tree."""

from datetime import datetime, timedelta
from typing import Iterator, Optional

from pydantic import ConfigDict, Field, computed_field, field_validator

from deploy_waterfall.models.base import WaterfallModel
from deploy_waterfall.models.resource import FAILED_STATE, ResourceSpan


class DeploymentNode(WaterfallModel):
    """A root or nested deployment with its reconciled time range.

    Nodes are built once, bottom-up, by the sequencer and are frozen
    afterwards. A node owns its resources and child deployments; the child
    only refers back to its predecessor through parent_uid.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="ARM deployment id")
    uid: str = Field(..., description="Locally generated correlation id")
    parent_uid: str = Field("", description="uid of the preceding node, empty for the root")
    name: str
    resource_group: Optional[str] = Field(None, description="None when subscription scoped")
    correlation_id: str = ""
    start_time: datetime
    duration: timedelta = Field(default=timedelta(0))
    status_code: str = ""
    status_message: str = ""
    is_timing_from_parent: bool = False
    resources: list[ResourceSpan] = Field(default_factory=list)
    child_deployments: list["DeploymentNode"] = Field(default_factory=list)

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
    def is_root(self) -> bool:
        return self.parent_uid == ""

    @property
    def is_failed(self) -> bool:
        return self.status_code == FAILED_STATE

    @property
    def display_name(self) -> str:
        """Name qualified by resource group, e.g. "rg-app/main" or "/main"."""
        return f"{self.resource_group or ''}/{self.name}"

    def walk(self) -> Iterator["DeploymentNode"]:
        """Yield this node and all descendants in pre-order."""
        yield self
        for child in self.child_deployments:
            yield from child.walk()
