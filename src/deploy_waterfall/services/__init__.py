"""Services for the deployment waterfall tool.

Components:
- ArmDeploymentSource: Fetch deployments and operations from ARM
- DeploymentSequencer: Rebuild and reconcile the deployment timeline tree
- TreeDrawer: Render the tree as an ASCII waterfall
- TraceExporter: Render the tree as a Jaeger trace document
"""

from deploy_waterfall.services.arm_client import (
    ArmDeploymentSource,
    AzureCliTokenProvider,
    CredentialError,
    DeploymentSource,
    SourceFetchError,
)
from deploy_waterfall.services.sequencer import (
    BuildCancelled,
    DeploymentDataError,
    DeploymentSequencer,
)
from deploy_waterfall.services.tree_drawer import TreeDrawer
from deploy_waterfall.services.trace_exporter import TraceExporter

__all__ = [
    "ArmDeploymentSource",
    "AzureCliTokenProvider",
    "CredentialError",
    "DeploymentSource",
    "SourceFetchError",
    "BuildCancelled",
    "DeploymentDataError",
    "DeploymentSequencer",
    "TreeDrawer",
    "TraceExporter",
]
