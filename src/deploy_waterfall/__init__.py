"""Azure Deployment Waterfall.

Rebuilds the execution timeline of a nested ARM deployment:
- Recursive discovery of child deployments and created resources
- Reconciliation of inconsistent or missing start/end times
- ASCII waterfall tree rendering
- Jaeger trace export for trace viewers
"""

__version__ = "0.1.0"
