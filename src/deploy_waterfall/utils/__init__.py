"""Utility functions for the deployment waterfall tool."""

from deploy_waterfall.utils.time_utils import (
    duration_micros,
    format_duration,
    format_local_time,
    to_epoch_micros,
)

__all__ = [
    "duration_micros",
    "format_duration",
    "format_local_time",
    "to_epoch_micros",
]
