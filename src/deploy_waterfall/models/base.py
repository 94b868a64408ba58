"""Base model class with common functionality for all waterfall models."""

from datetime import datetime, timezone
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict


T = TypeVar("T", bound="WaterfallModel")


class WaterfallModel(BaseModel):
    """Base model class with JSON serialization support.

    All waterfall models inherit from this class to get consistent
    serialization/deserialization behavior.
    """

    model_config = ConfigDict(
        # Use enum values in serialization
        use_enum_values=True,
        # Accept both field names and ARM-style aliases
        populate_by_name=True,
    )

    def to_json(self, indent: int = 2) -> str:
        """Serialize model to JSON string.

        Args:
            indent: Indentation level for pretty printing (default: 2)

        Returns:
            JSON string representation of the model
        """
        return self.model_dump_json(indent=indent)

    def to_dict(self) -> dict[str, Any]:
        """Serialize model to dictionary."""
        return self.model_dump()

    @classmethod
    def from_dict(cls: type[T], data: dict[str, Any]) -> T:
        """Deserialize model from dictionary.

        Args:
            data: Dictionary to parse, typically an ARM response body

        Returns:
            Model instance
        """
        return cls.model_validate(data)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime has UTC timezone.

    Args:
        dt: Datetime to check/convert

    Returns:
        Datetime with UTC timezone, or None if input is None
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
