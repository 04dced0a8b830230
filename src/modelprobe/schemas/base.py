"""
Shared pydantic base classes for modelprobe data models.

Every entity passed between the decoder, orchestrator, metrics engine and
monitor derives from one of these bases so serialization, enum handling and
attribute loading behave the same across the package.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

__all__ = ["FrozenBaseModel", "StandardBaseModel"]


class StandardBaseModel(BaseModel):
    """
    Base model with the project-wide pydantic configuration.

    Unknown fields are ignored, enum fields store their values and instances
    can be built from arbitrary objects with matching attributes.
    """

    model_config = ConfigDict(
        extra="ignore",
        use_enum_values=True,
        from_attributes=True,
    )

    @classmethod
    def get_default(cls, field: str) -> Any:
        """
        Get the default value for a model field.

        :param field: Name of the field
        :return: The field's default value
        :raises KeyError: If the field does not exist on the model
        """
        return cls.model_fields[field].default


class FrozenBaseModel(StandardBaseModel):
    """Immutable base for values that must not change once created."""

    model_config = ConfigDict(
        extra="ignore",
        use_enum_values=True,
        from_attributes=True,
        frozen=True,
    )
