"""
Base models for chip topology data.

Provides shared base models with centralized configuration for all
schema classes, so the ``model_config`` declarations live in one place.

Architecture Decision:
    StrictModel (extra="forbid") is for configuration objects where extra
    fields indicate user typos. FrozenModel additionally makes instances
    immutable; everything derived from the configuration during
    elaboration is frozen once created.
"""

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class ChipBaseModel(BaseModel):
    """Base model with shared configuration for all chiptop schema models.

    Provides camelCase aliasing, assignment validation, and allows field
    population by either alias or Python name.
    """

    model_config = {
        "validate_assignment": True,
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class StrictModel(ChipBaseModel):
    """Base model that forbids unknown fields."""

    model_config = {
        **ChipBaseModel.model_config,
        "extra": "forbid",
    }


class FrozenModel(StrictModel):
    """Strict model whose instances cannot be modified after creation.

    Note: frozen models are hashable as long as their fields are, which
    lets ports and references be used as dictionary keys.
    """

    model_config = {
        **StrictModel.model_config,
        "frozen": True,
    }
