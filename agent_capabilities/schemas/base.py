"""Pydantic base schema utilities for capability models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """
    Base Pydantic model for all capability schemas.

    Configures common Pydantic behaviors:
    - ``populate_by_name=True``: Allow initialization by alias or field name.
    - ``alias_generator=to_camel``: Accept the camelCase keys used by host
      configuration files (``maxSubassistantDepth``) next to snake_case names.
    - ``extra="forbid"``: Prevent unknown fields from slipping into total models.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
        extra="forbid",
    )


class PatchSchema(BaseSchema):
    """
    Base model for partial (per-scope) overlays.

    Every field of a patch is optional and ``None`` means "no opinion". Unknown
    keys are dropped so an overlay written for a newer runtime is a no-op here
    instead of a validation failure.
    """
    model_config = ConfigDict(extra="ignore")


class FrozenSchema(BaseSchema):
    """
    Base model for total capability values.

    Instances reject attribute assignment; derive changed values with
    ``model_copy(update=...)``.
    """
    model_config = ConfigDict(frozen=True)
