"""
Base Schema Classes for Pydantic Models

RULE: Domain value objects (bills, totals, serials) inherit from
FrozenSchema so every change produces a new object. Request bodies
inherit from BaseCreateSchema / BaseUpdateSchema.
"""

from pydantic import BaseModel, ConfigDict


class FrozenSchema(BaseModel):
    """
    Base class for immutable domain values.

    Features:
    - Assignment raises, use model_copy(update=...) instead
    - Population by field name or alias
    """
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.
    """
    model_config = ConfigDict(
        # Allow extra fields to be ignored (forward compatibility)
        extra='ignore',
    )


class BaseUpdateSchema(BaseModel):
    """
    Base class for update/patch schemas.

    All fields are optional by default for partial updates.
    """
    model_config = ConfigDict(
        extra='ignore',
    )
