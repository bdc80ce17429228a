"""Shared schema configuration."""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema serialized with camelCase keys, as the mobile client expects."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )
