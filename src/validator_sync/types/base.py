"""Reusable base model for persisted records and upstream payloads."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    A base model that converts field names to camel case when serializing.

    For example, the field name `last_processed_slot` in a Python model will be
    represented as `lastProcessedSlot` when it is serialized to JSON.

    Upstream telemetry payloads and stored documents both use camel case keys.
    Either spelling is accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_default=True,
    )
