"""Common pydantic base for records that travel over the wire in camelCase."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Snake-case in Python, camelCase in JSON.

    Accepts either spelling on input (``populate_by_name``).  Use
    ``model_dump(by_alias=True, exclude_none=True)`` for the wire shape.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
