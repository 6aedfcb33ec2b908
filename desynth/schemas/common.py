"""Shared schema base — camelCase wire format for every request and response."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts camelCase or snake_case input; dump with by_alias=True for camelCase."""
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def success(data: dict) -> dict:
    """Standard {success, data} envelope."""
    return {"success": True, "data": data}
