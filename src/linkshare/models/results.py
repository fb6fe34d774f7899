from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SchemaUpdate(BaseModel):
    """Outcome of a schema mutation made through a shared link.

    ``result`` is the data-access service response; ``updated_schema`` is
    the canonical snapshot stored on the project after the change.
    """

    result: dict[str, Any] = Field(default_factory=dict)
    updated_schema: dict[str, Any]

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_response(self) -> dict[str, Any]:
        return {**self.result, "updatedSchema": self.updated_schema}


__all__ = ["SchemaUpdate"]
