"""
Context entity: the host-owned scoping object (e.g. the current park).
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ContextEntity(BaseModel):
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: str = Field(min_length=1)
    name: str = ""
    attributes: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_attributes(cls, data: Any) -> Any:
        # Host objects are flat; everything besides id/name is opaque.
        if isinstance(data, dict) and "attributes" not in data:
            extra = {k: v for k, v in data.items() if k not in ("id", "name")}
            data = {"id": data.get("id"), "name": data.get("name") or "", "attributes": extra}
        return data
