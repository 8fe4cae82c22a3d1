from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, Field, field_validator

# First character alphanumeric, so a template id can never be "." or ".." in a storage path.
TEMPLATE_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,254}$"
_TEMPLATE_ID_RE = re.compile(TEMPLATE_ID_PATTERN)


def is_valid_template_id(value: str) -> bool:
    return bool(_TEMPLATE_ID_RE.fullmatch(value))


class RenderRequest(BaseModel):
    templateId: str = Field(pattern=TEMPLATE_ID_PATTERN)
    tokens: dict[str, Any] = Field(default_factory=dict)
    userId: str | None = None

    @field_validator("tokens", mode="before")
    @classmethod
    def default_tokens(cls, value: Any) -> Any:
        return {} if value is None else value


class RenderResponse(BaseModel):
    url: str
    cached: bool


class BuildLinkRequest(BaseModel):
    base: str = Field(min_length=1)
    templateId: str = Field(pattern=TEMPLATE_ID_PATTERN)
    platform: str = Field(min_length=1)
    tokens: list[Any] | None = None
    expiresInSec: float | None = None
    src: str | None = None
    userId: str | int | None = None

    @field_validator("base")
    @classmethod
    def validate_base(cls, value: str) -> str:
        base = value.strip()
        if not base.startswith(("http://", "https://")):
            raise ValueError("base must be an absolute http(s) URL")
        return base.rstrip("/")


class BuildLinkResponse(BaseModel):
    url: str
    templateId: str
    platform: str
    tokens: list[str]
    expiresAt: int
