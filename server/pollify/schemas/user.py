import re
from datetime import datetime
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pollify.core.validation import normalize_single_line


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    name: str | None = None
    image_url: str | None = None
    is_active: bool
    created_at: datetime


class UserSummary(BaseModel):
    """Public profile embedded in polls and comments."""

    id: int
    name: str | None = None
    image: str | None = None


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=8)
    confirm_password: str
    name: str | None = Field(default=None, max_length=100)
    image_url: str | None = Field(default=None, max_length=500)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        if not re.match(r"^[a-zA-Z0-9_]+$", v):
            msg = "Username must contain only letters, numbers, and underscores"
            raise ValueError(msg)
        return v

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v: str, info) -> str:
        if "password" in info.data and v != info.data["password"]:
            msg = "Passwords do not match"
            raise ValueError(msg)
        return v

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str | None) -> str | None:
        return normalize_single_line(v) or None

    @field_validator("image_url")
    @classmethod
    def validate_image_url(cls, v: str | None) -> str | None:
        if v is None:
            return v
        if urlparse(v).scheme.lower() not in {"http", "https"}:
            raise ValueError("Image URL must use http or https")
        return v
