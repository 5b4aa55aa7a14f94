from datetime import datetime

from pydantic import BaseModel, Field, field_serializer, field_validator

from pollify.core.validation import is_valid_fingerprint
from pollify.schemas.user import UserSummary


class CommentCreate(BaseModel):
    # Length bounds are enforced by the comment service on the submitted text
    content: str
    fingerprint: str = Field(..., min_length=1, max_length=64)

    @field_validator("fingerprint")
    @classmethod
    def validate_fingerprint(cls, v: str) -> str:
        if not is_valid_fingerprint(v):
            raise ValueError("Invalid fingerprint")
        return v


class CommentCreated(BaseModel):
    comment_id: int


class CommentOut(BaseModel):
    id: int
    poll_id: int
    commenter_id: int | None = None
    content: str
    created_at: datetime
    commenter: UserSummary | None = None

    @field_serializer("created_at")
    def serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat() + "Z"
