"""Pydantic schemas for voting."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from pollify.core.validation import is_valid_fingerprint


class VoteCast(BaseModel):
    option_ids: list[int] = Field(default_factory=list, max_length=100)
    fingerprint: str = Field(..., min_length=1, max_length=64)

    @field_validator("fingerprint")
    @classmethod
    def validate_fingerprint(cls, v: str) -> str:
        if not is_valid_fingerprint(v):
            raise ValueError("Invalid fingerprint")
        return v


class VoteCastResponse(BaseModel):
    status: str = "voted"
    option_ids: list[int]
    results: dict[int, int]


class HasVotedResponse(BaseModel):
    has_voted: bool


class VoteDetailOut(BaseModel):
    """A single vote row for the poll creator; fingerprints are not exposed."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    option_id: int
    voter_id: int | None = None
    created_at: datetime

    @field_serializer("created_at")
    def serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat() + "Z"
