from datetime import datetime

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from pollify.core.time import to_naive_utc, utcnow
from pollify.core.validation import is_valid_fingerprint, normalize_single_line, normalize_text
from pollify.models.poll import PollStatus, PollType, PollVisibility
from pollify.schemas.user import UserSummary

MIN_OPTIONS = 2
MAX_OPTIONS = 20
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 500
MAX_OPTION_LENGTH = 100


def _serialize_dt(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.isoformat() + "Z"


class OptionCreate(BaseModel):
    label: str = Field(..., min_length=1, max_length=MAX_OPTION_LENGTH)
    position: int | None = Field(default=None, ge=0)

    @field_validator("label")
    @classmethod
    def normalize_label(cls, v: str) -> str:
        normalized = normalize_single_line(v)
        if not normalized:
            raise ValueError("Option cannot be empty")
        return normalized


class PollCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)
    description: str | None = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)
    type: PollType = PollType.SINGLE
    visibility: PollVisibility = PollVisibility.PUBLIC
    options: list[OptionCreate] = Field(..., min_length=MIN_OPTIONS, max_length=MAX_OPTIONS)
    max_selections: int | None = Field(default=None, ge=1)
    show_results_before_vote: bool = True
    require_auth_to_vote: bool = False
    allow_embed: bool = True
    allow_comments: bool = True
    closes_at: datetime | None = None
    fingerprint: str = Field(..., min_length=1, max_length=64)

    @field_validator("title")
    @classmethod
    def normalize_title(cls, v: str) -> str:
        normalized = normalize_single_line(v)
        if not normalized:
            raise ValueError("Title is required")
        return normalized

    @field_validator("description")
    @classmethod
    def normalize_description(cls, v: str | None) -> str | None:
        return normalize_text(v) or None

    @field_validator("closes_at")
    @classmethod
    def closes_in_future(cls, v: datetime | None) -> datetime | None:
        if v is None:
            return v
        v = to_naive_utc(v)
        if v <= utcnow():
            raise ValueError("Closing time must be in the future")
        return v

    @field_validator("fingerprint")
    @classmethod
    def validate_fingerprint(cls, v: str) -> str:
        if not is_valid_fingerprint(v):
            raise ValueError("Invalid fingerprint")
        return v

    @model_validator(mode="after")
    def check_max_selections(self) -> "PollCreate":
        if self.type == PollType.SINGLE:
            self.max_selections = None
        elif self.max_selections is not None and self.max_selections > len(self.options):
            raise ValueError("max_selections cannot exceed the number of options")
        return self


class PollUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=MAX_TITLE_LENGTH)
    description: str | None = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)
    status: PollStatus | None = None

    @field_validator("title")
    @classmethod
    def normalize_title(cls, v: str | None) -> str | None:
        if v is None:
            return v
        normalized = normalize_single_line(v)
        if not normalized:
            raise ValueError("Title cannot be empty")
        return normalized

    @field_validator("description")
    @classmethod
    def normalize_description(cls, v: str | None) -> str | None:
        return normalize_text(v)


class PollCreated(BaseModel):
    poll_id: int
    slug: str


class OptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    poll_id: int
    label: str
    position: int
    image_url: str | None = None


class PollOut(BaseModel):
    id: int
    slug: str
    title: str
    description: str | None = None
    type: PollType
    visibility: PollVisibility
    status: PollStatus
    max_selections: int | None = None
    show_results_before_vote: bool
    require_auth_to_vote: bool
    allow_embed: bool
    allow_comments: bool
    closes_at: datetime | None = None
    is_expired: bool = False
    created_at: datetime
    creator: UserSummary | None = None
    options: list[OptionOut]

    @field_serializer("created_at")
    def serialize_datetime(self, dt: datetime) -> str:
        return _serialize_dt(dt)

    @field_serializer("closes_at")
    def serialize_datetime_optional(self, dt: datetime | None) -> str | None:
        return _serialize_dt(dt)


class PollSummary(BaseModel):
    """A poll row in the owner's dashboard."""

    id: int
    slug: str
    title: str
    description: str | None = None
    type: PollType
    visibility: PollVisibility
    status: PollStatus
    created_at: datetime
    option_count: int
    vote_count: int

    @field_serializer("created_at")
    def serialize_datetime(self, dt: datetime) -> str:
        return _serialize_dt(dt)


class RecentPollOut(BaseModel):
    id: int
    slug: str
    title: str
    created_at: datetime
    option_count: int
    vote_count: int

    @field_serializer("created_at")
    def serialize_datetime(self, dt: datetime) -> str:
        return _serialize_dt(dt)


class LeadingOption(BaseModel):
    option_id: int
    label: str
    votes: int
    percentage: float


class PollStatistics(BaseModel):
    poll_id: int
    total_votes: int
    total_voters: int
    leading_option: LeadingOption | None = None
    status: PollStatus
    is_expired: bool
    closes_at: datetime | None = None
    created_at: datetime

    @field_serializer("created_at")
    def serialize_datetime(self, dt: datetime) -> str:
        return _serialize_dt(dt)

    @field_serializer("closes_at")
    def serialize_datetime_optional(self, dt: datetime | None) -> str | None:
        return _serialize_dt(dt)
