from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pollify.core.time import utcnow
from pollify.models.base import Base


class PollType(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"


class PollVisibility(str, Enum):
    PUBLIC = "public"
    UNLISTED = "unlisted"
    PRIVATE = "private"


class PollStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class Poll(Base):
    __tablename__ = "polls"

    id: Mapped[int] = mapped_column(primary_key=True)
    creator_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    slug: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), default=PollType.SINGLE.value)
    visibility: Mapped[str] = mapped_column(
        String(20), default=PollVisibility.PUBLIC.value, index=True
    )
    status: Mapped[str] = mapped_column(String(20), default=PollStatus.ACTIVE.value)
    max_selections: Mapped[int | None] = mapped_column(Integer, nullable=True)
    show_results_before_vote: Mapped[bool] = mapped_column(Boolean, default=True)
    require_auth_to_vote: Mapped[bool] = mapped_column(Boolean, default=False)
    allow_embed: Mapped[bool] = mapped_column(Boolean, default=True)
    allow_comments: Mapped[bool] = mapped_column(Boolean, default=True)
    closes_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    creator: Mapped["User | None"] = relationship("User", back_populates="polls")
    options: Mapped[list["PollOption"]] = relationship(
        "PollOption",
        back_populates="poll",
        cascade="all, delete-orphan",
        order_by="PollOption.position",
    )
    ballots: Mapped[list["Ballot"]] = relationship(
        "Ballot", back_populates="poll", cascade="all, delete-orphan"
    )
    votes: Mapped[list["Vote"]] = relationship(
        "Vote", back_populates="poll", cascade="all, delete-orphan"
    )
    comments: Mapped[list["Comment"]] = relationship(
        "Comment", back_populates="poll", cascade="all, delete-orphan"
    )

    @property
    def is_closed(self) -> bool:
        return self.status == PollStatus.CLOSED.value

    def is_expired(self, now: datetime | None = None) -> bool:
        """A poll past ``closes_at`` stops accepting votes; status is not changed."""
        if self.closes_at is None:
            return False
        return self.closes_at < (now or utcnow())


class PollOption(Base):
    __tablename__ = "poll_options"

    id: Mapped[int] = mapped_column(primary_key=True)
    poll_id: Mapped[int] = mapped_column(ForeignKey("polls.id", ondelete="CASCADE"), index=True)
    label: Mapped[str] = mapped_column(String(100))
    position: Mapped[int] = mapped_column(Integer, default=0)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    poll: Mapped["Poll"] = relationship("Poll", back_populates="options")
