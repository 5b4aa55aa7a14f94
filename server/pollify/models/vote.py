from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pollify.core.time import utcnow
from pollify.models.base import Base


class Ballot(Base):
    """One submission per (poll, fingerprint); the unique constraint is the dedup guard."""

    __tablename__ = "ballots"
    __table_args__ = (
        UniqueConstraint("poll_id", "voter_fingerprint", name="uq_ballot_poll_fingerprint"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    poll_id: Mapped[int] = mapped_column(ForeignKey("polls.id", ondelete="CASCADE"), index=True)
    voter_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    voter_fingerprint: Mapped[str] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    poll: Mapped["Poll"] = relationship("Poll", back_populates="ballots")
    votes: Mapped[list["Vote"]] = relationship(
        "Vote", back_populates="ballot", cascade="all, delete-orphan"
    )


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (UniqueConstraint("ballot_id", "option_id", name="uq_vote_ballot_option"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    poll_id: Mapped[int] = mapped_column(ForeignKey("polls.id", ondelete="CASCADE"), index=True)
    option_id: Mapped[int] = mapped_column(
        ForeignKey("poll_options.id", ondelete="CASCADE"), index=True
    )
    ballot_id: Mapped[int] = mapped_column(ForeignKey("ballots.id", ondelete="CASCADE"))
    voter_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    voter_fingerprint: Mapped[str] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    poll: Mapped["Poll"] = relationship("Poll", back_populates="votes")
    ballot: Mapped["Ballot"] = relationship("Ballot", back_populates="votes")
