from sqlalchemy import BigInteger, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pollify.models.base import Base


class RateLimitRecord(Base):
    """Action counter for one identifier in one epoch-aligned window."""

    __tablename__ = "rate_limits"
    __table_args__ = (
        UniqueConstraint("identifier", "action", "window_start", name="uq_rate_limit_window"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    identifier: Mapped[str] = mapped_column(String(100), index=True)
    action: Mapped[str] = mapped_column(String(30))
    window_start: Mapped[int] = mapped_column(BigInteger)  # epoch milliseconds
    count: Mapped[int] = mapped_column(Integer, default=0)
