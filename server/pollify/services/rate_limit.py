"""Fixed-window action limits stored in the ``rate_limits`` table.

Windows are aligned to epoch multiples of ``window_ms`` rather than to an
actor's first action, so a budget can reset early when an actor starts just
before a boundary.

The current window's counter is advanced by a single conditional upsert::

    INSERT ... ON CONFLICT (identifier, action, window_start)
    DO UPDATE SET count = count + 1 WHERE count < :allowance
    RETURNING count

so concurrent callers for the same key cannot both claim the last slot. The
limiter never commits; the calling service commits or rolls back the whole
unit of work.
"""

import logging
import math
import time

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from pollify.core.config import get_settings
from pollify.core.errors import RateLimitedError
from pollify.models.rate_limit import RateLimitRecord

logger = logging.getLogger(__name__)

VOTE_ACTION = "vote"
CREATE_POLL_ACTION = "create_poll"

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def window_start_for(now_ms: int, window_ms: int) -> int:
    """Start of the epoch-aligned window containing ``now_ms``."""
    return (now_ms // window_ms) * window_ms


def retry_after_seconds(earliest_window_start: int, window_ms: int, now_ms: int) -> int:
    """Seconds until the given window expires, never less than one."""
    remaining_ms = earliest_window_start + window_ms - now_ms
    return max(1, math.ceil(remaining_ms / 1000))


def _current_ms() -> int:
    return int(time.time() * 1000)


def _upsert_counter(
    db: Session,
    identifier: str,
    action: str,
    window_start: int,
    allowance: int,
) -> int | None:
    """Increment (or create) the window counter if it is below ``allowance``.

    Returns the new count, or None when the counter was already full.
    """
    dialect = db.get_bind().dialect.name
    insert = _INSERT_BY_DIALECT.get(dialect)
    if insert is None:
        raise RuntimeError(f"Rate limiting is not supported on the {dialect} dialect")

    stmt = insert(RateLimitRecord).values(
        identifier=identifier,
        action=action,
        window_start=window_start,
        count=1,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[
            RateLimitRecord.identifier,
            RateLimitRecord.action,
            RateLimitRecord.window_start,
        ],
        set_={"count": RateLimitRecord.count + 1},
        where=RateLimitRecord.count < allowance,
    ).returning(RateLimitRecord.count)
    return db.execute(stmt).scalar_one_or_none()


def check_rate_limit(
    db: Session,
    identifier: str,
    action: str,
    max_count: int,
    window_ms: int,
    now_ms: int | None = None,
) -> int:
    """Admit one ``action`` for ``identifier`` or raise RateLimitedError.

    Returns the number of actions recorded in the current window, including
    this one.
    """
    now = _current_ms() if now_ms is None else now_ms
    lookback = now - window_ms
    current_window = window_start_for(now, window_ms)

    # Plain rows rather than entities so counts are never served from the identity map
    records = db.execute(
        select(RateLimitRecord.window_start, RateLimitRecord.count)
        .where(
            RateLimitRecord.identifier == identifier,
            RateLimitRecord.action == action,
            RateLimitRecord.window_start >= lookback,
        )
        .order_by(RateLimitRecord.window_start)
    ).all()

    total = sum(count for _, count in records)
    if total >= max_count:
        retry_after = retry_after_seconds(records[0][0], window_ms, now)
        logger.warning(
            "Rate limit hit for %s on %s (%d/%d), retry in %ds",
            identifier,
            action,
            total,
            max_count,
            retry_after,
        )
        raise RateLimitedError(action, retry_after)

    # Windows that have fully elapsed no longer count toward any check
    db.execute(
        delete(RateLimitRecord).where(
            RateLimitRecord.identifier == identifier,
            RateLimitRecord.action == action,
            RateLimitRecord.window_start < lookback,
        )
    )

    carried_over = sum(count for start, count in records if start != current_window)
    allowance = max_count - carried_over
    count = _upsert_counter(db, identifier, action, current_window, allowance)
    if count is None:
        # A concurrent request took the remaining budget between read and upsert
        retry_after = retry_after_seconds(current_window, window_ms, now)
        logger.warning("Rate limit hit for %s on %s after concurrent update", identifier, action)
        raise RateLimitedError(action, retry_after)

    return count


def check_vote_rate_limit(db: Session, identifier: str) -> int:
    settings = get_settings()
    return check_rate_limit(
        db,
        identifier,
        VOTE_ACTION,
        settings.vote_rate_limit_count,
        settings.vote_rate_limit_window_ms,
    )


def check_create_poll_rate_limit(db: Session, identifier: str) -> int:
    settings = get_settings()
    return check_rate_limit(
        db,
        identifier,
        CREATE_POLL_ACTION,
        settings.create_poll_rate_limit_count,
        settings.create_poll_rate_limit_window_ms,
    )
