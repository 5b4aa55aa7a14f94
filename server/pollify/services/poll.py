import logging
import secrets
import string
import time
from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pollify.core.actor import Actor
from pollify.core.errors import (
    AuthenticationRequiredError,
    ForbiddenError,
    NotFoundError,
    PollifyError,
)
from pollify.models.poll import Poll, PollOption, PollStatus, PollVisibility
from pollify.models.user import User
from pollify.models.vote import Ballot, Vote
from pollify.schemas.poll import PollCreate
from pollify.services.event_bus import publish_event
from pollify.services.rate_limit import check_create_poll_rate_limit

logger = logging.getLogger(__name__)

SLUG_ALPHABET = string.ascii_lowercase + string.digits
BASE36_DIGITS = string.digits + string.ascii_lowercase
SLUG_LENGTH = 8
MAX_SLUG_ATTEMPTS = 10

DEFAULT_RECENT_LIMIT = 6


@dataclass
class PollCounts:
    poll: Poll
    option_count: int
    vote_count: int


def _random_chars(length: int) -> str:
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))


def _to_base36(number: int) -> str:
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_DIGITS[remainder])
    return "".join(reversed(digits)) or "0"


def generate_slug(length: int = SLUG_LENGTH) -> str:
    """Generate a random lowercase alphanumeric poll slug."""
    return _random_chars(length)


def generate_unique_slug(db: Session) -> str:
    """Pick a slug not used by any poll, falling back to timestamp+random.

    The fallback is not re-checked; the unique index on ``polls.slug`` is
    the final guard.
    """
    for _ in range(MAX_SLUG_ATTEMPTS):
        slug = generate_slug()
        if not db.query(Poll.id).filter(Poll.slug == slug).first():
            return slug

    logger.warning("Slug collisions after %d attempts, using fallback", MAX_SLUG_ATTEMPTS)
    return f"{_to_base36(int(time.time() * 1000))}-{_random_chars(4)}"


def is_creator(poll: Poll, user: User | None) -> bool:
    return user is not None and poll.creator_id is not None and poll.creator_id == user.id


def can_view(poll: Poll, user: User | None) -> bool:
    """Private polls are visible to their creator only."""
    return poll.visibility != PollVisibility.PRIVATE.value or is_creator(poll, user)


def create_poll(db: Session, data: PollCreate, actor: Actor) -> Poll:
    """Create a poll with its options after charging the creator's rate limit."""
    try:
        check_create_poll_rate_limit(db, actor.rate_limit_key)

        poll = Poll(
            creator_id=actor.user_id,
            slug=generate_unique_slug(db),
            title=data.title,
            description=data.description,
            type=data.type.value,
            visibility=data.visibility.value,
            status=PollStatus.ACTIVE.value,
            max_selections=data.max_selections,
            show_results_before_vote=data.show_results_before_vote,
            require_auth_to_vote=data.require_auth_to_vote,
            allow_embed=data.allow_embed,
            allow_comments=data.allow_comments,
            closes_at=data.closes_at,
        )
        for index, option in enumerate(data.options):
            position = option.position if option.position is not None else index
            poll.options.append(PollOption(label=option.label, position=position))
        db.add(poll)
        db.commit()
    except (PollifyError, SQLAlchemyError):
        db.rollback()
        raise

    db.refresh(poll)
    logger.info("Poll %s created with %d options", poll.slug, len(data.options))
    return poll


def get_poll_by_id(db: Session, poll_id: int) -> Poll | None:
    return db.query(Poll).filter(Poll.id == poll_id).first()


def get_poll_or_404(db: Session, poll_id: int) -> Poll:
    poll = get_poll_by_id(db, poll_id)
    if poll is None:
        raise NotFoundError("Poll not found")
    return poll


def get_visible_poll(db: Session, poll_id: int, user: User | None) -> Poll:
    """Get a poll the caller may view; private polls look missing to others."""
    poll = get_poll_or_404(db, poll_id)
    if not can_view(poll, user):
        raise NotFoundError("Poll not found")
    return poll


def get_poll_by_slug(db: Session, slug: str, user: User | None) -> Poll | None:
    """Get a poll by slug, or None if missing or private to someone else."""
    poll = db.query(Poll).filter(Poll.slug == slug).first()
    if poll is None or not can_view(poll, user):
        return None
    return poll


def _with_counts(db: Session, polls: list[Poll]) -> list[PollCounts]:
    if not polls:
        return []
    poll_ids = [poll.id for poll in polls]
    option_counts = dict(
        db.query(PollOption.poll_id, func.count(PollOption.id))
        .filter(PollOption.poll_id.in_(poll_ids))
        .group_by(PollOption.poll_id)
        .all()
    )
    vote_counts = dict(
        db.query(Vote.poll_id, func.count(Vote.id))
        .filter(Vote.poll_id.in_(poll_ids))
        .group_by(Vote.poll_id)
        .all()
    )
    return [
        PollCounts(
            poll=poll,
            option_count=option_counts.get(poll.id, 0),
            vote_count=vote_counts.get(poll.id, 0),
        )
        for poll in polls
    ]


def list_polls_for_user(db: Session, user: User | None) -> list[PollCounts]:
    """Polls created by the caller, newest first. Anonymous callers get none."""
    if user is None:
        return []
    polls = (
        db.query(Poll)
        .filter(Poll.creator_id == user.id)
        .order_by(Poll.created_at.desc(), Poll.id.desc())
        .all()
    )
    return _with_counts(db, polls)


def list_recent_polls(db: Session, limit: int = DEFAULT_RECENT_LIMIT) -> list[PollCounts]:
    """Most recent public polls."""
    polls = (
        db.query(Poll)
        .filter(Poll.visibility == PollVisibility.PUBLIC.value)
        .order_by(Poll.created_at.desc(), Poll.id.desc())
        .limit(limit)
        .all()
    )
    return _with_counts(db, polls)


def get_results(db: Session, poll_id: int) -> dict[int, int]:
    """Vote count per option; options without votes are omitted."""
    rows = (
        db.query(Vote.option_id, func.count(Vote.id))
        .filter(Vote.poll_id == poll_id)
        .group_by(Vote.option_id)
        .all()
    )
    return {option_id: count for option_id, count in rows}


def get_statistics(db: Session, poll: Poll) -> dict:
    """Totals and the leading option for a poll's statistics panel."""
    results = get_results(db, poll.id)
    total_votes = sum(results.values())
    total_voters = db.query(func.count(Ballot.id)).filter(Ballot.poll_id == poll.id).scalar()

    leading_option = None
    if total_votes:
        labels = {option.id: option.label for option in poll.options}
        positions = {option.id: option.position for option in poll.options}
        # Ties go to the option listed first
        option_id = max(results, key=lambda oid: (results[oid], -positions.get(oid, 0)))
        leading_option = {
            "option_id": option_id,
            "label": labels.get(option_id, ""),
            "votes": results[option_id],
            "percentage": round(results[option_id] / total_votes * 100, 1),
        }

    return {
        "poll_id": poll.id,
        "total_votes": total_votes,
        "total_voters": total_voters or 0,
        "leading_option": leading_option,
        "status": poll.status,
        "is_expired": poll.is_expired(),
        "closes_at": poll.closes_at,
        "created_at": poll.created_at,
    }


def _require_creator(poll: Poll, user: User | None, verb: str) -> None:
    if user is None:
        raise AuthenticationRequiredError(f"You must be logged in to {verb} this poll")
    if not is_creator(poll, user):
        raise ForbiddenError(f"Not authorized to {verb} this poll")


def update_poll(
    db: Session,
    poll: Poll,
    user: User | None,
    title: str | None = None,
    description: str | None = None,
    status: PollStatus | None = None,
) -> Poll:
    """Update a poll's metadata. Creator only."""
    _require_creator(poll, user, "update")

    changed = False
    if title is not None:
        poll.title = title
        changed = True
    if description is not None:
        poll.description = description or None
        changed = True
    if status is not None:
        poll.status = status.value
        changed = True

    if changed:
        db.commit()
        db.refresh(poll)
        publish_event(poll.slug, "poll_updated", {"poll_id": poll.id, "status": poll.status})
    return poll


def close_poll(db: Session, poll: Poll, user: User | None) -> Poll:
    """Close a poll to further votes and comments. Creator only."""
    _require_creator(poll, user, "close")
    poll.status = PollStatus.CLOSED.value
    db.commit()
    db.refresh(poll)
    logger.info("Poll %s closed by user %s", poll.slug, user.id)
    publish_event(poll.slug, "poll_closed", {"poll_id": poll.id})
    return poll


def delete_poll(db: Session, poll: Poll, user: User | None) -> None:
    """Delete a poll with its options, votes and comments. Creator only."""
    _require_creator(poll, user, "delete")
    slug, poll_id = poll.slug, poll.id
    db.delete(poll)
    db.commit()
    logger.info("Poll %s deleted by user %s", slug, user.id)
    publish_event(slug, "poll_deleted", {"poll_id": poll_id})
