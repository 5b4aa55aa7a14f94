"""Vote casting with fingerprint deduplication and per-fingerprint rate limits.

Each (poll, fingerprint) pair gets at most one Ballot row, enforced by a
unique constraint; the selected options hang off the ballot as Vote rows.
The whole cast is one transaction, so a rejected attempt leaves neither
votes nor a rate-limit charge behind.
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from pollify.core.actor import Actor, fingerprint_key
from pollify.core.errors import (
    AuthenticationRequiredError,
    DuplicateVoteError,
    ForbiddenError,
    InvalidOptionError,
    InvalidSelectionError,
    PollClosedError,
    PollExpiredError,
    PollifyError,
)
from pollify.models.poll import Poll, PollOption, PollType
from pollify.models.user import User
from pollify.models.vote import Ballot, Vote
from pollify.services.event_bus import publish_event
from pollify.services.poll import get_poll_or_404, get_results, is_creator
from pollify.services.rate_limit import check_vote_rate_limit

logger = logging.getLogger(__name__)


def ensure_accepting_votes(poll: Poll) -> None:
    if poll.is_closed:
        raise PollClosedError("This poll is closed")
    if poll.is_expired():
        raise PollExpiredError("This poll has expired")


def validate_selection(db: Session, poll: Poll, option_ids: list[int]) -> None:
    """Check option count against the poll type and that every option belongs to it."""
    count = len(option_ids)
    if len(set(option_ids)) != count:
        raise InvalidSelectionError("Each option can only be selected once")

    if poll.type == PollType.SINGLE.value:
        if count != 1:
            raise InvalidSelectionError("You must select exactly one option")
    else:
        if count == 0:
            raise InvalidSelectionError("You must select at least one option")
        if poll.max_selections and count > poll.max_selections:
            raise InvalidSelectionError(f"You can select at most {poll.max_selections} options")

    valid_ids = {
        option_id
        for (option_id,) in db.query(PollOption.id)
        .filter(PollOption.poll_id == poll.id, PollOption.id.in_(option_ids))
        .all()
    }
    if valid_ids != set(option_ids):
        raise InvalidOptionError("Invalid option selected")


def has_voted(db: Session, poll_id: int, fingerprint: str) -> bool:
    """Check if a fingerprint has already voted on a poll."""
    return (
        db.query(Ballot.id)
        .filter(Ballot.poll_id == poll_id, Ballot.voter_fingerprint == fingerprint)
        .first()
        is not None
    )


def cast_vote(db: Session, poll_id: int, option_ids: list[int], actor: Actor) -> Ballot:
    """Record one ballot for the actor's fingerprint with a vote per selected option.

    Raises NotFoundError, PollClosedError, PollExpiredError,
    AuthenticationRequiredError, InvalidSelectionError, InvalidOptionError,
    RateLimitedError or DuplicateVoteError; nothing is written on failure.
    """
    poll = get_poll_or_404(db, poll_id)
    ensure_accepting_votes(poll)

    if poll.require_auth_to_vote and not actor.is_authenticated:
        raise AuthenticationRequiredError("You must be logged in to vote on this poll")

    validate_selection(db, poll, option_ids)

    try:
        check_vote_rate_limit(db, fingerprint_key(actor.fingerprint))

        if has_voted(db, poll.id, actor.fingerprint):
            raise DuplicateVoteError()

        ballot = Ballot(
            poll_id=poll.id,
            voter_id=actor.user_id,
            voter_fingerprint=actor.fingerprint,
        )
        db.add(ballot)
        db.flush()  # Force the (poll, fingerprint) unique check before inserting votes

        for option_id in option_ids:
            db.add(
                Vote(
                    poll_id=poll.id,
                    option_id=option_id,
                    ballot_id=ballot.id,
                    voter_id=actor.user_id,
                    voter_fingerprint=actor.fingerprint,
                )
            )
        db.commit()
    except IntegrityError:
        # Unique constraint violation: a concurrent request already voted
        db.rollback()
        logger.info("Concurrent duplicate vote rejected on poll %s", poll_id)
        raise DuplicateVoteError() from None
    except DuplicateVoteError:
        db.rollback()
        logger.info("Duplicate vote rejected on poll %s", poll_id)
        raise
    except (PollifyError, SQLAlchemyError):
        db.rollback()
        raise

    db.refresh(ballot)
    logger.info("Vote cast on poll %s for %d option(s)", poll.slug, len(option_ids))
    publish_event(
        poll.slug,
        "vote_cast",
        {"poll_id": poll.id, "results": {str(k): v for k, v in get_results(db, poll.id).items()}},
    )
    return ballot


def get_vote_details(db: Session, poll_id: int, user: User | None) -> list[Vote]:
    """All vote rows for a poll, oldest first. Creator only."""
    poll = get_poll_or_404(db, poll_id)
    if user is None:
        raise AuthenticationRequiredError("You must be logged in to view vote details")
    if not is_creator(poll, user):
        raise ForbiddenError("Not authorized to view vote details")
    return db.query(Vote).filter(Vote.poll_id == poll.id).order_by(Vote.id).all()
