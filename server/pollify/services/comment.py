import logging

from sqlalchemy.orm import Session, joinedload

from pollify.core.actor import Actor
from pollify.core.errors import (
    AuthenticationRequiredError,
    ForbiddenError,
    InputValidationError,
    NotFoundError,
    PollClosedError,
)
from pollify.core.validation import normalize_text, validate_length
from pollify.models.comment import Comment
from pollify.models.user import User
from pollify.services.event_bus import publish_event
from pollify.services.poll import can_view, get_poll_or_404, is_creator

logger = logging.getLogger(__name__)

MIN_COMMENT_LENGTH = 1
MAX_COMMENT_LENGTH = 1000


def list_comments(db: Session, poll_id: int, user: User | None) -> list[Comment]:
    """Comments on a poll, oldest first, with their commenters loaded."""
    poll = get_poll_or_404(db, poll_id)
    if not can_view(poll, user):
        raise ForbiddenError("Not authorized to view this poll")
    return (
        db.query(Comment)
        .options(joinedload(Comment.commenter))
        .filter(Comment.poll_id == poll.id)
        .order_by(Comment.created_at.asc(), Comment.id.asc())
        .all()
    )


def create_comment(db: Session, poll_id: int, content: str, actor: Actor) -> Comment:
    """Add a comment to an open poll that allows comments."""
    if not validate_length(content, MIN_COMMENT_LENGTH, MAX_COMMENT_LENGTH):
        raise InputValidationError(
            f"Comment must be between {MIN_COMMENT_LENGTH} and {MAX_COMMENT_LENGTH} characters"
        )
    content = normalize_text(content)
    if not content:
        raise InputValidationError("Comment cannot be blank")

    poll = get_poll_or_404(db, poll_id)
    if not poll.allow_comments:
        raise ForbiddenError("Comments are not allowed on this poll")
    if poll.is_closed:
        raise PollClosedError("Cannot comment on a closed poll")

    comment = Comment(
        poll_id=poll.id,
        commenter_id=actor.user_id,
        commenter_fingerprint=actor.fingerprint,
        content=content,
    )
    db.add(comment)
    db.commit()
    db.refresh(comment)
    publish_event(poll.slug, "comment_created", {"poll_id": poll.id, "comment_id": comment.id})
    return comment


def delete_comment(db: Session, comment_id: int, user: User | None) -> None:
    """Delete a comment. Allowed for its author and for the poll creator."""
    comment = db.query(Comment).filter(Comment.id == comment_id).first()
    if comment is None:
        raise NotFoundError("Comment not found")
    if user is None:
        raise AuthenticationRequiredError("You must be logged in to delete comments")

    poll = comment.poll
    is_author = comment.commenter_id is not None and comment.commenter_id == user.id
    if not is_author and not is_creator(poll, user):
        raise ForbiddenError("Not authorized to delete this comment")

    slug, poll_id = poll.slug, poll.id
    db.delete(comment)
    db.commit()
    logger.info("Comment %s deleted from poll %s by user %s", comment_id, slug, user.id)
    publish_event(slug, "comment_deleted", {"poll_id": poll_id, "comment_id": comment_id})
