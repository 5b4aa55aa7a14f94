from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from pollify.api.deps import get_current_user, get_db, get_optional_user
from pollify.core.actor import resolve_actor
from pollify.core.config import get_settings
from pollify.models.poll import Poll
from pollify.models.user import User
from pollify.schemas.common import StatusResponse
from pollify.schemas.poll import (
    OptionOut,
    PollCreate,
    PollCreated,
    PollOut,
    PollStatistics,
    PollSummary,
    PollUpdate,
    RecentPollOut,
)
from pollify.schemas.user import UserSummary
from pollify.services.poll import (
    DEFAULT_RECENT_LIMIT,
    close_poll,
    create_poll,
    delete_poll,
    get_poll_by_slug,
    get_poll_or_404,
    get_results,
    get_statistics,
    get_visible_poll,
    list_polls_for_user,
    list_recent_polls,
    update_poll,
)

router = APIRouter()
settings = get_settings()


def _poll_to_out(poll: Poll) -> PollOut:
    """Convert Poll model to PollOut with ordered options and creator summary."""
    creator = None
    if poll.creator is not None:
        creator = UserSummary(
            id=poll.creator.id,
            name=poll.creator.name or poll.creator.username,
            image=poll.creator.image_url,
        )
    return PollOut(
        id=poll.id,
        slug=poll.slug,
        title=poll.title,
        description=poll.description,
        type=poll.type,
        visibility=poll.visibility,
        status=poll.status,
        max_selections=poll.max_selections,
        show_results_before_vote=poll.show_results_before_vote,
        require_auth_to_vote=poll.require_auth_to_vote,
        allow_embed=poll.allow_embed,
        allow_comments=poll.allow_comments,
        closes_at=poll.closes_at,
        is_expired=poll.is_expired(),
        created_at=poll.created_at,
        creator=creator,
        options=[
            OptionOut.model_validate(option)
            for option in sorted(poll.options, key=lambda o: (o.position, o.id))
        ],
    )


@router.post("", response_model=PollCreated, status_code=201)
def create_new_poll(
    poll_data: PollCreate,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> PollCreated:
    """Create a poll. Limited per user, or per fingerprint for anonymous callers."""
    poll = create_poll(db, poll_data, resolve_actor(user, poll_data.fingerprint))
    return PollCreated(poll_id=poll.id, slug=poll.slug)


@router.get("", response_model=list[PollSummary])
def list_my_polls(
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> list[PollSummary]:
    return [
        PollSummary(
            id=row.poll.id,
            slug=row.poll.slug,
            title=row.poll.title,
            description=row.poll.description,
            type=row.poll.type,
            visibility=row.poll.visibility,
            status=row.poll.status,
            created_at=row.poll.created_at,
            option_count=row.option_count,
            vote_count=row.vote_count,
        )
        for row in list_polls_for_user(db, user)
    ]


@router.get("/recent", response_model=list[RecentPollOut])
def list_recent(
    limit: int = Query(default=DEFAULT_RECENT_LIMIT, ge=1),
    db: Session = Depends(get_db),
) -> list[RecentPollOut]:
    limit = min(limit, settings.recent_polls_max_limit)
    return [
        RecentPollOut(
            id=row.poll.id,
            slug=row.poll.slug,
            title=row.poll.title,
            created_at=row.poll.created_at,
            option_count=row.option_count,
            vote_count=row.vote_count,
        )
        for row in list_recent_polls(db, limit)
    ]


@router.get("/{slug}", response_model=PollOut)
def get_poll(
    slug: str,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> PollOut:
    poll = get_poll_by_slug(db, slug, user)
    if poll is None:
        raise HTTPException(status_code=404, detail="Poll not found")
    return _poll_to_out(poll)


@router.get("/{poll_id}/results", response_model=dict[int, int])
def get_poll_results(
    poll_id: int,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> dict[int, int]:
    poll = get_visible_poll(db, poll_id, user)
    return get_results(db, poll.id)


@router.get("/{poll_id}/stats", response_model=PollStatistics)
def get_poll_statistics(
    poll_id: int,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> PollStatistics:
    poll = get_visible_poll(db, poll_id, user)
    return PollStatistics(**get_statistics(db, poll))


@router.patch("/{poll_id}", response_model=PollOut)
def update_existing_poll(
    poll_id: int,
    update_data: PollUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PollOut:
    poll = get_poll_or_404(db, poll_id)
    updated = update_poll(
        db,
        poll,
        current_user,
        title=update_data.title,
        description=update_data.description,
        status=update_data.status,
    )
    return _poll_to_out(updated)


@router.post("/{poll_id}/close", response_model=PollOut)
def close_existing_poll(
    poll_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PollOut:
    poll = get_poll_or_404(db, poll_id)
    return _poll_to_out(close_poll(db, poll, current_user))


@router.delete("/{poll_id}", response_model=StatusResponse)
def delete_existing_poll(
    poll_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> StatusResponse:
    poll = get_poll_or_404(db, poll_id)
    delete_poll(db, poll, current_user)
    return StatusResponse(status="deleted")
