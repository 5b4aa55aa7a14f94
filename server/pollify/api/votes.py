"""Voting endpoints, mounted under /polls."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pollify.api.deps import get_current_user, get_db, get_optional_user
from pollify.core.actor import resolve_actor
from pollify.models.user import User
from pollify.schemas.vote import HasVotedResponse, VoteCast, VoteCastResponse, VoteDetailOut
from pollify.services.poll import get_results
from pollify.services.vote import cast_vote, get_vote_details, has_voted

router = APIRouter()


@router.post("/{poll_id}/votes", response_model=VoteCastResponse, status_code=201)
def cast_poll_vote(
    poll_id: int,
    vote_data: VoteCast,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> VoteCastResponse:
    """Cast a ballot. One per fingerprint per poll; repeat attempts get 409."""
    actor = resolve_actor(user, vote_data.fingerprint)
    cast_vote(db, poll_id, vote_data.option_ids, actor)
    return VoteCastResponse(option_ids=vote_data.option_ids, results=get_results(db, poll_id))


@router.get("/{poll_id}/has-voted", response_model=HasVotedResponse)
def check_has_voted(
    poll_id: int,
    fingerprint: str = Query(..., min_length=1, max_length=64),
    db: Session = Depends(get_db),
) -> HasVotedResponse:
    return HasVotedResponse(has_voted=has_voted(db, poll_id, fingerprint))


@router.get("/{poll_id}/votes", response_model=list[VoteDetailOut])
def list_vote_details(
    poll_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[VoteDetailOut]:
    return [VoteDetailOut.model_validate(v) for v in get_vote_details(db, poll_id, current_user)]
