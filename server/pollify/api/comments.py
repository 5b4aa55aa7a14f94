from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pollify.api.deps import get_current_user, get_db, get_optional_user
from pollify.core.actor import resolve_actor
from pollify.models.comment import Comment
from pollify.models.user import User
from pollify.schemas.comment import CommentCreate, CommentCreated, CommentOut
from pollify.schemas.common import StatusResponse
from pollify.schemas.user import UserSummary
from pollify.services.comment import create_comment, delete_comment, list_comments

router = APIRouter()


def _comment_to_out(comment: Comment) -> CommentOut:
    commenter = None
    if comment.commenter is not None:
        commenter = UserSummary(
            id=comment.commenter.id,
            name=comment.commenter.name or comment.commenter.username,
            image=comment.commenter.image_url,
        )
    return CommentOut(
        id=comment.id,
        poll_id=comment.poll_id,
        commenter_id=comment.commenter_id,
        content=comment.content,
        created_at=comment.created_at,
        commenter=commenter,
    )


@router.get("/polls/{poll_id}/comments", response_model=list[CommentOut])
def get_comments(
    poll_id: int,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> list[CommentOut]:
    return [_comment_to_out(c) for c in list_comments(db, poll_id, user)]


@router.post("/polls/{poll_id}/comments", response_model=CommentCreated, status_code=201)
def add_comment(
    poll_id: int,
    comment_data: CommentCreate,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> CommentCreated:
    actor = resolve_actor(user, comment_data.fingerprint)
    comment = create_comment(db, poll_id, comment_data.content, actor)
    return CommentCreated(comment_id=comment.id)


@router.delete("/comments/{comment_id}", response_model=StatusResponse)
def remove_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> StatusResponse:
    delete_comment(db, comment_id, current_user)
    return StatusResponse(status="deleted")
