from pollify.schemas.auth import Token, TokenData
from pollify.schemas.comment import CommentCreate, CommentOut
from pollify.schemas.poll import PollCreate, PollOut, PollUpdate
from pollify.schemas.user import UserOut
from pollify.schemas.vote import VoteCast, VoteDetailOut

__all__ = [
    "Token",
    "TokenData",
    "UserOut",
    "PollCreate",
    "PollOut",
    "PollUpdate",
    "VoteCast",
    "VoteDetailOut",
    "CommentCreate",
    "CommentOut",
]
