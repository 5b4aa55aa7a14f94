from pollify.models.base import Base
from pollify.models.comment import Comment
from pollify.models.poll import Poll, PollOption
from pollify.models.rate_limit import RateLimitRecord
from pollify.models.user import User
from pollify.models.vote import Ballot, Vote

__all__ = [
    "Base",
    "User",
    "Poll",
    "PollOption",
    "Ballot",
    "Vote",
    "Comment",
    "RateLimitRecord",
]
