"""Who is performing an action: a signed-in user or an anonymous browser.

Both variants carry the client fingerprint, since ballots are deduplicated
by fingerprint regardless of sign-in state.
"""

from dataclasses import dataclass

from pollify.models.user import User


@dataclass(frozen=True)
class Authenticated:
    user_id: int
    fingerprint: str

    @property
    def rate_limit_key(self) -> str:
        return f"user:{self.user_id}"

    @property
    def is_authenticated(self) -> bool:
        return True


@dataclass(frozen=True)
class Anonymous:
    fingerprint: str

    @property
    def user_id(self) -> None:
        return None

    @property
    def rate_limit_key(self) -> str:
        return fingerprint_key(self.fingerprint)

    @property
    def is_authenticated(self) -> bool:
        return False


Actor = Authenticated | Anonymous


def fingerprint_key(fingerprint: str) -> str:
    """Rate-limit identifier for a bare fingerprint."""
    return f"fp:{fingerprint}"


def resolve_actor(user: User | None, fingerprint: str) -> Actor:
    """Build the actor for a request from the optional user and the fingerprint."""
    if user is not None:
        return Authenticated(user_id=user.id, fingerprint=fingerprint)
    return Anonymous(fingerprint=fingerprint)
