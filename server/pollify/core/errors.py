"""Domain errors raised by the service layer and their HTTP rendering.

Services raise these; a single exception handler registered on the app turns
them into JSON responses, so routers do not translate them one by one.
"""

import logging

from fastapi import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)


class PollifyError(Exception):
    """Base class for failures surfaced directly to the caller."""

    status_code = 400
    code = "bad_request"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class NotFoundError(PollifyError):
    status_code = 404
    code = "not_found"


class ForbiddenError(PollifyError):
    status_code = 403
    code = "forbidden"


class AuthenticationRequiredError(PollifyError):
    status_code = 401
    code = "authentication_required"


class InputValidationError(PollifyError):
    status_code = 422
    code = "validation_error"


class InvalidSelectionError(InputValidationError):
    """Option count does not fit the poll type."""

    code = "invalid_selection"


class InvalidOptionError(InputValidationError):
    """An option id does not belong to the poll."""

    code = "invalid_option"


class DuplicateVoteError(PollifyError):
    status_code = 409
    code = "duplicate_vote"

    def __init__(self, detail: str = "You have already voted on this poll"):
        super().__init__(detail)


class PollClosedError(PollifyError):
    status_code = 410
    code = "poll_closed"


class PollExpiredError(PollClosedError):
    code = "poll_expired"


class RateLimitedError(PollifyError):
    status_code = 429
    code = "rate_limited"

    def __init__(self, action: str, retry_after: int):
        self.action = action
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded. Try again in {retry_after} seconds.")


def pollify_error_handler(request: Request, exc: PollifyError) -> JSONResponse:
    """Render a domain error as ``{"detail", "code"}`` with its status code."""
    content: dict = {"detail": exc.detail, "code": exc.code}
    headers = None
    if isinstance(exc, RateLimitedError):
        content["retry_after"] = exc.retry_after
        headers = {"Retry-After": str(exc.retry_after)}

    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.detail)
    else:
        logger.debug("%s on %s %s", exc.code, request.method, request.url.path)

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)
