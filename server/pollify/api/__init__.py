from fastapi import APIRouter

from pollify.api import auth, comments, polls, sse, votes

api_router = APIRouter()


@api_router.get("/health", tags=["health"])
def api_health_check():
    """Health check endpoint for monitoring and load balancers."""
    return {"status": "ok", "service": "api"}


api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(polls.router, prefix="/polls", tags=["polls"])
api_router.include_router(votes.router, prefix="/polls", tags=["votes"])
api_router.include_router(comments.router, tags=["comments"])
api_router.include_router(sse.router, prefix="/public", tags=["sse"])
