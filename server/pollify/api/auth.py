from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from pollify.api.deps import get_current_user, get_db
from pollify.core.config import get_settings
from pollify.core.rate_limit import limiter
from pollify.models.user import User
from pollify.schemas.auth import Token
from pollify.schemas.common import StatusMessageResponse
from pollify.schemas.user import RegisterRequest, UserOut
from pollify.services.auth import (
    authenticate_user,
    create_access_token,
    create_user,
    get_user_by_username,
)

router = APIRouter()
settings = get_settings()


@router.post("/login", response_model=Token)
@limiter.limit(lambda: f"{settings.login_rate_limit_per_minute}/minute")
def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
) -> Token:
    user = authenticate_user(db, form_data.username, form_data.password)
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(data={"sub": user.username})
    return Token(access_token=access_token)


@router.get("/me", response_model=UserOut)
def get_me(current_user: User = Depends(get_current_user)) -> User:
    return current_user


@router.post("/register", response_model=StatusMessageResponse, status_code=201)
@limiter.limit(lambda: f"{settings.registration_rate_limit_per_minute}/minute")
def register(
    request: Request,
    reg_data: RegisterRequest,
    db: Session = Depends(get_db),
) -> StatusMessageResponse:
    if get_user_by_username(db, reg_data.username):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Registration failed. Username already in use.",
        )

    create_user(
        db,
        reg_data.username,
        reg_data.password,
        name=reg_data.name,
        image_url=reg_data.image_url,
    )
    return StatusMessageResponse(status="ok", message="Account created. You can now log in.")
