"""
Auth endpoints: login (OAuth2 password flow), token refresh and the
minimal user administration the attendance flows need.
"""

from fastapi import (APIRouter, Cookie, Depends, File, HTTPException, Request,
                     Response, UploadFile, status)
from fastapi.security import OAuth2PasswordRequestForm
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.api.v1.deps import get_current_active_user, get_db, get_services, require_admin
from rollcall.core.config import settings
from rollcall.core.security import (create_access_token, create_refresh_token,
                                    decode_refresh_token, get_password_hash,
                                    verify_password)
from rollcall.models.user import User
from rollcall.schemas.token import LogoutResponse, RefreshRequest, Token
from rollcall.schemas.user import UserCreate, UserRead
from rollcall.services.container import Services
from rollcall.services.storage import check_photo_upload

# Rate limiter, keyed by client IP
limiter = Limiter(key_func=get_remote_address)

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    response.set_cookie(
        key="access_token",
        value=f"Bearer {access_token}",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    response.set_cookie(
        key="refresh_token",
        value=refresh_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )


def _issue_tokens(response: Response, user: User) -> Token:
    access_token = create_access_token(user.id, role=user.role)
    refresh_token = create_refresh_token(user.id)
    _set_auth_cookies(response, access_token, refresh_token)
    return Token(access_token=access_token, refresh_token=refresh_token)


@router.post("/login", response_model=Token)
@limiter.limit("5/minute")
async def login_for_access_token(
    request: Request,
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
) -> Token:
    """Authenticate with user code or email plus password.

    Tokens are returned in the body and as HttpOnly cookies.
    """
    username = form_data.username.strip()
    result = await db.execute(
        select(User).where(or_(User.user_code == username, User.email == username.lower()))
    )
    user = result.scalars().first()

    if user is None or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )
    return _issue_tokens(response, user)


@router.post("/refresh", response_model=Token)
@limiter.limit("10/minute")
async def refresh_access_token_endpoint(
    request: Request,
    response: Response,
    body: RefreshRequest | None = None,
    refresh_token_cookie: str | None = Cookie(None, alias="refresh_token"),
    db: AsyncSession = Depends(get_db),
) -> Token:
    # Priority: Body > Cookie
    token_str = body.refresh_token if body and body.refresh_token else refresh_token_cookie
    if not token_str:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token missing",
        )

    payload = decode_refresh_token(token_str)
    if payload is None or not str(payload.get("sub", "")).isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )

    user = await db.get(User, int(payload["sub"]))
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return _issue_tokens(response, user)


@router.post("/logout", response_model=LogoutResponse)
async def logout(response: Response) -> LogoutResponse:
    """Clear auth cookies and end the session."""
    response.delete_cookie("access_token")
    response.delete_cookie("refresh_token")
    return LogoutResponse(message="Logged out")


@router.get("/me", response_model=UserRead)
async def read_current_user(
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Return profile of the currently authenticated user."""
    return current_user


# ── User management (admin-only) ───────────────────────────────────
@router.post("/users", response_model=UserRead, status_code=201)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> User:
    """Create a new user account (admin only)."""
    clauses = [User.user_code == body.user_code]
    if body.email:
        clauses.append(User.email == body.email)
    existing = await db.execute(select(User).where(or_(*clauses)))
    if existing.scalars().first() is not None:
        raise HTTPException(status_code=409, detail="User code or email already registered")

    user = User(
        user_code=body.user_code,
        name=body.name,
        email=body.email,
        phone=body.phone,
        hashed_password=get_password_hash(body.password),
        role=body.role,
        designation=body.designation,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@router.put("/users/{user_id}/photo", response_model=UserRead)
async def upload_reference_photo(
    user_id: int,
    photo: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
    _admin: User = Depends(require_admin),
) -> User:
    """Store the reference photo used for face verification."""
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    data = await photo.read()
    check_photo_upload(data, photo.content_type, services.settings.MAX_PHOTO_BYTES)
    user.profile_image_ref = await services.storage.store(data, photo.content_type, prefix="profile")
    await db.commit()
    await db.refresh(user)
    return user
