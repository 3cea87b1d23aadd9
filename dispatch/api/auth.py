"""Bearer-token authentication and role guards"""

from datetime import datetime, timedelta
from typing import Any, Dict
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from dispatch.config import settings
from dispatch.database import get_db
from dispatch.models.user import User, UserRole
from dispatch.schemas.auth import Token, RefreshRequest, UserResponse

router = APIRouter()
logger = structlog.get_logger()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

ACCESS = "access"
REFRESH = "refresh"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _encode(user: User, token_type: str, lifetime: timedelta, **claims: Any) -> str:
    payload = {
        "sub": str(user.id),
        "type": token_type,
        "exp": datetime.utcnow() + lifetime,
        **claims,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _decode(token: str, token_type: str) -> Dict[str, Any]:
    """Claims of a valid token of the given type; raises JWTError or ValueError otherwise"""
    payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    if payload.get("type") != token_type or payload.get("sub") is None:
        raise JWTError(f"Not a {token_type} token")
    payload["sub"] = UUID(payload["sub"])
    return payload


def create_access_token(user: User) -> str:
    return _encode(
        user,
        ACCESS,
        timedelta(minutes=settings.access_token_expire_minutes),
        role=user.role.value,
    )


def create_refresh_token(user: User) -> str:
    # jti keeps tokens issued within the same second distinct for rotation
    return _encode(
        user,
        REFRESH,
        timedelta(days=settings.refresh_token_expire_days),
        jti=str(uuid4()),
    )


async def _issue_tokens(db: AsyncSession, user: User) -> Token:
    """Mint a token pair and remember the refresh token for rotation"""
    refresh = create_refresh_token(user)
    user.refresh_token = refresh
    await db.commit()

    return Token(
        access_token=create_access_token(user),
        refresh_token=refresh,
        expires_in=settings.access_token_expire_minutes * 60,
    )


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Active user named by the bearer token"""
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        claims = _decode(token, ACCESS)
    except (JWTError, ValueError):
        raise unauthorized

    user = await db.get(User, claims["sub"])
    if user is None or not user.is_active:
        raise unauthorized
    return user


def require_role(*roles: UserRole):
    """Dependency factory admitting only the given roles"""
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user
    return role_checker


@router.post("/login", response_model=Token)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    """Exchange email and password for a token pair"""
    result = await db.execute(select(User).where(User.email == form_data.username))
    user = result.scalar_one_or_none()

    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is disabled",
        )

    user.last_login = datetime.utcnow()
    logger.info("User logged in", user_id=str(user.id), role=user.role.value)
    return await _issue_tokens(db, user)


@router.post("/refresh", response_model=Token)
async def refresh_token(
    request: RefreshRequest,
    db: AsyncSession = Depends(get_db),
):
    """Rotate the refresh token and hand out a new access token"""
    invalid = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid refresh token",
    )

    try:
        claims = _decode(request.refresh_token, REFRESH)
    except (JWTError, ValueError):
        raise invalid

    user = await db.get(User, claims["sub"])
    if not user or not user.is_active or user.refresh_token != request.refresh_token:
        raise invalid

    return await _issue_tokens(db, user)


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user),
):
    return current_user


@router.post("/logout")
async def logout(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Invalidate the stored refresh token"""
    current_user.refresh_token = None
    await db.commit()
    return {"message": "Successfully logged out"}
