"""
Bearer-token authentication for HR platform API endpoints.

Tokens are issued by the platform's identity service; this module only
verifies them and exposes role-based dependencies for the payroll routes.
"""

from datetime import datetime, timedelta
from typing import List, Optional
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from .config import settings

logger = logging.getLogger(__name__)

SECRET_KEY = settings.jwt_secret_key
ALGORITHM = settings.jwt_algorithm
ACCESS_TOKEN_EXPIRE_MINUTES = 30

security = HTTPBearer(auto_error=False)


class TokenData(BaseModel):
    """Token payload data."""

    user_id: Optional[int] = None
    username: Optional[str] = None
    email: Optional[str] = None
    roles: List[str] = []


class User(BaseModel):
    """User model for authentication."""

    id: int
    username: str
    email: str
    roles: List[str]
    is_active: bool = True


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed JWT access token."""
    to_encode = data.copy()
    expire = datetime.utcnow() + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> Optional[TokenData]:
    """
    Verify and decode a JWT access token.

    Returns:
        TokenData if valid, None otherwise
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None

    if payload.get("type") != "access":
        logger.warning(f"Token type mismatch: got {payload.get('type')}")
        return None

    try:
        user_id = int(payload.get("sub"))
    except (ValueError, TypeError):
        return None

    return TokenData(
        user_id=user_id,
        username=payload.get("username"),
        email=payload.get("email"),
        roles=payload.get("roles", []),
    )


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> User:
    """Resolve the current authenticated user from the bearer token."""

    if not credentials:
        raise _credentials_exception()

    token_data = verify_token(credentials.credentials)
    if token_data is None or token_data.user_id is None:
        raise _credentials_exception()

    username = token_data.username or f"user-{token_data.user_id}"
    return User(
        id=token_data.user_id,
        username=username,
        email=token_data.email or f"{username}@hr.local",
        roles=token_data.roles,
    )


def require_roles(required_roles: List[str]):
    """Enforce that the current user holds at least one of the specified roles."""

    required_set = set(required_roles)

    async def dependency(user: User = Depends(get_current_user)) -> User:
        user_roles = set(user.roles or [])
        if "admin" not in user_roles and not (user_roles & required_set):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Operation requires one of these roles: {required_roles}",
            )
        return user

    return dependency


# Common role dependencies
require_payroll_access = require_roles(["admin", "payroll_manager", "hr"])
require_payroll_write = require_roles(["admin", "payroll_manager"])
