# library_booking/core/security.py
from datetime import datetime, timedelta, timezone
from typing import List, Optional
import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from library_booking.api.deps import get_store
from library_booking.core.config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, SECRET_KEY
from library_booking.models.user import STAFF_ROLES, UserAccount, UserRole
from library_booking.repositories.base import BookingStore

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")


# --- Password Functions ---
def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


# --- Token Function ---
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


# --- Current User ---
async def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    store: BookingStore = Depends(get_store),
) -> UserAccount:
    """
    Gets the current user from the request state (set by AuthMiddleware)
    or decodes the token if state is not available.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    username: Optional[str] = getattr(request.state, "username", None)
    if not username:
        logger.warning("Username not found in request state, attempting token decode in dependency.")
        try:
            payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
            username = payload.get("sub")
        except JWTError:
            logger.warning("Token decode failed in get_current_user dependency.")
            raise credentials_exception
        if not username:
            raise credentials_exception

    user = await store.users.get_by_username(username)
    if user is None:
        logger.warning(f"User '{username}' not found.")
        raise credentials_exception
    return user


async def get_current_active_user(current_user: UserAccount = Depends(get_current_user)) -> UserAccount:
    if current_user.disabled:
        logger.warning(f"Access denied for disabled user '{current_user.username}'.")
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user


# --- Role Checking Dependencies ---
def require_roles(required_roles: List[UserRole]):
    """
    Factory for a dependency that checks if the current user has one of the required roles.
    """
    async def roles_checker(current_user: UserAccount = Depends(get_current_active_user)) -> UserAccount:
        if current_user.role not in required_roles:
            logger.warning(
                f"Forbidden: User '{current_user.username}' with role '{current_user.role.value}' "
                f"attempted action requiring one of roles: {[r.value for r in required_roles]}."
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Operation not permitted. Required roles: {[r.value for r in required_roles]}",
            )
        return current_user
    return roles_checker


require_admin = require_roles([UserRole.ADMIN])
require_staff = require_roles(list(STAFF_ROLES))


def ensure_can_act_for(current_user: UserAccount, requester_id: str) -> None:
    """Members may only act on their own bookings; staff may act for anyone."""
    if current_user.is_staff or current_user.id == requester_id:
        return
    logger.warning(f"Forbidden: User '{current_user.username}' attempted to act for user '{requester_id}'.")
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Operation not permitted on another user's booking.",
    )
