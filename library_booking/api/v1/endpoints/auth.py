# library_booking/api/v1/endpoints/auth.py
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from loguru import logger
from pydantic import BaseModel

from library_booking.api.deps import get_store
from library_booking.core.config import ACCESS_TOKEN_EXPIRE_MINUTES
from library_booking.core.rate_limiter import limiter
from library_booking.core.security import create_access_token, get_current_active_user, verify_password
from library_booking.models.user import UserAccount
from library_booking.repositories.base import BookingStore

router = APIRouter(tags=["Authentication"])


class Token(BaseModel):
    access_token: str
    token_type: str


# --- Endpoint /token ---
@router.post("/token", response_model=Token)
@limiter.limit("20/minute")
async def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    store: BookingStore = Depends(get_store),
):
    user = await store.users.get_by_username(form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        logger.warning(f"Failed login for '{form_data.username}'.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if user.disabled:
        raise HTTPException(status_code=400, detail="Inactive user")

    access_token = create_access_token(
        data={"sub": user.username},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return {"access_token": access_token, "token_type": "bearer"}


# --- Endpoint /users/me ---
@router.get("/users/me", response_model=UserAccount.Response)
async def read_users_me(current_user: UserAccount = Depends(get_current_active_user)):
    return UserAccount.Response.model_validate(current_user, from_attributes=True)
