# app/routes/auth.py
"""Authentication endpoints: registration, login and token generation."""

import logging

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import LocalIdentityProvider, get_identity_provider
from app.crud import register_user
from app.database import get_session
from app.errors import Unauthenticated
from app.models import User, UserRole
from app.schemas import UserCreate, UserLogin, UserResponse

logger = logging.getLogger(__name__)
router = APIRouter(tags=["auth"])


async def _login(db: AsyncSession, provider: LocalIdentityProvider, email: str, password: str):
    credential = await provider.authenticate(db, email, password)
    if not credential:
        logger.warning("Failed login for %s", email)
        raise Unauthenticated("Invalid email or password")
    logger.info("User %s logged in", email)
    return provider.issue_token(credential)


@router.post("/token")
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_session),
    provider: LocalIdentityProvider = Depends(get_identity_provider),
):
    """OAuth2 password flow used by interactive docs and external clients."""

    token = await _login(db, provider, form_data.username, form_data.password)
    return {"access_token": token, "token_type": "bearer"}


@router.post("/login")
async def login(
    user_in: UserLogin,
    db: AsyncSession = Depends(get_session),
    provider: LocalIdentityProvider = Depends(get_identity_provider),
):
    """JSON-based login used by the frontend."""

    token = await _login(db, provider, user_in.email, user_in.password)
    return {"accessToken": token, "tokenType": "bearer"}


@router.post("/register", response_model=UserResponse)
async def register(
    user_in: UserCreate,
    db: AsyncSession = Depends(get_session),
    provider: LocalIdentityProvider = Depends(get_identity_provider),
):
    """Register a parent account.  Staff roles are granted by an admin."""

    user = User(
        auth_uid="",
        name=user_in.name,
        email=user_in.email,
        phone=user_in.phone,
        street=user_in.street,
        city=user_in.city,
        state=user_in.state,
        zip_code=user_in.zip_code,
        role=UserRole.parent,
    )
    user = await register_user(db, provider, user, user_in.password)
    logger.info("User %s registered", user.email)
    return user
