"""
Stitchline API Dependencies

Dependency injection for DB sessions and the authenticated account.
"""

import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.models import User
from db.session import AsyncSessionLocal

settings = get_settings()
security = HTTPBearer(auto_error=not settings.debug)

DEV_USER_ID = "00000000-0000-0000-0000-000000000001"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Decode JWT and return user payload (``sub`` = user id, ``role``). Bypassed in debug mode."""
    if settings.debug:
        return {
            "sub": DEV_USER_ID,
            "email": "dev@stitchline.local",
            "role": "CUSTOMER",
        }

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    from core.security import decode_access_token

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return payload


def current_user_id(user: dict = Depends(get_current_user)) -> uuid.UUID:
    try:
        return uuid.UUID(str(user.get("sub")))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token subject is not a user id",
        ) from None


async def get_current_account(
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(current_user_id),
) -> User:
    """Stored account behind the token. Roles are read from the account, not the claims."""
    account = await db.get(User, user_id)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user",
        )
    return account
