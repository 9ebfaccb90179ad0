"""JWT validation and account authentication dependencies.

Tokens are issued by the login service and signed with the shared
``JWT_SECRET`` (HS256). The ``sub`` claim carries the account ID.
"""

import logging
import uuid as uuid_pkg
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.database import get_db
from app.domain.account_operations import account_ops
from app.models.account import Account

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def decode_account_id(token: str) -> uuid_pkg.UUID:
    """
    Verify a bearer token and return the account ID it was issued for.

    Raises JWTError or ValueError if the token is invalid.
    """
    if not settings.jwt_secret:
        raise JWTError("JWT_SECRET is not configured")

    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    account_id_str: str | None = payload.get("sub")
    if account_id_str is None:
        raise JWTError("Token has no subject")
    return uuid_pkg.UUID(account_id_str)


async def get_current_account_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> uuid_pkg.UUID:
    """
    Validate the JWT and return the account ID without touching the database.

    Used by endpoints that lock the account row themselves.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    try:
        return decode_account_id(credentials.credentials)
    except (JWTError, ValueError) as e:
        logger.info(f"Rejected bearer token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from None


async def get_current_account(
    account_id: uuid_pkg.UUID = Depends(get_current_account_id),
    db: AsyncSession = Depends(get_db),
) -> Account:
    """Validate the JWT and load the account it belongs to."""
    account = await account_ops.get(db, account_id)
    if not account:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account not found",
        )
    return account


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentAccountId = Annotated[uuid_pkg.UUID, Depends(get_current_account_id)]
CurrentAccount = Annotated[Account, Depends(get_current_account)]
