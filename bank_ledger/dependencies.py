"""
FastAPI dependencies for authentication and authorization.

Dependencies are reusable functions that FastAPI injects into route handlers.
They form a dependency chain that enforces both authentication and
role-based access control:

  get_current_user (JWT -> User)
      ├── require_customer (User -> User)   [CUSTOMER role]
      └── require_manager (User -> User)    [BANK_MANAGER role]

Role-based access control:
  - CUSTOMER: Can only access their own accounts, rules and keys. Every
    service function takes the customer's user id and scopes its queries
    to it.
  - BANK_MANAGER: Can list any customer's ledger for auditing, but CANNOT
    open accounts, post transactions or schedule rules.

API-key authenticated endpoints do not use these dependencies; the key
itself identifies the user (see api_key_service.authenticate).
"""

import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.database import get_db
from bank_ledger.models.user import User, UserRole
from bank_ledger.security import decode_access_token


# Reads "Authorization: Bearer <token>"; tokenUrl feeds Swagger UI's
# "Authorize" button
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Extract and validate the JWT token, then return the corresponding User.

    Raises:
        HTTPException 401: If the token is invalid or the user doesn't exist.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
        user_id_str: str | None = payload.get("sub")
        if user_id_str is None:
            raise credentials_exception
        user_id = uuid.UUID(user_id_str)
    except (JWTError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise credentials_exception

    return user


async def require_customer(
    user: User = Depends(get_current_user),
) -> User:
    """
    Require a customer: the only role allowed to move money.

    Bank managers are blocked here so that an oversight account can never
    open accounts, post transactions or schedule payments.

    Raises:
        HTTPException 403: If the user is a bank manager.
    """
    if user.role == UserRole.BANK_MANAGER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Bank manager accounts cannot access customer banking endpoints. "
                   "Use /manager/* endpoints for read-only access.",
        )
    return user


async def require_manager(
    user: User = Depends(get_current_user),
) -> User:
    """
    Require the authenticated user to have the BANK_MANAGER role.

    Raises:
        HTTPException 403: If the user is not a bank manager.
    """
    if user.role != UserRole.BANK_MANAGER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Bank manager access required",
        )
    return user
