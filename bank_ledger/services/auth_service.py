"""
Authentication service: signup and login business logic.

The router calls these functions and translates the results into HTTP
responses, so the logic can be tested without a web server.

Signup flow:
  1. Check that the email (and phone, when given) is not registered
  2. Hash the password with Argon2id
  3. Create the User
  4. Return a JWT so the user is immediately logged in

Emails are case-insensitive: they are stored lowercased and always
compared through normalize_email(), so "Jane@Example.com" and
"jane@example.com" are one identity for signup, login and transfers.

Login returns the same error for "wrong password" and "email not found"
to prevent user enumeration.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.exceptions import (
    DuplicateEmailError,
    DuplicatePhoneError,
    InvalidCredentialsError,
)
from bank_ledger.models.user import User, UserRole
from bank_ledger.security import create_access_token, hash_password, verify_password


def normalize_email(email: str) -> str:
    return email.strip().lower()


def email_matches(email: str):
    """WHERE clause matching a user by email regardless of case."""
    return func.lower(User.email) == normalize_email(email)


async def signup(
    db: AsyncSession,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    phone_number: str | None = None,
) -> tuple[User, str]:
    """
    Register a new customer.

    Returns:
        Tuple of (User instance, JWT token string).

    Raises:
        DuplicateEmailError: If the email (or phone number) is already
                             registered.
    """
    email = normalize_email(email)
    result = await db.execute(select(User).where(email_matches(email)))
    if result.scalar_one_or_none():
        raise DuplicateEmailError(email)

    if phone_number is not None:
        result = await db.execute(select(User).where(User.phone_number == phone_number))
        if result.scalar_one_or_none():
            raise DuplicatePhoneError(phone_number)

    user = User(
        email=email,
        hashed_password=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        phone_number=phone_number,
        role=UserRole.CUSTOMER,
    )
    db.add(user)
    # Flush to get user.id assigned for the token
    await db.flush()

    token = create_access_token(data={"sub": str(user.id)})
    return user, token


async def login(
    db: AsyncSession,
    email: str,
    password: str,
) -> tuple[User, str]:
    """
    Authenticate a user and return a JWT token.

    Raises:
        InvalidCredentialsError: If email doesn't exist, the password is
                                 wrong, or the user is deactivated.
    """
    result = await db.execute(select(User).where(email_matches(email)))
    user = result.scalar_one_or_none()

    # Same error for every case
    if not user:
        raise InvalidCredentialsError()

    if not verify_password(password, user.hashed_password):
        raise InvalidCredentialsError()

    if not user.is_active:
        raise InvalidCredentialsError()

    token = create_access_token(data={"sub": str(user.id)})
    return user, token
