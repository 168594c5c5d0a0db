"""
Auth service - registration and credential checks for the User aggregate.

Tokens are stateless: logging out only clears the client's cookie, and a
token stays valid until it expires.
"""
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.exceptions import ConflictError, InvalidInputError, UnauthorizedError
from blogapi.models import ROLE_USER, ROLES, User
from blogapi.schemas import LoginResponse, RegisterRequest, UserResponse
from blogapi.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

# One message for every login failure so usernames cannot be probed.
INVALID_CREDENTIALS = "invalid credentials"


async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    result = await db.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def register(db: AsyncSession, data: RegisterRequest) -> User:
    """
    Create a user with a hashed password.

    Raises InvalidInputError for missing credentials or an unknown role and
    ConflictError when the username is taken.
    """
    if not data.username or not data.password:
        raise InvalidInputError("username & password required")
    role = data.role or ROLE_USER
    if role not in ROLES:
        raise InvalidInputError(f"role must be one of: {', '.join(sorted(ROLES))}")

    if await get_user_by_username(db, data.username) is not None:
        raise ConflictError("username already exists")

    user = User(
        username=data.username,
        password_hash=hash_password(data.password),
        nickname=data.nickname or data.username,
        role=role,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race against a concurrent registration of the same name.
        await db.rollback()
        raise ConflictError("username already exists")

    logger.info("Registered user id=%s username=%r role=%s", user.id, user.username, user.role)
    return user


async def login(db: AsyncSession, username: str | None, password: str | None) -> LoginResponse:
    """Verify credentials and issue a signed session token."""
    if not username or not password:
        raise InvalidInputError("username & password required")

    user = await get_user_by_username(db, username)
    # verify_password runs even without a user so both failures cost the same.
    if not verify_password(password, user.password_hash if user else None) or user is None:
        logger.info("Failed login for username=%r", username)
        raise UnauthorizedError(INVALID_CREDENTIALS)

    token = create_access_token(user.id, user.username, user.role)
    return LoginResponse(token=token, user=UserResponse.model_validate(user))
