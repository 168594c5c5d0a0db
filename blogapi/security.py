"""Password hashing and session token helpers."""
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from blogapi.config import settings
from blogapi.schemas import Identity

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    """Return a salted one-way hash of *password*."""
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Check *password* against a stored hash.

    An empty or missing hash (implicitly created authors) never matches,
    but still costs one hash computation so the caller's timing does not
    reveal whether the account exists.
    """
    if not password_hash:
        pwd_context.dummy_verify()
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # Unrecognised hash format
        return False


def create_access_token(
    user_id: int,
    username: str,
    role: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Sign a session token carrying the user's id, username and role."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(days=settings.JWT_EXPIRES_DAYS))
    to_encode = {
        "id": user_id,
        "username": username,
        "role": role,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Identity | None:
    """
    Verify *token* and return the identity it carries.

    Returns None for a bad signature, an expired token or missing claims.
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None

    user_id = payload.get("id")
    username = payload.get("username")
    role = payload.get("role")
    if user_id is None or not username or not role:
        return None
    return Identity(id=user_id, username=username, role=role)
