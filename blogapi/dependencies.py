from fastapi import Depends, Query, Request

from blogapi.config import settings
from blogapi.exceptions import ForbiddenError, UnauthorizedError
from blogapi.schemas import Identity
from blogapi.security import decode_access_token


class ListParams:
    """
    Reusable FastAPI dependency that parses the article listing query.

    Attributes
    ----------
    page:
        1-based page number, from 1 to ``settings.MAX_PAGE``.
    page_size:
        Items per page, read from ``pageSize`` and clamped to
        ``settings.MAX_PAGE_SIZE``.
    tag:
        Optional tag name; only articles linked to it are listed.
    sort:
        ``"time"`` (newest first) or ``"views"`` (most viewed first).
        Unknown values fall back to ``"time"`` in the service layer.
    """

    def __init__(
        self,
        page: int = Query(
            1, ge=1, le=settings.MAX_PAGE, description="Page number (1-based)."
        ),
        page_size: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            alias="pageSize",
            description="Number of items returned per page.",
        ),
        tag: str | None = Query(None, description="Only list articles carrying this tag."),
        sort: str = Query("time", description="'time' or 'views'."),
    ) -> None:
        self.page = page
        self.page_size = min(page_size, settings.MAX_PAGE_SIZE)
        self.tag = tag
        self.sort = sort


def _extract_token(request: Request) -> str | None:
    """Bearer header first, then the session cookie."""
    header = request.headers.get("authorization", "")
    if header.startswith("Bearer "):
        token = header[len("Bearer "):].strip()
        if token:
            return token
    return request.cookies.get(settings.AUTH_COOKIE_NAME) or None


def authenticate(required: bool = True):
    """
    Build a dependency that resolves the caller's identity.

    With ``required=False`` an anonymous request passes through with
    ``None``.  A token that is present but invalid or expired is always
    rejected.
    """

    async def dependency(request: Request) -> Identity | None:
        token = _extract_token(request)
        if not token:
            if required:
                raise UnauthorizedError("unauthorized")
            return None

        identity = decode_access_token(token)
        if identity is None:
            raise UnauthorizedError("invalid token")
        return identity

    return dependency


def check_role(identity: Identity | None, role: str) -> Identity:
    """Raise UnauthorizedError without an identity, ForbiddenError on the wrong role."""
    if identity is None:
        raise UnauthorizedError("unauthorized")
    if identity.role != role:
        raise ForbiddenError("forbidden")
    return identity


def require_role(role: str):
    """Build a dependency that admits only authenticated callers holding *role*."""

    async def dependency(identity: Identity | None = Depends(authenticate(required=True))) -> Identity:
        return check_role(identity, role)

    return dependency


require_admin = require_role("admin")
