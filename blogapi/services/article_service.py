"""
Article service - business logic for the Article aggregate.

Design notes
------------
- List and detail reads go through the read-through cache (Redis →
  fallback to DB).  Cache keys encode every parameter that affects the
  result, and payloads are cached as the exact JSON text returned to the
  client so the ETag of a cached page is stable.
- Every successful create/update/delete commits and then flushes the
  whole cache.  Targeted invalidation is intentionally not attempted:
  after a write the next read of anything is a miss.
- A detail read increments ``view_count`` exactly once.  On a miss the
  increment runs inline before the row is loaded; on a hit it is handed
  to a detached task with its own session so the cached response is not
  held up.  A lost detached increment (crash, DB error) only drops one
  view and is logged.
- Tag re-association runs after the article row is committed and is
  best-effort: a failure is logged and the write still succeeds.
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi import database
from blogapi.cache import cache, detail_key, fingerprint, list_key
from blogapi.config import settings
from blogapi.exceptions import InvalidInputError, NotFoundError
from blogapi.models import STATUS_PUBLISHED, Article, ArticleTag, Tag, User
from blogapi.schemas import ArticleWrite
from blogapi.services import tag_service

logger = logging.getLogger(__name__)

# Shown when an article's author row is missing, and used as author name
# when neither the session nor the request body names one.
ANONYMOUS = "Anonymous"

SORT_TIME = "time"
SORT_VIEWS = "views"

# Detached view-count increments still running; holds strong references
# so the event loop does not drop them mid-flight.
_background_tasks: set[asyncio.Task] = set()


@dataclass
class CachedPayload:
    """A serialized response body plus its fingerprint."""

    body: str | None
    etag: str | None = None
    not_modified: bool = False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def normalize_sort(sort: str | None) -> str:
    """Anything other than ``views`` sorts by creation time."""
    return SORT_VIEWS if sort == SORT_VIEWS else SORT_TIME


def etag_matches(if_none_match: str | None, etag: str) -> bool:
    """
    True when an ``If-None-Match`` header names *etag*.

    Accepts a comma-separated list, weak validators and quoted or bare
    values.
    """
    if not if_none_match:
        return False
    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate == "*":
            return True
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate.strip('"') == etag:
            return True
    return False


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dumps(data: dict) -> str:
    return json.dumps(data, ensure_ascii=False)


def _article_to_dict(article: Article, nickname: str | None) -> dict:
    """Serialise an Article row to a plain dict (list view)."""
    return {
        "id": article.id,
        "title": article.title,
        "author": nickname or ANONYMOUS,
        "summary": article.summary,
        "tags": article.tags,
        "view_count": article.view_count,
        "created_at": _isoformat(article.created_at),
        "status": article.status,
    }


def _article_detail_to_dict(article: Article, nickname: str | None) -> dict:
    """Serialise an Article row to a plain dict (detail view)."""
    data = _article_to_dict(article, nickname)
    data["content"] = article.content
    data["is_deleted"] = article.is_deleted
    data["updated_at"] = _isoformat(article.updated_at)
    return data


def _validate(data: ArticleWrite) -> None:
    if not (data.title and data.title.strip()) or not (data.content and data.content.strip()):
        raise InvalidInputError("title and content are required")


async def ensure_user(db: AsyncSession, username: str | None) -> User:
    """
    Return the User named *username*, creating it when unknown.

    Users created here have no password and cannot log in.
    """
    name = username or ANONYMOUS
    result = await db.execute(select(User).where(User.username == name))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(username=name, nickname=name, password_hash="")
        db.add(user)
        await db.flush()
        logger.info("Created author user id=%s username=%r", user.id, name)
    return user


async def _increment_views(db: AsyncSession, article_id: int) -> int:
    result = await db.execute(
        update(Article)
        .where(Article.id == article_id, Article.is_deleted.is_(False))
        .values(view_count=Article.view_count + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def _increment_views_detached(article_id: int) -> None:
    try:
        async with database.async_session() as session:
            await _increment_views(session, article_id)
            await session.commit()
    except Exception:
        logger.exception("Deferred view count increment failed for article_id=%s", article_id)


def schedule_view_increment(article_id: int) -> asyncio.Task:
    """Start a fire-and-forget view increment for *article_id*."""
    task = asyncio.create_task(_increment_views_detached(article_id))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def wait_for_background_tasks() -> None:
    """Wait for detached increments still in flight (shutdown, tests)."""
    if _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)


async def _flush_cache_after_write(action: str, article_ids) -> None:
    await cache.flush_all()
    logger.info("Article %s: ids=%s, cache flushed", action, article_ids)


async def _reassociate_tags(db: AsyncSession, article_id: int, tags_csv: str | None) -> None:
    """Re-link tags for a committed article; failures are logged, not raised."""
    try:
        await tag_service.reassociate(db, article_id, tags_csv)
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Tag re-association failed for article_id=%s tags=%r", article_id, tags_csv)
        await db.rollback()


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------

async def list_articles(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 10,
    sort: str | None = SORT_TIME,
    tag: str | None = None,
    if_none_match: str | None = None,
) -> CachedPayload:
    """
    Return one page of published, non-deleted articles.

    A cached page whose fingerprint matches *if_none_match* comes back
    with ``not_modified`` set and no body.  On a miss two statements are
    issued (page rows with author nickname, then COUNT) and the result is
    cached for ``CACHE_TTL_LIST`` seconds.
    """
    sort = normalize_sort(sort)
    tag = tag or None
    cache_key = list_key(page, page_size, sort, tag)

    cached = await cache.get(cache_key)
    if cached is not None:
        etag = fingerprint(cached)
        if etag_matches(if_none_match, etag):
            return CachedPayload(body=None, etag=etag, not_modified=True)
        return CachedPayload(body=cached, etag=etag)

    filters = [Article.is_deleted.is_(False), Article.status == STATUS_PUBLISHED]
    if tag:
        filters.append(
            select(ArticleTag.id)
            .join(Tag, Tag.id == ArticleTag.tag_id)
            .where(ArticleTag.article_id == Article.id, Tag.name == tag)
            .exists()
        )

    sort_col = Article.view_count if sort == SORT_VIEWS else Article.created_at
    rows_q = (
        select(Article, User.nickname)
        .outerjoin(User, Article.author_id == User.id)
        .where(*filters)
        .order_by(desc(sort_col), desc(Article.id))
        .offset((page - 1) * page_size)
        .limit(page_size)
        .execution_options(populate_existing=True)
    )
    rows = (await db.execute(rows_q)).all()

    count_q = select(func.count()).select_from(Article).where(*filters)
    total: int = (await db.execute(count_q)).scalar_one()

    payload = _dumps({
        "list": [_article_to_dict(article, nickname) for article, nickname in rows],
        "pagination": {"page": page, "pageSize": page_size, "total": total},
    })
    await cache.set(cache_key, payload, ttl=settings.CACHE_TTL_LIST)
    return CachedPayload(body=payload, etag=fingerprint(payload))


async def get_article(db: AsyncSession, article_id: int) -> str:
    """
    Return the serialized detail of *article_id*, counting one view.

    Raises NotFoundError when no non-deleted article has that id.
    """
    cache_key = detail_key(article_id)
    cached = await cache.get(cache_key)
    if cached is not None:
        schedule_view_increment(article_id)
        return cached

    await _increment_views(db, article_id)

    q = (
        select(Article, User.nickname)
        .outerjoin(User, Article.author_id == User.id)
        .where(Article.id == article_id, Article.is_deleted.is_(False))
        .execution_options(populate_existing=True)
    )
    row = (await db.execute(q)).first()
    if row is None:
        raise NotFoundError("article not found")

    article, nickname = row
    payload = _dumps(_article_detail_to_dict(article, nickname))
    await cache.set(cache_key, payload, ttl=settings.CACHE_TTL_DETAIL)
    return payload


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------

async def create_article(db: AsyncSession, data: ArticleWrite, author_name: str | None) -> int:
    """Insert an article, link its tags, flush the cache and return the new id."""
    _validate(data)
    author = await ensure_user(db, author_name or data.author)

    article = Article(
        title=data.title,
        author_id=author.id,
        summary=data.summary or "",
        content=data.content,
        tags=data.tags or "",
        status=data.status or STATUS_PUBLISHED,
    )
    db.add(article)
    await db.flush()
    article_id = article.id
    await db.commit()

    await _reassociate_tags(db, article_id, data.tags)
    await _flush_cache_after_write("created", [article_id])
    return article_id


async def update_article(
    db: AsyncSession, article_id: int, data: ArticleWrite, author_name: str | None
) -> None:
    """
    Overwrite every mutable field of a non-deleted article.

    Last write wins: there is no version check.  Raises NotFoundError when
    the article is missing or soft-deleted.
    """
    _validate(data)
    author = await ensure_user(db, author_name or data.author)

    result = await db.execute(
        update(Article)
        .where(Article.id == article_id, Article.is_deleted.is_(False))
        .values(
            title=data.title,
            author_id=author.id,
            summary=data.summary or "",
            content=data.content,
            tags=data.tags or "",
            status=data.status or STATUS_PUBLISHED,
            updated_at=func.now(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("article not found or deleted")
    await db.commit()

    await _reassociate_tags(db, article_id, data.tags)
    await _flush_cache_after_write("updated", [article_id])


async def delete_article(db: AsyncSession, article_id: int) -> None:
    """Soft-delete one article.  Raises NotFoundError if nothing changed."""
    result = await db.execute(
        update(Article)
        .where(Article.id == article_id, Article.is_deleted.is_(False))
        .values(is_deleted=True)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("article not found")
    await db.commit()
    await _flush_cache_after_write("deleted", [article_id])


async def delete_articles(db: AsyncSession, ids) -> int:
    """
    Soft-delete several articles and return how many were affected.

    Raises InvalidInputError unless *ids* is a non-empty list and
    NotFoundError when none of them matched a live article.
    """
    if not isinstance(ids, list) or not ids:
        raise InvalidInputError("ids must be a non-empty array")

    result = await db.execute(
        update(Article)
        .where(Article.id.in_(ids), Article.is_deleted.is_(False))
        .values(is_deleted=True)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("no matching articles")
    await db.commit()
    await _flush_cache_after_write("deleted", ids)
    return result.rowcount
