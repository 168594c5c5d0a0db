from fastapi import APIRouter, Depends, Header, Response
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.database import get_db
from blogapi.dependencies import ListParams, authenticate, require_admin
from blogapi.exceptions import InvalidInputError
from blogapi.schemas import (
    ArticleCreated,
    ArticleWrite,
    BulkDeleteRequest,
    DraftRequest,
    DraftResponse,
    Identity,
    MessageResponse,
)
from blogapi.services import article_service
from blogapi.services.draft_service import DraftGenerator, get_draft_generator

router = APIRouter(prefix="/api/posts", tags=["posts"])

JSON_MEDIA_TYPE = "application/json; charset=utf-8"
# Clients must revalidate listings with If-None-Match on every use.
LIST_CACHE_CONTROL = "public, max-age=0, must-revalidate"


@router.get("")
async def list_posts(
    params: ListParams = Depends(),
    if_none_match: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
):
    result = await article_service.list_articles(
        db,
        page=params.page,
        page_size=params.page_size,
        sort=params.sort,
        tag=params.tag,
        if_none_match=if_none_match,
    )
    headers = {"ETag": f'"{result.etag}"', "Cache-Control": LIST_CACHE_CONTROL}
    if result.not_modified:
        return Response(status_code=304, headers=headers)
    return Response(content=result.body, media_type=JSON_MEDIA_TYPE, headers=headers)


@router.post("/ai-generate", response_model=DraftResponse)
async def generate_draft(
    data: DraftRequest,
    identity: Identity = Depends(authenticate(required=True)),
    generator: DraftGenerator = Depends(get_draft_generator),
):
    if not data.title or not data.title.strip():
        raise InvalidInputError("title is required")
    draft = await generator.generate(data.title, data.keywords)
    return DraftResponse(summary=draft.summary, content=draft.content)


@router.get("/{article_id}")
async def get_post(article_id: int, db: AsyncSession = Depends(get_db)):
    payload = await article_service.get_article(db, article_id)
    return Response(content=payload, media_type=JSON_MEDIA_TYPE)


@router.post("", status_code=201, response_model=ArticleCreated)
async def create_post(
    data: ArticleWrite,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    article_id = await article_service.create_article(db, data, identity.username)
    return ArticleCreated(id=article_id)


@router.put("/{article_id}", response_model=MessageResponse)
async def update_post(
    article_id: int,
    data: ArticleWrite,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await article_service.update_article(db, article_id, data, identity.username)
    return MessageResponse(message="updated")


@router.delete("/{article_id}", response_model=MessageResponse)
async def delete_post(
    article_id: int,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await article_service.delete_article(db, article_id)
    return MessageResponse(message="deleted")


@router.delete("", response_model=MessageResponse)
async def delete_posts(
    data: BulkDeleteRequest | None = None,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await article_service.delete_articles(db, data.ids if data else None)
    return MessageResponse(message="deleted")
