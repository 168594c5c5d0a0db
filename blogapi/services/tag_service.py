"""
Tag service - keeps the normalized article/tag links in step with an
article's comma-separated tag string.
"""
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.models import ArticleTag, Tag


def split_tags(tags_csv: str | None) -> list[str]:
    """
    Split a comma-separated tag string into trimmed, non-empty names.

    Order is kept and duplicates are not removed.
    """
    if not tags_csv:
        return []
    return [name.strip() for name in tags_csv.split(",") if name.strip()]


async def get_or_create_tag(db: AsyncSession, name: str) -> Tag:
    result = await db.execute(select(Tag).where(Tag.name == name))
    tag = result.scalar_one_or_none()
    if tag is None:
        tag = Tag(name=name)
        db.add(tag)
        await db.flush()
    return tag


async def reassociate(db: AsyncSession, article_id: int, tags_csv: str | None) -> list[ArticleTag]:
    """
    Replace every tag link of *article_id* with links for *tags_csv*.

    Existing links are deleted unconditionally, then one link is inserted
    per name, creating missing tags on the way.  A name listed twice gets
    two links.  Tags left without articles are kept.
    """
    await db.execute(delete(ArticleTag).where(ArticleTag.article_id == article_id))

    links: list[ArticleTag] = []
    for name in split_tags(tags_csv):
        tag = await get_or_create_tag(db, name)
        link = ArticleTag(article_id=article_id, tag_id=tag.id)
        db.add(link)
        await db.flush()
        links.append(link)
    return links
