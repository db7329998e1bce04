from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel import select
from typing import List, Optional

from src.models.sqlmodels.document import DocumentPage

_UNSET = object()


async def get_page(
    db: AsyncSession, document_id: str, page_number: int
) -> Optional[DocumentPage]:
    result = await db.execute(
        select(DocumentPage).where(
            DocumentPage.document_id == document_id,
            DocumentPage.page_number == page_number,
        )
    )
    return result.scalar_one_or_none()


async def list_pages(db: AsyncSession, document_id: str) -> List[DocumentPage]:
    result = await db.execute(
        select(DocumentPage)
        .where(DocumentPage.document_id == document_id)
        .order_by(DocumentPage.page_number.asc())
    )
    return result.scalars().all()


async def upsert_page(
    db: AsyncSession,
    document_id: str,
    page_number: int,
    image_url=_UNSET,
    text_content=_UNSET,
) -> DocumentPage:
    """Insert or update the page keyed by (document_id, page_number).

    Only the attributes that are passed are written, so a text pass never
    clears an image written by a conversion pass and vice versa.
    """
    page = await get_page(db, document_id, page_number)
    if page is None:
        page = DocumentPage(document_id=document_id, page_number=page_number)
    if image_url is not _UNSET:
        page.image_url = image_url
    if text_content is not _UNSET:
        page.text_content = text_content
    db.add(page)
    await db.commit()
    await db.refresh(page)
    return page
