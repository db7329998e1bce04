from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel import select
from sqlalchemy import delete
from typing import Any, List, Optional

from src.constants.config import DUPLICATE_SIZE_TOLERANCE
from src.models.sqlmodels.document import Document, DocumentPage, DocumentStatus


async def create_document(
    db: AsyncSession,
    user_id: str,
    name: str,
    type: str,
    size: int,
    content_type: str,
    pipeline_id: Optional[str] = None,
    document_id: Optional[str] = None,
) -> Document:
    doc = Document(
        user_id=user_id,
        name=name,
        type=type,
        size=size,
        content_type=content_type,
        status=DocumentStatus.UPLOADING.value,
        pipeline_id=pipeline_id,
    )
    if document_id:
        doc.id = document_id
    db.add(doc)
    await db.commit()
    await db.refresh(doc)
    return doc


async def get_document(db: AsyncSession, doc_id: str) -> Optional[Document]:
    # Workers write from other sessions; always reload the row
    result = await db.execute(
        select(Document)
        .where(Document.id == doc_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_user_documents(
    db: AsyncSession, user_id: str, pipeline_id: Optional[str] = None
) -> List[Document]:
    query = select(Document).where(Document.user_id == user_id)
    if pipeline_id:
        query = query.where(Document.pipeline_id == pipeline_id)
    result = await db.execute(query.order_by(Document.created_at.desc()))
    return result.scalars().all()


async def find_duplicate(
    db: AsyncSession, user_id: str, name: str, size: int
) -> Optional[Document]:
    """Same owner, same file name and a size within the duplicate tolerance."""
    result = await db.execute(
        select(Document).where(Document.user_id == user_id, Document.name == name)
    )
    for doc in result.scalars().all():
        if abs(doc.size - size) < DUPLICATE_SIZE_TOLERANCE:
            return doc
    return None


async def update_document(
    db: AsyncSession, doc_id: str, **fields: Any
) -> Optional[Document]:
    doc = await get_document(db, doc_id)
    if not doc:
        return None
    for key, value in fields.items():
        setattr(doc, key, value)
    db.add(doc)
    await db.commit()
    await db.refresh(doc)
    return doc


async def delete_document(db: AsyncSession, doc_id: str) -> bool:
    doc = await get_document(db, doc_id)
    if not doc:
        return False
    await db.execute(delete(DocumentPage).where(DocumentPage.document_id == doc_id))
    await db.delete(doc)
    await db.commit()
    return True


async def delete_documents(db: AsyncSession, doc_ids: List[str]) -> int:
    if not doc_ids:
        return 0
    await db.execute(delete(DocumentPage).where(DocumentPage.document_id.in_(doc_ids)))
    result = await db.execute(delete(Document).where(Document.id.in_(doc_ids)))
    await db.commit()
    return result.rowcount
