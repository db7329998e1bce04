from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel import select
from typing import List, Optional

from src.models.sqlmodels.document import LogStatus, ProcessingLog


async def append_log(
    db: AsyncSession,
    document_id: str,
    action: str,
    status: str = LogStatus.SUCCESS.value,
    message: Optional[str] = None,
) -> ProcessingLog:
    entry = ProcessingLog(
        document_id=document_id,
        action=action,
        status=status,
        message=message,
    )
    db.add(entry)
    await db.commit()
    await db.refresh(entry)
    return entry


async def list_logs(db: AsyncSession, document_id: str) -> List[ProcessingLog]:
    result = await db.execute(
        select(ProcessingLog)
        .where(ProcessingLog.document_id == document_id)
        .order_by(ProcessingLog.created_at.asc())
    )
    return result.scalars().all()
