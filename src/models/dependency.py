from typing import AsyncGenerator, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.database import db
from src.services.document_service import ConversionInvoker, TextInvoker
from src.services.source import default_http_client
from src.services.upload_pipeline import UploadPipeline
from src.utils.s3_wrapper import S3ClientWrapper


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI session dependency.

    The session rolls back on exceptions and is closed when the request ends;
    crud functions commit their own writes.
    """
    async with db.get_session_context() as session:
        yield session


def get_storage_factory():
    """Factory for the object storage client used by document endpoints."""
    return S3ClientWrapper


def get_http_client_factory():
    return default_http_client


def get_conversion_invoker() -> Optional[ConversionInvoker]:
    # None means the taskiq conversion task
    return None


def get_text_invoker() -> Optional[TextInvoker]:
    return None


def get_upload_pipeline(
    storage_factory=Depends(get_storage_factory),
    invoke_conversion: Optional[ConversionInvoker] = Depends(get_conversion_invoker),
) -> UploadPipeline:
    return UploadPipeline(
        invoke_conversion=invoke_conversion, storage_factory=storage_factory
    )
