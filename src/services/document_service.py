"""Client-facing document commands.

Each command returns ``Ok(value)`` or ``Err(kind, message)``; callers apply
state from that result instead of patching it inline. Status changes go
through ``src.services.lifecycle``.
"""

import io
from typing import Awaitable, Callable, List, Optional

from src.constants.config import ALLOWED_CONTENT_TYPES
from src.crud import document as document_crud
from src.crud.page import list_pages
from src.crud.processing_log import list_logs
from src.models.basemodels.document import (
    ConversionResult,
    Err,
    Ok,
    Result,
    TextResult,
)
from src.models.database import db as database
from src.models.sqlmodels.document import Document, DocumentStatus
from src.services import lifecycle
from src.services.text_worker import TextWorker
from src.utils.exceptions import (
    AuthError,
    DocumentError,
    NotFoundError,
    UpstreamError,
    ValidationError,
    describe_error,
)
from src.utils.logger import get_logger, log_error
from src.utils.s3_wrapper import S3ClientWrapper, document_prefix, original_key

logger = get_logger(__name__)

UPLOAD = "Upload"
CONVERSION_RETRY = "PDF Conversion Retry"
CONVERSION = "PDF Conversion"
TEXT_EXTRACTION = "Text Extraction"

ConversionInvoker = Callable[[str, str], Awaitable[ConversionResult]]
TextInvoker = Callable[[str], Awaitable[TextResult]]


def require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise AuthError("Authentication required")
    return user_id


async def load_owned(user_id: Optional[str], document_id: Optional[str]) -> Document:
    require_user(user_id)
    if not document_id:
        raise ValidationError("Document ID is required")
    async with database.get_session_context() as db:
        doc = await document_crud.get_document(db, document_id)
    if doc is None or doc.user_id != user_id:
        raise NotFoundError("Document not found")
    return doc


def media_type_for(content_type: Optional[str]) -> str:
    media_type = ALLOWED_CONTENT_TYPES.get(content_type or "")
    if media_type is None:
        raise ValidationError(
            f"Unsupported file type: {content_type}. Upload a PDF or an image."
        )
    return media_type


async def find_duplicate(user_id: str, name: str, size: int) -> Optional[Document]:
    async with database.get_session_context() as db:
        return await document_crud.find_duplicate(db, user_id, name, size)


async def upload_document(
    user_id: Optional[str],
    file_name: str,
    content_type: str,
    data: bytes,
    pipeline_id: Optional[str] = None,
    on_progress: Optional[Callable[[float], None]] = None,
    on_created: Optional[Callable[[Document], None]] = None,
    storage_factory=S3ClientWrapper,
) -> Result:
    """Create the record, store the bytes and move the document to ``uploaded``.

    ``on_progress`` receives the uploaded percentage (0-100).
    """
    try:
        require_user(user_id)
        if not file_name:
            raise ValidationError("File name is required")
        media_type = media_type_for(content_type)
    except DocumentError as e:
        return Err.from_exception(e)

    async with database.get_session_context() as db:
        doc = await document_crud.create_document(
            db,
            user_id=user_id,
            name=file_name,
            type=media_type,
            size=len(data),
            content_type=content_type,
            pipeline_id=pipeline_id,
        )
    if on_created:
        on_created(doc)

    total = len(data) or 1
    sent = 0

    def bytes_sent(chunk: int) -> None:
        nonlocal sent
        sent += chunk
        if on_progress:
            on_progress(min(100.0, sent * 100.0 / total))

    key = original_key(user_id, doc.id, file_name)
    try:
        async with storage_factory() as storage:
            url = await storage.upload_fileobj(
                io.BytesIO(data), key, content_type=content_type, callback=bytes_sent
            )
        doc = await lifecycle.mark_uploaded(doc.id, url, storage_key=key)
    except Exception as e:
        message = describe_error(e)
        log_error(logger, "Error in upload_document", e, document_id=doc.id)
        await lifecycle.fail_quietly(doc.id, UPLOAD, message)
        return Err(kind=getattr(e, "kind", UpstreamError.kind), message=message)

    logger.info("Document uploaded", document_id=doc.id, name=file_name)
    return Ok(doc)


async def get_document(user_id: Optional[str], document_id: Optional[str]) -> Result:
    try:
        return Ok(await load_owned(user_id, document_id))
    except DocumentError as e:
        return Err.from_exception(e)


async def list_documents(user_id: Optional[str], pipeline_id: Optional[str] = None) -> Result:
    try:
        require_user(user_id)
    except DocumentError as e:
        return Err.from_exception(e)
    try:
        async with database.get_session_context() as db:
            docs = await document_crud.list_user_documents(db, user_id, pipeline_id)
    except Exception as e:
        log_error(logger, "Error fetching documents", e, user_id=user_id)
        return Err(kind=UpstreamError.kind, message=f"Failed to fetch documents: {e}")
    return Ok(list(docs))


async def get_pages(user_id: Optional[str], document_id: Optional[str]) -> Result:
    try:
        doc = await load_owned(user_id, document_id)
    except DocumentError as e:
        return Err.from_exception(e)
    async with database.get_session_context() as db:
        return Ok(list(await list_pages(db, doc.id)))


async def get_logs(user_id: Optional[str], document_id: Optional[str]) -> Result:
    try:
        doc = await load_owned(user_id, document_id)
    except DocumentError as e:
        return Err.from_exception(e)
    async with database.get_session_context() as db:
        return Ok(list(await list_logs(db, doc.id)))


async def _reflect_failure(document_id: str, action: str, message: str) -> None:
    """Make sure a failed remote run leaves the document failed.

    Only a run that got the document into ``processing`` is marked failed.
    """
    async with database.get_session_context() as db:
        doc = await document_crud.get_document(db, document_id)
    if doc is not None and doc.status == DocumentStatus.PROCESSING.value:
        await lifecycle.fail_quietly(document_id, action, message)


async def _current(document_id: str) -> Document:
    async with database.get_session_context() as db:
        return await document_crud.get_document(db, document_id)


async def convert_to_images(
    user_id: Optional[str],
    document_id: Optional[str],
    invoke: Optional[ConversionInvoker] = None,
) -> Result:
    """Start (or retry) the PDF to images conversion and wait for its result."""
    try:
        doc = await load_owned(user_id, document_id)
        await lifecycle.start_processing(
            doc.id,
            CONVERSION_RETRY,
            f"Starting PDF to images conversion process for document {doc.id}",
        )
    except DocumentError as e:
        return Err.from_exception(e)

    if invoke is None:
        from src.tasks.document.conversion_task import invoke_conversion as invoke

    try:
        result = await invoke(doc.id, user_id)
        if not isinstance(result, ConversionResult):
            raise UpstreamError("Malformed conversion result")
        if not result.success:
            raise UpstreamError(result.error or "Unknown error in PDF conversion")
    except TimeoutError:
        logger.warning("Conversion still running, stopped waiting", document_id=doc.id)
        return Ok(await _current(doc.id))
    except Exception as e:
        message = describe_error(e)
        log_error(logger, "Error in PDF conversion", e, document_id=doc.id)
        await _reflect_failure(doc.id, CONVERSION, message)
        return Err(kind=UpstreamError.kind, message=message)

    return Ok(await _current(doc.id))


async def process_text(user_id: Optional[str], document_id: Optional[str]) -> Result:
    """Build the transcription from the text already stored on the pages."""
    try:
        doc = await load_owned(user_id, document_id)
        lifecycle.check_transition(doc.status, DocumentStatus.PROCESSING.value)
    except DocumentError as e:
        return Err.from_exception(e)

    result = await TextWorker().run(doc.id)
    if not result.success:
        return Err(kind=UpstreamError.kind, message=result.error or lifecycle.UNKNOWN_ERROR)
    return Ok(await _current(doc.id))


async def extract_text(
    user_id: Optional[str],
    document_id: Optional[str],
    invoke: Optional[TextInvoker] = None,
) -> Result:
    """Run the text extraction worker and wait for its result."""
    try:
        doc = await load_owned(user_id, document_id)
        lifecycle.check_transition(doc.status, DocumentStatus.PROCESSING.value)
    except DocumentError as e:
        return Err.from_exception(e)

    if invoke is None:
        from src.tasks.document.text_task import invoke_text_extraction as invoke

    try:
        result = await invoke(doc.id)
        if not isinstance(result, TextResult):
            raise UpstreamError("Malformed text extraction result")
        if not result.success:
            raise UpstreamError(result.error or "Unknown error in text extraction")
    except TimeoutError:
        logger.warning("Text extraction still running, stopped waiting", document_id=doc.id)
        return Ok(await _current(doc.id))
    except Exception as e:
        message = describe_error(e)
        log_error(logger, "Error in text extraction", e, document_id=doc.id)
        await _reflect_failure(doc.id, TEXT_EXTRACTION, message)
        return Err(kind=UpstreamError.kind, message=message)

    return Ok(await _current(doc.id))


async def _remove_stored_files(user_id: str, document_ids: List[str], storage_factory) -> None:
    try:
        async with storage_factory() as storage:
            for document_id in document_ids:
                await storage.delete_prefix(document_prefix(user_id, document_id))
    except Exception as e:
        logger.warning(
            "Storage delete failed, continuing",
            document_ids=document_ids,
            error=describe_error(e),
        )


async def remove_document(
    user_id: Optional[str],
    document_id: Optional[str],
    storage_factory=S3ClientWrapper,
) -> Result:
    try:
        doc = await load_owned(user_id, document_id)
    except DocumentError as e:
        return Err.from_exception(e)

    await _remove_stored_files(user_id, [doc.id], storage_factory)
    try:
        async with database.get_session_context() as db:
            await document_crud.delete_document(db, doc.id)
    except Exception as e:
        log_error(logger, "Error deleting document", e, document_id=doc.id)
        return Err(kind=UpstreamError.kind, message=f"Failed to delete document: {e}")
    return Ok(True)


async def remove_documents(
    user_id: Optional[str],
    document_ids: List[str],
    storage_factory=S3ClientWrapper,
) -> Result:
    if not document_ids:
        return Ok(0)
    try:
        for document_id in document_ids:
            await load_owned(user_id, document_id)
    except DocumentError as e:
        return Err.from_exception(e)

    await _remove_stored_files(user_id, document_ids, storage_factory)
    try:
        async with database.get_session_context() as db:
            removed = await document_crud.delete_documents(db, document_ids)
    except Exception as e:
        log_error(logger, "Error batch deleting documents", e, document_ids=document_ids)
        return Err(kind=UpstreamError.kind, message=f"Failed to delete documents: {e}")
    return Ok(removed)
