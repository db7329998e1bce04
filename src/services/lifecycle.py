"""Document lifecycle state machine.

Every persisted status change goes through this module. A transition is
committed first and then recorded in the processing log; the log write is
best-effort and a failure there never undoes the transition.
"""

from typing import Any, Dict, FrozenSet, Optional

from src.constants.config import ERROR_MESSAGE_MAX_LENGTH, PROGRESS_COMPLETE
from src.crud.document import get_document, update_document
from src.crud.processing_log import append_log
from src.models.database import db as database
from src.models.sqlmodels.document import Document, DocumentStatus, LogStatus
from src.utils.exceptions import InvalidTransitionError, NotFoundError
from src.utils.logger import get_logger, log_error

logger = get_logger(__name__)

UNKNOWN_ERROR = "Unknown error"

TRANSITIONS: Dict[DocumentStatus, FrozenSet[DocumentStatus]] = {
    DocumentStatus.UPLOADING: frozenset(
        {DocumentStatus.UPLOADED, DocumentStatus.FAILED}
    ),
    DocumentStatus.UPLOADED: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.PROCESSING: frozenset(
        {
            DocumentStatus.PROCESSING,
            DocumentStatus.PROCESSED,
            DocumentStatus.FAILED,
        }
    ),
    DocumentStatus.PROCESSED: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.FAILED: frozenset({DocumentStatus.PROCESSING}),
}


def can_transition(current: str, target: str) -> bool:
    try:
        return DocumentStatus(target) in TRANSITIONS[DocumentStatus(current)]
    except ValueError:
        return False


def check_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)


async def record(
    document_id: str,
    action: str,
    message: Optional[str] = None,
    status: LogStatus = LogStatus.SUCCESS,
) -> None:
    """Append a processing log entry without ever raising."""
    try:
        async with database.get_session_context() as db:
            await append_log(
                db,
                document_id=document_id,
                action=action,
                status=status.value,
                message=message,
            )
    except Exception as e:
        log_error(
            logger,
            "Processing log write failed",
            e,
            document_id=document_id,
            action=action,
        )


async def _transition(
    document_id: str, target: DocumentStatus, **fields: Any
) -> Document:
    async with database.get_session_context() as db:
        doc = await get_document(db, document_id)
        if doc is None:
            raise NotFoundError(f"Document {document_id} not found")
        check_transition(doc.status, target.value)
        previous = doc.status
        doc = await update_document(db, document_id, status=target.value, **fields)

    logger.info(
        "Document status changed",
        document_id=document_id,
        from_status=previous,
        to_status=target.value,
    )
    return doc


async def mark_uploaded(document_id: str, url: str, storage_key: Optional[str] = None) -> Document:
    doc = await _transition(
        document_id,
        DocumentStatus.UPLOADED,
        original_url=url,
        storage_key=storage_key,
        processing_progress=0.0,
    )
    await record(document_id, "Upload", "Document uploaded successfully")
    return doc


async def start_processing(
    document_id: str, action: str, message: Optional[str] = None
) -> Document:
    doc = await _transition(
        document_id,
        DocumentStatus.PROCESSING,
        processing_progress=0.0,
        error_message=None,
    )
    await record(
        document_id,
        action,
        message or f"Starting {action.lower()} for document {document_id}",
    )
    return doc


async def update_progress(document_id: str, progress: float) -> Optional[Document]:
    """Write progress for a document that is still processing.

    Returns ``None`` when the document left ``processing`` in the meantime,
    in which case nothing is written.
    """
    async with database.get_session_context() as db:
        doc = await get_document(db, document_id)
        if doc is None:
            raise NotFoundError(f"Document {document_id} not found")
        if doc.status != DocumentStatus.PROCESSING.value:
            return None
        return await update_document(
            db, document_id, processing_progress=float(progress)
        )


async def mark_processed(
    document_id: str,
    action: str,
    message: Optional[str] = None,
    **results: Any,
) -> Document:
    doc = await _transition(
        document_id,
        DocumentStatus.PROCESSED,
        processing_progress=float(PROGRESS_COMPLETE),
        error_message=None,
        **results,
    )
    await record(document_id, action, message or f"{action} completed")
    return doc


async def mark_failed(document_id: str, action: str, message: Optional[str]) -> Document:
    message = (message or "").strip() or UNKNOWN_ERROR
    message = message[:ERROR_MESSAGE_MAX_LENGTH]
    doc = await _transition(
        document_id,
        DocumentStatus.FAILED,
        error_message=message,
    )
    await record(document_id, f"{action} Error", message, status=LogStatus.ERROR)
    return doc


async def fail_quietly(document_id: str, action: str, message: Optional[str]) -> None:
    """Best-effort ``mark_failed`` for top-level error handlers.

    The error is still logged when the document is gone or was moved on by a
    concurrent run.
    """
    try:
        await mark_failed(document_id, action, message)
    except Exception as e:
        log_error(
            logger,
            "Could not mark document as failed",
            e,
            document_id=document_id,
            action=action,
        )
        await record(
            document_id,
            f"{action} Error",
            (message or UNKNOWN_ERROR)[:ERROR_MESSAGE_MAX_LENGTH],
            status=LogStatus.ERROR,
        )
