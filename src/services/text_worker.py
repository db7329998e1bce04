"""Transcription workers.

``TextWorker`` aggregates the text already stored on the pages.
``TextExtractionWorker`` first pulls per-page text out of the original PDF
with pypdf, then aggregates the same way.
"""

import asyncio

from src.constants.config import PROGRESS_PAGE_COUNT_KNOWN
from src.crud.document import get_document
from src.crud.page import list_pages, upsert_page
from src.models.basemodels.document import TextResult
from src.models.database import db as database
from src.services import lifecycle
from src.services.progress import ProgressTracker, count_page
from src.services.rasterizer import rasterizer_for
from src.services.source import default_http_client, download_original
from src.services.transcription import aggregate_transcription
from src.utils.exceptions import InvalidTransitionError, NotFoundError, describe_error
from src.utils.logger import get_logger, log_error
from src.utils.s3_wrapper import S3ClientWrapper

logger = get_logger(__name__)

TEXT_TRANSCRIPTION = "Text Transcription"
TEXT_EXTRACTION = "Text Extraction"


async def store_transcription(document_id: str, action: str) -> int:
    """Aggregate page text into the document and mark it processed.

    Returns the number of pages read.
    """
    async with database.get_session_context() as db:
        pages = await list_pages(db, document_id)
    transcription = aggregate_transcription(page.text_content for page in pages)
    await lifecycle.mark_processed(
        document_id,
        action,
        f"Transcribed {len(pages)} pages",
        transcription=transcription,
    )
    return len(pages)


def rejected(document_id: str, error: InvalidTransitionError) -> TextResult:
    """A run that never started leaves the document as it was."""
    logger.warning(
        "Text processing rejected", document_id=document_id, error=str(error)
    )
    return TextResult(success=False, error=describe_error(error))


class TextWorker:
    async def run(self, document_id: str) -> TextResult:
        if not document_id:
            return TextResult(success=False, error="Document ID is required")

        try:
            try:
                await lifecycle.start_processing(
                    document_id,
                    TEXT_TRANSCRIPTION,
                    f"Starting text transcription for document {document_id}",
                )
            except InvalidTransitionError as e:
                return rejected(document_id, e)
            page_count = await store_transcription(document_id, TEXT_TRANSCRIPTION)
        except Exception as e:
            message = describe_error(e)
            log_error(
                logger, "Error processing document text", e, document_id=document_id
            )
            await lifecycle.fail_quietly(document_id, TEXT_TRANSCRIPTION, message)
            return TextResult(success=False, error=message)

        return TextResult(success=True, page_count=page_count)


class TextExtractionWorker:
    def __init__(
        self,
        storage_factory=S3ClientWrapper,
        http_client_factory=default_http_client,
        rasterizer=None,
    ):
        self.storage_factory = storage_factory
        self.http_client_factory = http_client_factory
        self.rasterizer = rasterizer

    async def run(self, document_id: str) -> TextResult:
        if not document_id:
            return TextResult(success=False, error="Document ID is required")

        try:
            async with database.get_session_context() as db:
                doc = await get_document(db, document_id)
            if doc is None:
                raise NotFoundError("Document not found")

            try:
                await lifecycle.start_processing(
                    document_id,
                    TEXT_EXTRACTION,
                    f"Analyzing {doc.name} for page text",
                )
            except InvalidTransitionError as e:
                return rejected(document_id, e)

            data = await download_original(
                doc, self.storage_factory, self.http_client_factory
            )
            rasterizer = self.rasterizer or rasterizer_for(doc.type)
            texts = await asyncio.to_thread(rasterizer.extract_text, data)

            tracker = ProgressTracker(
                len(texts),
                publish=lambda value: lifecycle.update_progress(document_id, value),
            )
            await tracker.publish(PROGRESS_PAGE_COUNT_KNOWN)
            for page_number, text in enumerate(texts, start=1):
                async with database.get_session_context() as db:
                    await upsert_page(
                        db, document_id, page_number, text_content=text or None
                    )
                await count_page(tracker, document_id)

            await store_transcription(document_id, TEXT_EXTRACTION)
        except Exception as e:
            message = describe_error(e)
            log_error(
                logger, "Error extracting document text", e, document_id=document_id
            )
            await lifecycle.fail_quietly(document_id, TEXT_EXTRACTION, message)
            return TextResult(success=False, error=message)

        logger.info(
            "Document text extraction completed",
            document_id=document_id,
            page_count=len(texts),
        )
        return TextResult(success=True, page_count=len(texts))
