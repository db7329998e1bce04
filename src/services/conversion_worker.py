"""PDF to per-page images.

The worker never raises past ``run``: fatal errors mark the document failed,
land in the processing log and come back as ``success=False``. A page that
fails on its own is logged and skipped, and so is a failed progress write.
A document that cannot enter ``processing`` is left untouched.
"""

import asyncio
from typing import Dict, List, Optional

from src.constants.config import PAGE_BATCH_SIZE, PROGRESS_PAGE_COUNT_KNOWN
from src.crud.document import get_document
from src.crud.page import upsert_page
from src.models.basemodels.document import ConversionResult
from src.models.database import db as database
from src.models.sqlmodels.document import Document, LogStatus
from src.services import lifecycle
from src.services.progress import ProgressTracker, count_page
from src.services.rasterizer import rasterizer_for
from src.services.source import default_http_client, download_original
from src.utils.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
    describe_error,
)
from src.utils.logger import get_logger, log_error
from src.utils.s3_wrapper import S3ClientWrapper, page_image_key

logger = get_logger(__name__)

PDF_CONVERSION = "PDF Conversion"


class ConversionWorker:
    def __init__(
        self,
        storage_factory=S3ClientWrapper,
        http_client_factory=default_http_client,
        rasterizer=None,
        batch_size: int = PAGE_BATCH_SIZE,
    ):
        self.storage_factory = storage_factory
        self.http_client_factory = http_client_factory
        self.rasterizer = rasterizer
        self.batch_size = batch_size

    async def run(self, document_id: str, user_id: str) -> ConversionResult:
        if not document_id or not user_id:
            return ConversionResult(
                success=False, error="Missing documentId or userId in request body"
            )

        logger.info("Processing PDF", document_id=document_id)
        try:
            doc = await self._load(document_id)
            try:
                await lifecycle.start_processing(
                    document_id,
                    PDF_CONVERSION,
                    f"Starting PDF to images conversion for document {document_id}",
                )
            except InvalidTransitionError as e:
                # Never started, so the document keeps its status
                logger.warning(
                    "PDF conversion rejected", document_id=document_id, error=str(e)
                )
                return ConversionResult(success=False, error=describe_error(e))

            data = await download_original(
                doc, self.storage_factory, self.http_client_factory
            )

            rasterizer = self.rasterizer or rasterizer_for(doc.type)
            total_pages = await asyncio.to_thread(rasterizer.page_count, data)
            if total_pages <= 0:
                raise ValidationError("PDF has no pages")
            logger.info("PDF loaded", document_id=document_id, page_count=total_pages)

            tracker = ProgressTracker(
                total_pages,
                publish=lambda value: lifecycle.update_progress(document_id, value),
            )
            await tracker.publish(PROGRESS_PAGE_COUNT_KNOWN)

            thumbnails = await self._convert_pages(
                doc, user_id, data, rasterizer, tracker
            )

            await lifecycle.mark_processed(
                document_id,
                PDF_CONVERSION,
                f"Converted {len(thumbnails)} of {total_pages} pages",
                page_count=total_pages,
                thumbnails=thumbnails,
            )
        except Exception as e:
            message = describe_error(e)
            log_error(logger, "Error processing PDF", e, document_id=document_id)
            await lifecycle.fail_quietly(document_id, PDF_CONVERSION, message)
            return ConversionResult(success=False, error=message)

        logger.info(
            "PDF conversion completed",
            document_id=document_id,
            page_count=total_pages,
            converted=len(thumbnails),
        )
        return ConversionResult(
            success=True, page_count=total_pages, thumbnails=thumbnails
        )

    async def _load(self, document_id: str) -> Document:
        async with database.get_session_context() as db:
            doc = await get_document(db, document_id)
        if doc is None:
            raise NotFoundError("Document not found")
        return doc

    async def _convert_pages(
        self,
        doc: Document,
        user_id: str,
        data: bytes,
        rasterizer,
        tracker: ProgressTracker,
    ) -> List[str]:
        owner_id = doc.user_id or user_id
        urls: Dict[int, str] = {}

        async with self.storage_factory() as storage:
            for start in range(1, tracker.total_pages + 1, self.batch_size):
                batch = range(
                    start, min(start + self.batch_size, tracker.total_pages + 1)
                )
                outcomes = await asyncio.gather(
                    *(
                        self._convert_page(
                            storage, doc.id, owner_id, data, page_number, rasterizer, tracker
                        )
                        for page_number in batch
                    )
                )
                for page_number, url in zip(batch, outcomes):
                    if url:
                        urls[page_number] = url

        return [urls[number] for number in sorted(urls)]

    async def _convert_page(
        self,
        storage,
        document_id: str,
        owner_id: str,
        data: bytes,
        page_number: int,
        rasterizer,
        tracker: ProgressTracker,
    ) -> Optional[str]:
        try:
            image = await asyncio.to_thread(rasterizer.render_page, data, page_number)
            url = await storage.put_object(
                page_image_key(owner_id, document_id, page_number),
                image,
                content_type="image/jpeg",
            )
            async with database.get_session_context() as db:
                await upsert_page(db, document_id, page_number, image_url=url)
            logger.info(
                "Page processed and saved",
                document_id=document_id,
                page_number=page_number,
            )
            return url
        except Exception as e:
            log_error(
                logger,
                "Error generating page image",
                e,
                document_id=document_id,
                page_number=page_number,
            )
            await lifecycle.record(
                document_id,
                f"Page {page_number} Error",
                f"Failed to process page {page_number}: {describe_error(e)}",
                status=LogStatus.ERROR,
            )
            return None
        finally:
            await count_page(tracker, document_id)
