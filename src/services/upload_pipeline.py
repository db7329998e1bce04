"""Per-file upload pipelines mirrored into an ``UploadTracker``.

create record -> upload bytes -> invoke conversion -> reflect result.
Files run concurrently and a failure in one file never touches another.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional

from src.models.sqlmodels.document import Document, DocumentStatus, DocumentType
from src.services import document_service
from src.services.document_service import ConversionInvoker
from src.services.upload_tracker import UploadStatus, UploadTask, UploadTracker
from src.utils.exceptions import describe_error
from src.utils.logger import get_logger, log_error
from src.utils.s3_wrapper import S3ClientWrapper

logger = get_logger(__name__)


@dataclass(frozen=True)
class UploadFile:
    file_name: str
    content_type: str
    data: bytes


class UploadPipeline:
    def __init__(
        self,
        tracker: Optional[UploadTracker] = None,
        invoke_conversion: Optional[ConversionInvoker] = None,
        storage_factory=S3ClientWrapper,
    ):
        self.tracker = tracker or UploadTracker()
        self.invoke_conversion = invoke_conversion
        self.storage_factory = storage_factory

    async def upload_files(
        self,
        user_id: str,
        files: List[UploadFile],
        pipeline_id: Optional[str] = None,
    ) -> List[UploadTask]:
        task_ids = [self.tracker.add(file.file_name) for file in files]
        await asyncio.gather(
            *(
                self._run(task_id, user_id, file, pipeline_id)
                for task_id, file in zip(task_ids, files)
            )
        )
        return [self.tracker.get(task_id) for task_id in task_ids]

    async def _run(
        self,
        task_id: str,
        user_id: str,
        file: UploadFile,
        pipeline_id: Optional[str],
    ) -> None:
        try:
            await self._upload_and_convert(task_id, user_id, file, pipeline_id)
        except Exception as e:
            log_error(logger, "Upload pipeline failed", e, file_name=file.file_name)
            self.tracker.set_status(task_id, UploadStatus.ERROR, describe_error(e))

    async def _upload_and_convert(
        self,
        task_id: str,
        user_id: str,
        file: UploadFile,
        pipeline_id: Optional[str],
    ) -> None:
        tracker = self.tracker

        duplicate = await document_service.find_duplicate(
            user_id, file.file_name, len(file.data)
        )
        if duplicate is not None:
            tracker.set_status(
                task_id,
                UploadStatus.COMPLETE,
                f'"{file.file_name}" already exists in your documents.',
                document_id=duplicate.id,
            )
            return

        tracker.set_status(task_id, UploadStatus.UPLOADING)

        def created(doc: Document) -> None:
            tracker.set_status(task_id, UploadStatus.UPLOADING, document_id=doc.id)

        uploaded = await document_service.upload_document(
            user_id,
            file.file_name,
            file.content_type,
            file.data,
            pipeline_id=pipeline_id,
            on_progress=lambda percent: tracker.report_progress(task_id, percent),
            on_created=created,
            storage_factory=self.storage_factory,
        )
        if not uploaded.ok:
            tracker.set_status(task_id, UploadStatus.ERROR, uploaded.message)
            return

        doc = uploaded.value
        tracker.set_status(task_id, UploadStatus.PROCESSING, document_id=doc.id)

        converted = await document_service.convert_to_images(
            user_id, doc.id, invoke=self.invoke_conversion
        )
        if not converted.ok:
            tracker.set_status(task_id, UploadStatus.ERROR, converted.message)
            return

        self._reflect(task_id, converted.value)

    def _reflect(self, task_id: str, doc: Document) -> None:
        """Mirror the persisted document into the task."""
        if doc.status == DocumentStatus.PROCESSED.value:
            if doc.type == DocumentType.PDF.value:
                self.tracker.report_pages(task_id, doc.page_count, doc.page_count)
            self.tracker.set_status(task_id, UploadStatus.COMPLETE)
        elif doc.status == DocumentStatus.FAILED.value:
            self.tracker.set_status(task_id, UploadStatus.ERROR, doc.error_message)
        else:
            # Still running remotely; the document status stays authoritative
            self.tracker.set_status(
                task_id, UploadStatus.PROCESSING, "Processing continues in the background"
            )
