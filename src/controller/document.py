from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Security, UploadFile
from starlette import status

from src.crud.auth import AuthCRUD
from src.models.basemodels.document import (
    BatchDeleteRequest,
    ConversionRequest,
    ConversionResult,
    DocumentListResponse,
    DocumentPageResponse,
    DocumentResponse,
    ProcessingLogResponse,
    Result,
    TextRequest,
    TextResult,
    UploadResponse,
    UploadTaskResponse,
)
from src.models.dependency import (
    get_conversion_invoker,
    get_http_client_factory,
    get_storage_factory,
    get_text_invoker,
    get_upload_pipeline,
)
from src.models.sqlmodels.user import User
from src.services import document_service
from src.services.conversion_worker import ConversionWorker
from src.services.text_worker import TextExtractionWorker
from src.services.upload_pipeline import UploadFile as PipelineFile
from src.services.upload_pipeline import UploadPipeline
from src.utils.exceptions import AuthError, error_for_kind
from src.utils.logger import logger


def unwrap(result: Result):
    """Return the value of an ``Ok`` or raise the error an ``Err`` describes."""
    if not result.ok:
        raise error_for_kind(result.kind, result.message)
    return result.value


class DocumentController:
    tags = ["document"]
    router = APIRouter(tags=tags)

    @router.post("/upload", status_code=status.HTTP_200_OK)
    async def upload_documents(
        current_user: Annotated[
            User, Security(AuthCRUD.get_current_user_with_access())
        ],
        files: List[UploadFile] = File(...),
        pipeline_id: Optional[str] = Form(None),
        pipeline: UploadPipeline = Depends(get_upload_pipeline),
    ) -> UploadResponse:
        """Upload files, then convert each one to page images."""
        batch = []
        for file in files:
            await file.seek(0)
            batch.append(
                PipelineFile(
                    file_name=file.filename or "",
                    content_type=file.content_type or "",
                    data=await file.read(),
                )
            )

        logger.info("Upload started", user_id=current_user.id, files=len(batch))
        tasks = await pipeline.upload_files(
            current_user.id, batch, pipeline_id=pipeline_id
        )
        return UploadResponse(
            tasks=[UploadTaskResponse.model_validate(task) for task in tasks]
        )

    @router.get("/")
    async def list_documents(
        current_user: Annotated[
            User, Security(AuthCRUD.get_current_user_with_access())
        ],
        pipeline_id: Optional[str] = Query(None),
    ) -> DocumentListResponse:
        docs = unwrap(await document_service.list_documents(current_user.id, pipeline_id))
        return DocumentListResponse(
            documents=[DocumentResponse.model_validate(doc) for doc in docs]
        )

    @router.get("/{doc_id}")
    async def get_document(
        doc_id: str,
        current_user: Annotated[
            User, Security(AuthCRUD.get_current_user_with_access())
        ],
    ) -> DocumentResponse:
        doc = unwrap(await document_service.get_document(current_user.id, doc_id))
        return DocumentResponse.model_validate(doc)

    @router.get("/{doc_id}/pages")
    async def get_pages(
        doc_id: str,
        current_user: Annotated[
            User, Security(AuthCRUD.get_current_user_with_access())
        ],
    ) -> List[DocumentPageResponse]:
        pages = unwrap(await document_service.get_pages(current_user.id, doc_id))
        return [DocumentPageResponse.model_validate(page) for page in pages]

    @router.get("/{doc_id}/logs")
    async def get_logs(
        doc_id: str,
        current_user: Annotated[
            User, Security(AuthCRUD.get_current_user_with_access())
        ],
    ) -> List[ProcessingLogResponse]:
        logs = unwrap(await document_service.get_logs(current_user.id, doc_id))
        return [ProcessingLogResponse.model_validate(entry) for entry in logs]

    @router.post("/{doc_id}/convert")
    async def convert_document(
        doc_id: str,
        current_user: Annotated[
            User, Security(AuthCRUD.get_current_user_with_access())
        ],
        invoke=Depends(get_conversion_invoker),
    ) -> DocumentResponse:
        doc = unwrap(
            await document_service.convert_to_images(current_user.id, doc_id, invoke=invoke)
        )
        return DocumentResponse.model_validate(doc)

    @router.post("/{doc_id}/extract-text")
    async def extract_text(
        doc_id: str,
        current_user: Annotated[
            User, Security(AuthCRUD.get_current_user_with_access())
        ],
        invoke=Depends(get_text_invoker),
    ) -> DocumentResponse:
        doc = unwrap(
            await document_service.extract_text(current_user.id, doc_id, invoke=invoke)
        )
        return DocumentResponse.model_validate(doc)

    @router.post("/{doc_id}/process-text")
    async def process_text(
        doc_id: str,
        current_user: Annotated[
            User, Security(AuthCRUD.get_current_user_with_access())
        ],
    ) -> DocumentResponse:
        doc = unwrap(await document_service.process_text(current_user.id, doc_id))
        return DocumentResponse.model_validate(doc)

    @router.delete("/{doc_id}")
    async def delete_document(
        doc_id: str,
        current_user: Annotated[
            User, Security(AuthCRUD.get_current_user_with_access())
        ],
        storage_factory=Depends(get_storage_factory),
    ):
        unwrap(
            await document_service.remove_document(
                current_user.id, doc_id, storage_factory=storage_factory
            )
        )
        logger.info("Document deleted", doc_id=doc_id)
        return {"message": "Document deleted"}

    @router.post("/batch-delete")
    async def batch_delete(
        body: BatchDeleteRequest,
        current_user: Annotated[
            User, Security(AuthCRUD.get_current_user_with_access())
        ],
        storage_factory=Depends(get_storage_factory),
    ):
        removed = unwrap(
            await document_service.remove_documents(
                current_user.id, body.ids, storage_factory=storage_factory
            )
        )
        logger.info("Documents deleted", count=removed)
        return {"deleted": removed}

    @router.post("/pdf-to-images")
    async def pdf_to_images(
        body: ConversionRequest,
        current_user: Annotated[
            User, Security(AuthCRUD.get_current_user_with_access())
        ],
        storage_factory=Depends(get_storage_factory),
        http_client_factory=Depends(get_http_client_factory),
    ) -> ConversionResult:
        """Run the conversion worker in the request and return its payload."""
        if body.user_id != current_user.id:
            raise AuthError("Cannot convert documents of another user")
        unwrap(await document_service.get_document(current_user.id, body.document_id))
        worker = ConversionWorker(
            storage_factory=storage_factory, http_client_factory=http_client_factory
        )
        return await worker.run(body.document_id, body.user_id)

    @router.post("/process-document")
    async def process_document(
        body: TextRequest,
        current_user: Annotated[
            User, Security(AuthCRUD.get_current_user_with_access())
        ],
        storage_factory=Depends(get_storage_factory),
        http_client_factory=Depends(get_http_client_factory),
    ) -> TextResult:
        """Run the text extraction worker in the request and return its payload."""
        unwrap(await document_service.get_document(current_user.id, body.document_id))
        worker = TextExtractionWorker(
            storage_factory=storage_factory, http_client_factory=http_client_factory
        )
        return await worker.run(body.document_id)
