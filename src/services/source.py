import httpx

from src.constants.env import SOURCE_DOWNLOAD_TIMEOUT
from src.crud.document import update_document
from src.models.database import db as database
from src.models.sqlmodels.document import Document
from src.utils.exceptions import UpstreamError, ValidationError
from src.utils.logger import get_logger

logger = get_logger(__name__)


def default_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=SOURCE_DOWNLOAD_TIMEOUT, follow_redirects=True)


async def download_original(doc: Document, storage_factory, http_client_factory) -> bytes:
    """Fetch the original bytes of ``doc``.

    The public URL is tried first, then the object at ``storage_key``. When
    only the storage copy works, the document's URL is repaired.
    """
    if not doc.original_url:
        raise ValidationError("Document has no source URL")

    data = None
    try:
        async with http_client_factory() as client:
            response = await client.get(doc.original_url)
            response.raise_for_status()
            data = response.content
    except httpx.HTTPError as e:
        logger.warning(
            "Download from original_url failed",
            document_id=doc.id,
            url=doc.original_url,
            error=str(e),
        )

    if data is None and doc.storage_key:
        try:
            async with storage_factory() as storage:
                data = await storage.get_object(doc.storage_key)
                public_url = storage.public_url(doc.storage_key)
        except UpstreamError as e:
            logger.warning(
                "Download from storage failed",
                document_id=doc.id,
                key=doc.storage_key,
                error=e.message,
            )
        else:
            if public_url != doc.original_url:
                async with database.get_session_context() as db:
                    await update_document(db, doc.id, original_url=public_url)
                doc.original_url = public_url

    if data is None:
        raise UpstreamError("Could not download the original file")
    if not data:
        raise ValidationError("Downloaded file is empty")
    return data
