"""Text extraction background task"""

from taskiq.exceptions import TaskiqResultTimeoutError

from src.constants.env import CONVERSION_WAIT_TIMEOUT
from src.models.basemodels.document import TextResult
from src.services.text_worker import TextExtractionWorker
from src.tasks.taskiq_setup import broker
from src.utils.exceptions import UpstreamError


@broker.task(task_name="extract_document_text")
async def extract_document_text_task(document_id: str) -> dict:
    """Pull per-page text out of the original PDF and build the transcription"""
    result = await TextExtractionWorker().run(document_id)
    return result.model_dump(by_alias=True)


async def invoke_text_extraction(
    document_id: str, timeout: float = CONVERSION_WAIT_TIMEOUT
) -> TextResult:
    task = await extract_document_text_task.kiq(document_id)
    try:
        result = await task.wait_result(timeout=timeout)
    except TaskiqResultTimeoutError as e:
        raise TimeoutError(f"Text extraction still running after {timeout}s") from e
    if result.is_err:
        raise UpstreamError(f"Text extraction task failed: {result.error}")
    return TextResult.model_validate(result.return_value)
