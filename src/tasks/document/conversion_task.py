"""PDF to images background task"""

from taskiq.exceptions import TaskiqResultTimeoutError

from src.constants.env import CONVERSION_WAIT_TIMEOUT
from src.models.basemodels.document import ConversionResult
from src.services.conversion_worker import ConversionWorker
from src.tasks.taskiq_setup import broker
from src.utils.exceptions import UpstreamError


@broker.task(task_name="convert_document_to_images")
async def convert_document_task(document_id: str, user_id: str) -> dict:
    """Render every page of the stored original and record the page images"""
    result = await ConversionWorker().run(document_id, user_id)
    return result.model_dump(by_alias=True)


async def invoke_conversion(
    document_id: str, user_id: str, timeout: float = CONVERSION_WAIT_TIMEOUT
) -> ConversionResult:
    """Kick the conversion task and wait for its payload.

    Raises ``TimeoutError`` when the result is not ready in time; the task
    itself keeps running.
    """
    task = await convert_document_task.kiq(document_id, user_id)
    try:
        result = await task.wait_result(timeout=timeout)
    except TaskiqResultTimeoutError as e:
        raise TimeoutError(f"Conversion still running after {timeout}s") from e
    if result.is_err:
        raise UpstreamError(f"Conversion task failed: {result.error}")
    return ConversionResult.model_validate(result.return_value)
