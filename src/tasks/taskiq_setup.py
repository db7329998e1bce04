import time
import uuid
from typing import Any

import structlog
from taskiq import InMemoryBroker, TaskiqMessage, TaskiqMiddleware, TaskiqResult
from taskiq.abc.broker import AsyncBroker
from taskiq.serializers import ORJSONSerializer
from taskiq_redis import RedisAsyncResultBackend, RedisStreamBroker

from src.constants.env import JSON_LOGS, LOG_LEVEL, TASKIQ_BROKER, VALKEY_WORKER_URL
from src.utils.logger import log_error, logger, setup_logging

# Initialize logging for worker processes
setup_logging(json_logs=JSON_LOGS, log_level=LOG_LEVEL)


def ensure_tasks_registered():
    """Import all task modules to register them with broker"""
    try:
        from src.tasks.document import conversion_task, text_task  # noqa: F401

        logger.info("All task modules imported successfully")
    except Exception as e:
        logger.error(f"Error importing task modules: {e}")
        raise


class TaskLoggingMiddleware(TaskiqMiddleware):
    async def startup(self) -> None:
        logger.info("TaskiqMiddleware startup")

    async def pre_execute(self, message: TaskiqMessage) -> TaskiqMessage:
        structlog.contextvars.clear_contextvars()

        # Every log line of one task execution carries the same trace id
        task_trace_id = message.task_id or str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(
            worker_trace_id=task_trace_id,
            task_name=message.task_name,
        )

        message.labels["task_start_time"] = time.time()

        logger.info(
            "Task started",
            task_args=message.args,
            task_kwargs=message.kwargs,
        )
        return message

    async def post_execute(self, message: TaskiqMessage, result: Any) -> Any:
        start_time = message.labels.get("task_start_time", time.time())
        duration = time.time() - float(start_time)

        logger.info(
            "Task completed successfully",
            duration_seconds=round(duration, 2),
            result_preview=str(result)[:200] if result else None,
        )
        return result

    async def on_error(
        self,
        message: TaskiqMessage,
        result: "TaskiqResult[Any]",
        exception: BaseException,
    ) -> None:
        start_time = message.labels.get("task_start_time", time.time())
        duration = time.time() - float(start_time)

        logger.error(
            "Task failed",
            duration_seconds=round(duration, 2),
            error_message=str(exception),
            error_type=type(exception).__name__,
            result=str(result)[:200] if result else None,
            exc_info=True,
        )


def create_broker(url: str) -> AsyncBroker:
    """Create and configure the broker used by ``@broker.task``."""
    try:
        if TASKIQ_BROKER == "memory":
            b = InMemoryBroker()
        else:
            b = RedisStreamBroker(url=url).with_result_backend(
                RedisAsyncResultBackend(redis_url=url, result_ex_time=600)
            )
            b.serializer = ORJSONSerializer()

        b.add_middlewares(TaskLoggingMiddleware())
        return b
    except Exception as e:
        log_error(logger, "Broker creation failed", e)
        raise


broker = create_broker(VALKEY_WORKER_URL)

# Import task modules AFTER the broker is created
ensure_tasks_registered()
