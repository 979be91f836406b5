# calcgrade/workers/queue.py

from abc import ABC, abstractmethod
from typing import Any, Callable

from redis import Redis
from rq import Queue

from calcgrade.core.config import settings
from calcgrade.models.submission import WorkMode
from calcgrade.services.processing_types import ProcessingOptions

_DEFAULT_QUEUE_NAME = "default"

_redis_conn: Redis | None = None


def get_redis_connection() -> Redis:
    global _redis_conn
    if _redis_conn is None:
        redis_url = settings.REDIS_URL
        _redis_conn = Redis.from_url(redis_url)
    return _redis_conn


def get_queue(name: str = _DEFAULT_QUEUE_NAME) -> Queue:
    return Queue(name, connection=get_redis_connection())


def enqueue_job(
    func: Callable[..., Any],
    *args: Any,
    queue_name: str = _DEFAULT_QUEUE_NAME,
    **kwargs: Any,
) -> str:

    q = get_queue(queue_name)
    job = q.enqueue(func, *args, **kwargs)
    return job.id


class TaskDispatcher(ABC):
    """Hands a submission to whatever runs the processing pipeline out of band."""

    @abstractmethod
    def dispatch_processing(
        self, submission_id: int, options: ProcessingOptions | None = None
    ) -> str:
        """Queue processing and return the job id."""


class RQTaskDispatcher(TaskDispatcher):
    def __init__(self, queue_name: str | None = None):
        self.queue_name = queue_name or settings.PROCESSING_QUEUE_NAME

    def dispatch_processing(
        self, submission_id: int, options: ProcessingOptions | None = None
    ) -> str:
        from calcgrade.workers.tasks import process_submission_task

        options = options or ProcessingOptions()
        return enqueue_job(
            process_submission_task,
            submission_id,
            mode=WorkMode(options.mode).value,
            skip_ai=options.skip_ai,
            queue_name=self.queue_name,
        )


def get_task_dispatcher() -> TaskDispatcher:
    """FastAPI dependency; overridden in tests."""
    return RQTaskDispatcher()
