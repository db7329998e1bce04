"""Client-side upload progress store.

State changes only through ``dispatch``; ``reduce`` is a pure function from
(state, action) to the next state. The store mirrors remote state for
display and is never the source of truth for a document's processing
status; that is ``Document.status``.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Union
import uuid


class UploadStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"


ACTIVE_STATUSES = frozenset({UploadStatus.UPLOADING, UploadStatus.PROCESSING})


@dataclass(frozen=True)
class UploadTask:
    """One file in an upload batch.

    ``progress`` counts uploaded bytes only and stays at 100 once the upload
    finished; conversion is reported through ``pages_processed`` and
    ``page_count``.
    """

    id: str
    file_name: str
    progress: float = 0.0
    status: UploadStatus = UploadStatus.PENDING
    message: Optional[str] = None
    pages_processed: Optional[int] = None
    page_count: Optional[int] = None
    document_id: Optional[str] = None


@dataclass(frozen=True)
class TaskAdded:
    task_id: str
    file_name: str


@dataclass(frozen=True)
class ProgressReported:
    task_id: str
    progress: float


@dataclass(frozen=True)
class StatusChanged:
    task_id: str
    status: UploadStatus
    message: Optional[str] = None
    document_id: Optional[str] = None


@dataclass(frozen=True)
class PagesReported:
    task_id: str
    pages_processed: int
    page_count: int


@dataclass(frozen=True)
class TaskRemoved:
    task_id: str


@dataclass(frozen=True)
class TasksCleared:
    pass


Action = Union[
    TaskAdded, ProgressReported, StatusChanged, PagesReported, TaskRemoved, TasksCleared
]
State = Mapping[str, UploadTask]


def _clamp(progress: float) -> float:
    return max(0.0, min(100.0, float(progress)))


def reduce(state: State, action: Action) -> Dict[str, UploadTask]:
    tasks = dict(state)

    if isinstance(action, TaskAdded):
        tasks[action.task_id] = UploadTask(id=action.task_id, file_name=action.file_name)
        return tasks
    if isinstance(action, TasksCleared):
        return {}

    task = tasks.get(action.task_id)
    if task is None:
        return tasks

    if isinstance(action, TaskRemoved):
        del tasks[action.task_id]
    elif isinstance(action, ProgressReported):
        progress = _clamp(action.progress)
        # Only forward progress is applied
        if progress > task.progress:
            tasks[task.id] = replace(task, progress=progress)
    elif isinstance(action, StatusChanged):
        updated = replace(task, status=action.status, message=action.message)
        if action.document_id:
            updated = replace(updated, document_id=action.document_id)
        if action.status == UploadStatus.COMPLETE:
            updated = replace(updated, progress=100.0)
        tasks[task.id] = updated
    elif isinstance(action, PagesReported):
        tasks[task.id] = replace(
            task,
            status=UploadStatus.PROCESSING,
            pages_processed=action.pages_processed,
            page_count=action.page_count,
        )
    return tasks


@dataclass
class UploadTracker:
    _state: Dict[str, UploadTask] = field(default_factory=dict)
    _listeners: List[Callable[[State], None]] = field(default_factory=list)

    def dispatch(self, action: Action) -> None:
        self._state = reduce(self._state, action)
        for listener in list(self._listeners):
            listener(self._state)

    def subscribe(self, listener: Callable[[State], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Commands

    def add(self, file_name: str) -> str:
        task_id = str(uuid.uuid4())
        self.dispatch(TaskAdded(task_id=task_id, file_name=file_name))
        return task_id

    def report_progress(self, task_id: str, progress: float) -> None:
        self.dispatch(ProgressReported(task_id=task_id, progress=progress))

    def set_status(
        self,
        task_id: str,
        status: UploadStatus,
        message: Optional[str] = None,
        document_id: Optional[str] = None,
    ) -> None:
        self.dispatch(
            StatusChanged(
                task_id=task_id, status=status, message=message, document_id=document_id
            )
        )

    def report_pages(self, task_id: str, pages_processed: int, page_count: int) -> None:
        self.dispatch(
            PagesReported(
                task_id=task_id, pages_processed=pages_processed, page_count=page_count
            )
        )

    def remove(self, task_id: str) -> None:
        self.dispatch(TaskRemoved(task_id=task_id))

    def clear(self) -> None:
        self.dispatch(TasksCleared())

    # Selectors

    def get(self, task_id: str) -> Optional[UploadTask]:
        return self._state.get(task_id)

    def tasks(self) -> List[UploadTask]:
        return list(self._state.values())

    def is_uploading(self) -> bool:
        return any(task.status in ACTIVE_STATUSES for task in self._state.values())
