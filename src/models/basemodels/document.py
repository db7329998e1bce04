from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, List, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

from src.services.upload_tracker import UploadStatus
from src.utils.exceptions import DocumentError, ErrorKind

T = TypeVar("T")


class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: str
    size: int
    status: str
    original_url: Optional[str] = None
    thumbnails: List[str] = []
    page_count: int
    processing_progress: float
    transcription: Optional[str] = None
    error_message: Optional[str] = None
    pipeline_id: Optional[str] = None
    user_id: str
    created_at: datetime
    updated_at: Optional[datetime] = None


class DocumentListResponse(BaseModel):
    documents: List[DocumentResponse]


class DocumentPageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    page_number: int
    image_url: Optional[str] = None
    text_content: Optional[str] = None


class ProcessingLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    document_id: str
    action: str
    status: str
    message: Optional[str] = None
    created_at: datetime


class BatchDeleteRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1)


class ConversionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(..., alias="documentId")
    user_id: str = Field(..., alias="userId")


class TextRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(..., alias="documentId")


class ConversionResult(BaseModel):
    """Wire payload of the conversion boundary."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    page_count: Optional[int] = Field(default=None, alias="pageCount")
    thumbnails: List[str] = []
    error: Optional[str] = None


class TextResult(BaseModel):
    """Wire payload of the text boundary."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    page_count: Optional[int] = Field(default=None, alias="pageCount")
    error: Optional[str] = None


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False

    @classmethod
    def from_exception(cls, error: DocumentError) -> "Err":
        return cls(kind=error.kind, message=error.message)


Result = Union[Ok[Any], Err]


class UploadTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    file_name: str
    progress: float
    status: UploadStatus
    message: Optional[str] = None
    pages_processed: Optional[int] = None
    page_count: Optional[int] = None
    document_id: Optional[str] = None


class UploadResponse(BaseModel):
    tasks: List[UploadTaskResponse]
