from sqlalchemy import JSON, Column, DateTime, Text, UniqueConstraint
from sqlmodel import Field, SQLModel
from datetime import datetime
from enum import Enum
from typing import List, Optional
import uuid

from src.models.sqlmodels.user import utcnow


class DocumentStatus(str, Enum):
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class DocumentType(str, Enum):
    PDF = "pdf"
    IMAGE = "image"


class LogStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class Document(SQLModel, table=True):
    __tablename__ = "document"

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()), primary_key=True, index=True
    )
    user_id: str = Field(foreign_key="user.id", index=True)
    name: str = Field(...)
    type: str = Field(default=DocumentType.PDF.value)  # pdf, image
    size: int = Field(default=0)
    content_type: str = Field(default="application/pdf")

    status: str = Field(
        default=DocumentStatus.UPLOADING.value
    )  # uploading, uploaded, processing, processed, failed
    storage_key: Optional[str] = None
    original_url: Optional[str] = None
    thumbnails: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    page_count: int = Field(default=0)
    processing_progress: float = Field(default=0.0)
    transcription: Optional[str] = Field(default=None, sa_column=Column(Text))
    error_message: Optional[str] = None
    pipeline_id: Optional[str] = Field(default=None, index=True)

    created_at: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=True)
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs=dict(onupdate=utcnow),
    )


class DocumentPage(SQLModel, table=True):
    __tablename__ = "document_page"
    __table_args__ = (
        UniqueConstraint("document_id", "page_number", name="uq_document_page_number"),
    )

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()), primary_key=True, index=True
    )
    document_id: str = Field(foreign_key="document.id", index=True)
    page_number: int = Field(..., ge=1)
    image_url: Optional[str] = None
    text_content: Optional[str] = Field(default=None, sa_column=Column(Text))

    created_at: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=True)
    )


class ProcessingLog(SQLModel, table=True):
    __tablename__ = "processing_log"

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()), primary_key=True, index=True
    )
    # Not a foreign key: the audit trail outlives the document
    document_id: str = Field(index=True)
    action: str = Field(...)
    status: str = Field(default=LogStatus.SUCCESS.value)  # success, error
    message: Optional[str] = Field(default=None, sa_column=Column(Text))

    created_at: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=True)
    )
