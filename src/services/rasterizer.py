"""Page counting, rendering and text extraction for stored originals."""

import io
import threading
from typing import List

import pypdfium2 as pdfium
from PIL import Image
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from src.constants.config import PAGE_JPEG_QUALITY, PAGE_RENDER_SCALE
from src.models.sqlmodels.document import DocumentType
from src.utils.exceptions import ValidationError

# pdfium is not thread-safe
_pdfium_lock = threading.Lock()


def _to_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


class PdfRasterizer:
    def __init__(self, scale: float = PAGE_RENDER_SCALE, quality: int = PAGE_JPEG_QUALITY):
        self.scale = scale
        self.quality = quality

    def page_count(self, data: bytes) -> int:
        try:
            return len(PdfReader(io.BytesIO(data)).pages)
        except (PdfReadError, ValueError) as e:
            raise ValidationError(f"Could not read PDF: {e}") from e

    def render_page(self, data: bytes, page_number: int) -> bytes:
        """Render a 1-based page to JPEG bytes."""
        with _pdfium_lock:
            pdf = pdfium.PdfDocument(data)
            try:
                page = pdf[page_number - 1]
                bitmap = page.render(scale=self.scale)
                image = bitmap.to_pil()
            finally:
                pdf.close()
        return _to_jpeg(image, self.quality)

    def extract_text(self, data: bytes) -> List[str]:
        """One string per page, in page order."""
        try:
            reader = PdfReader(io.BytesIO(data))
            return [page.extract_text() or "" for page in reader.pages]
        except (PdfReadError, ValueError) as e:
            raise ValidationError(f"Could not read PDF: {e}") from e


class ImageRasterizer:
    """Image uploads are single-page documents."""

    def __init__(self, quality: int = PAGE_JPEG_QUALITY):
        self.quality = quality

    def page_count(self, data: bytes) -> int:
        try:
            with Image.open(io.BytesIO(data)) as image:
                image.verify()
        except Exception as e:
            raise ValidationError(f"Could not read image: {e}") from e
        return 1

    def render_page(self, data: bytes, page_number: int) -> bytes:
        with Image.open(io.BytesIO(data)) as image:
            return _to_jpeg(image, self.quality)

    def extract_text(self, data: bytes) -> List[str]:
        raise ValidationError("Text extraction is only supported for PDF documents")


def rasterizer_for(document_type: str):
    if document_type == DocumentType.IMAGE.value:
        return ImageRasterizer()
    return PdfRasterizer()
