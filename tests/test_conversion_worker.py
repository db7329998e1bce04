# tests/test_conversion_worker.py
"""Tests for the PDF to page images worker."""

import io

import pytest
from PIL import Image

from src.crud.document import get_document, update_document
from src.crud.page import list_pages
from src.crud.processing_log import list_logs
from src.models.database import db as database
from src.models.sqlmodels.document import DocumentStatus
from src.services import lifecycle
from src.services.conversion_worker import ConversionWorker
from src.services.rasterizer import PdfRasterizer
from src.utils.s3_wrapper import page_image_key


async def snapshot(document_id):
    async with database.get_session_context() as db:
        doc = await get_document(db, document_id)
        pages = await list_pages(db, document_id)
        logs = await list_logs(db, document_id)
    return doc, pages, logs


def png_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (40, 30), color=(200, 10, 10)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def progress_writes(monkeypatch):
    """Record every progress value the workers persist."""
    written = []
    update_progress = lifecycle.update_progress

    async def recording(document_id, progress):
        doc = await update_progress(document_id, progress)
        if doc is not None:
            written.append(doc.processing_progress)
        return doc

    monkeypatch.setattr(lifecycle, "update_progress", recording)
    return written


class RecordingRasterizer(PdfRasterizer):
    def __init__(self):
        super().__init__()
        self.rendered = []

    def render_page(self, data, page_number):
        self.rendered.append(page_number)
        return super().render_page(data, page_number)


class TestConversionWorker:
    async def test_three_page_pdf(self, user, storage, stored_document):
        doc = await stored_document(pages=3)
        worker = ConversionWorker(storage_factory=storage, http_client_factory=storage.serve())

        result = await worker.run(doc.id, user.id)

        assert result.success is True
        assert result.page_count == 3
        assert result.thumbnails == [
            storage.url_of(page_image_key(user.id, doc.id, number)) for number in (1, 2, 3)
        ]
        doc, pages, logs = await snapshot(doc.id)
        assert doc.status == DocumentStatus.PROCESSED.value
        assert doc.page_count == 3
        assert doc.processing_progress == 100
        assert doc.error_message is None
        assert [page.page_number for page in pages] == [1, 2, 3]
        assert all(page.image_url for page in pages)
        assert all(entry.status == "success" for entry in logs)

    async def test_page_images_are_jpeg(self, user, storage, stored_document):
        doc = await stored_document(pages=1)
        worker = ConversionWorker(storage_factory=storage, http_client_factory=storage.serve())
        await worker.run(doc.id, user.id)

        image = storage.objects[page_image_key(user.id, doc.id, 1)]
        assert image[:3] == b"\xff\xd8\xff"

    async def test_pages_are_processed_in_batches(self, user, storage, stored_document):
        doc = await stored_document(pages=7)
        rasterizer = RecordingRasterizer()
        worker = ConversionWorker(
            storage_factory=storage,
            http_client_factory=storage.serve(),
            rasterizer=rasterizer,
        )
        result = await worker.run(doc.id, user.id)

        assert result.page_count == 7
        assert sorted(rasterizer.rendered) == list(range(1, 8))
        # A batch only starts once the previous one finished
        assert set(rasterizer.rendered[:3]) == {1, 2, 3}
        assert set(rasterizer.rendered[3:6]) == {4, 5, 6}

    async def test_missing_source_url_fails(self, user, storage, stored_document):
        doc = await stored_document()
        async with database.get_session_context() as db:
            await update_document(db, doc.id, original_url=None)
        worker = ConversionWorker(storage_factory=storage, http_client_factory=storage.serve())

        result = await worker.run(doc.id, user.id)

        assert result.success is False
        assert result.error == "Document has no source URL"
        doc, pages, logs = await snapshot(doc.id)
        assert doc.status == DocumentStatus.FAILED.value
        assert doc.error_message == "Document has no source URL"
        assert pages == []
        errors = [entry for entry in logs if entry.status == "error"]
        assert errors and "Conversion" in errors[-1].action

    async def test_failed_page_is_skipped(self, user, storage, stored_document):
        doc = await stored_document(pages=5)
        storage.failing_keys.add(page_image_key(user.id, doc.id, 3))
        worker = ConversionWorker(storage_factory=storage, http_client_factory=storage.serve())

        result = await worker.run(doc.id, user.id)

        assert result.success is True
        assert result.page_count == 5
        assert len(result.thumbnails) == 4
        doc, pages, logs = await snapshot(doc.id)
        assert doc.status == DocumentStatus.PROCESSED.value
        assert doc.processing_progress == 100
        assert [page.page_number for page in pages] == [1, 2, 4, 5]
        assert "Page 3 Error" in [entry.action for entry in logs]

    async def test_falls_back_to_storage_and_repairs_url(
        self, user, storage, stored_document, offline_http
    ):
        doc = await stored_document(pages=2)
        expected_url = doc.original_url
        async with database.get_session_context() as db:
            await update_document(db, doc.id, original_url="https://stale.example/report.pdf")
        worker = ConversionWorker(
            storage_factory=storage, http_client_factory=offline_http
        )

        result = await worker.run(doc.id, user.id)

        assert result.success is True
        doc, _, _ = await snapshot(doc.id)
        assert doc.original_url == expected_url

    async def test_unreadable_pdf_fails(self, user, storage, stored_document):
        doc = await stored_document(data=b"definitely not a pdf")
        worker = ConversionWorker(storage_factory=storage, http_client_factory=storage.serve())

        result = await worker.run(doc.id, user.id)

        assert result.success is False
        doc, pages, _ = await snapshot(doc.id)
        assert doc.status == DocumentStatus.FAILED.value
        assert pages == []

    async def test_image_is_a_single_page(self, user, storage, stored_document):
        doc = await stored_document(data=png_bytes(), name="scan.png", type="image")
        worker = ConversionWorker(storage_factory=storage, http_client_factory=storage.serve())

        result = await worker.run(doc.id, user.id)

        assert result.success is True
        assert result.page_count == 1
        doc, pages, _ = await snapshot(doc.id)
        assert doc.page_count == 1
        assert len(pages) == 1

    async def test_unknown_document(self, user, storage):
        worker = ConversionWorker(storage_factory=storage, http_client_factory=storage.serve())
        result = await worker.run("missing", user.id)
        assert result.success is False
        assert result.error == "Document not found"

    async def test_missing_ids(self, storage):
        result = await ConversionWorker(storage_factory=storage).run("", "")
        assert result.success is False
        assert result.error == "Missing documentId or userId in request body"

    async def test_progress_never_goes_backwards(
        self, user, storage, stored_document, progress_writes
    ):
        doc = await stored_document(pages=7)
        worker = ConversionWorker(storage_factory=storage, http_client_factory=storage.serve())

        result = await worker.run(doc.id, user.id)

        assert result.success is True
        assert progress_writes[0] == 10
        assert progress_writes[-1] == 100
        assert progress_writes == sorted(progress_writes)

    async def test_failed_progress_write_is_skipped(
        self, user, storage, stored_document, monkeypatch
    ):
        doc = await stored_document(pages=5)
        update_progress = lifecycle.update_progress
        calls = []

        async def flaky(document_id, progress):
            calls.append(progress)
            if len(calls) == 3:
                raise ConnectionError("db blip")
            return await update_progress(document_id, progress)

        monkeypatch.setattr(lifecycle, "update_progress", flaky)
        worker = ConversionWorker(storage_factory=storage, http_client_factory=storage.serve())

        result = await worker.run(doc.id, user.id)

        assert result.success is True
        assert result.page_count == 5
        assert len(result.thumbnails) == 5
        doc, pages, _ = await snapshot(doc.id)
        assert doc.status == DocumentStatus.PROCESSED.value
        assert doc.processing_progress == 100
        assert len(pages) == 5

    async def test_rejected_while_uploading(self, user, storage, stored_document):
        doc = await stored_document(status=DocumentStatus.UPLOADING)
        worker = ConversionWorker(storage_factory=storage, http_client_factory=storage.serve())

        result = await worker.run(doc.id, user.id)

        assert result.success is False
        assert result.error == "Cannot move document from 'uploading' to 'processing'"
        doc, pages, logs = await snapshot(doc.id)
        assert doc.status == DocumentStatus.UPLOADING.value
        assert pages == []
        assert [entry for entry in logs if entry.status == "error"] == []
        doc = await lifecycle.mark_uploaded(doc.id, doc.original_url)
        assert doc.status == DocumentStatus.UPLOADED.value
