# tests/test_document_service.py
"""Tests for the client-facing document commands."""

import pytest

from src.crud.document import get_document
from src.crud.page import list_pages
from src.crud.processing_log import list_logs
from src.models.basemodels.document import ConversionResult, TextResult
from src.models.database import db as database
from src.models.sqlmodels.document import DocumentStatus
from src.services import document_service, lifecycle
from src.services.conversion_worker import ConversionWorker
from src.services.text_worker import TextExtractionWorker
from src.utils.exceptions import ErrorKind
from src.utils.s3_wrapper import original_key


@pytest.fixture
def invoke_conversion(storage):
    """Run the conversion worker in-process instead of through the broker."""

    async def invoke(document_id, user_id):
        worker = ConversionWorker(storage_factory=storage, http_client_factory=storage.serve())
        return await worker.run(document_id, user_id)

    return invoke


async def reload(document_id):
    async with database.get_session_context() as db:
        return await get_document(db, document_id)


async def logs_of(document_id):
    async with database.get_session_context() as db:
        return await list_logs(db, document_id)


class TestUploadDocument:
    async def test_uploads_and_marks_uploaded(self, user, storage, pdf_bytes):
        data = pdf_bytes(2)
        progress = []

        result = await document_service.upload_document(
            user.id,
            "report.pdf",
            "application/pdf",
            data,
            pipeline_id="batch-1",
            on_progress=progress.append,
            storage_factory=storage,
        )

        assert result.ok
        doc = result.value
        assert doc.status == DocumentStatus.UPLOADED.value
        assert doc.type == "pdf"
        assert doc.size == len(data)
        assert doc.pipeline_id == "batch-1"
        key = original_key(user.id, doc.id, "report.pdf")
        assert storage.objects[key] == data
        assert doc.storage_key == key
        assert doc.original_url == storage.url_of(key)
        assert progress == sorted(progress)
        assert progress[-1] == 100.0
        assert [entry.action for entry in await logs_of(doc.id)] == ["Upload"]

    async def test_created_callback_gets_the_record(self, user, storage, pdf_bytes):
        created = []
        result = await document_service.upload_document(
            user.id,
            "report.pdf",
            "application/pdf",
            pdf_bytes(1),
            on_created=created.append,
            storage_factory=storage,
        )
        assert [doc.id for doc in created] == [result.value.id]

    async def test_unsupported_type(self, user, storage):
        result = await document_service.upload_document(
            user.id, "notes.txt", "text/plain", b"hello", storage_factory=storage
        )
        assert not result.ok
        assert result.kind == ErrorKind.VALIDATION
        assert storage.objects == {}

    async def test_requires_user(self, storage, fresh_database):
        result = await document_service.upload_document(
            None, "report.pdf", "application/pdf", b"%PDF", storage_factory=storage
        )
        assert not result.ok
        assert result.kind == ErrorKind.AUTH

    async def test_storage_failure_marks_failed(self, user, storage, pdf_bytes):
        storage.fail_uploads = True
        created = []

        result = await document_service.upload_document(
            user.id,
            "report.pdf",
            "application/pdf",
            pdf_bytes(1),
            on_created=created.append,
            storage_factory=storage,
        )

        assert not result.ok
        assert result.kind == ErrorKind.UPSTREAM
        doc = await reload(created[0].id)
        assert doc.status == DocumentStatus.FAILED.value
        assert doc.error_message == result.message
        assert [entry.action for entry in await logs_of(doc.id)] == ["Upload Error"]


class TestQueries:
    async def test_get_document(self, user, stored_document):
        doc = await stored_document()
        result = await document_service.get_document(user.id, doc.id)
        assert result.ok
        assert result.value.id == doc.id

    async def test_other_users_document_is_not_found(self, other_user, stored_document):
        doc = await stored_document()
        result = await document_service.get_document(other_user.id, doc.id)
        assert not result.ok
        assert result.kind == ErrorKind.NOT_FOUND

    async def test_missing_id(self, user):
        result = await document_service.get_document(user.id, "")
        assert result.kind == ErrorKind.VALIDATION

    async def test_list_documents_by_pipeline(self, user, storage, pdf_bytes):
        for name, pipeline in (("a.pdf", "p1"), ("b.pdf", "p1"), ("c.pdf", "p2")):
            await document_service.upload_document(
                user.id,
                name,
                "application/pdf",
                pdf_bytes(1),
                pipeline_id=pipeline,
                storage_factory=storage,
            )

        everything = await document_service.list_documents(user.id)
        only_p1 = await document_service.list_documents(user.id, pipeline_id="p1")

        assert len(everything.value) == 3
        assert sorted(doc.name for doc in only_p1.value) == ["a.pdf", "b.pdf"]

    async def test_find_duplicate_within_tolerance(self, user, stored_document):
        doc = await stored_document()
        assert (await document_service.find_duplicate(user.id, doc.name, doc.size + 99)).id == doc.id
        assert await document_service.find_duplicate(user.id, doc.name, doc.size + 100) is None
        assert await document_service.find_duplicate(user.id, "other.pdf", doc.size) is None


class TestConvertToImages:
    async def test_converts(self, user, stored_document, invoke_conversion):
        doc = await stored_document(pages=3)

        result = await document_service.convert_to_images(
            user.id, doc.id, invoke=invoke_conversion
        )

        assert result.ok
        assert result.value.status == DocumentStatus.PROCESSED.value
        assert result.value.page_count == 3
        actions = [entry.action for entry in await logs_of(doc.id)]
        assert actions[0] == "PDF Conversion Retry"
        assert "PDF Conversion" in actions

    async def test_retry_after_failure(self, user, storage, stored_document, invoke_conversion):
        doc = await stored_document(pages=2)
        saved = dict(storage.objects)
        storage.objects.clear()

        first = await document_service.convert_to_images(user.id, doc.id, invoke=invoke_conversion)
        assert not first.ok
        assert (await reload(doc.id)).status == DocumentStatus.FAILED.value

        storage.objects.update(saved)
        second = await document_service.convert_to_images(user.id, doc.id, invoke=invoke_conversion)

        assert second.ok
        assert second.value.status == DocumentStatus.PROCESSED.value
        assert second.value.error_message is None
        assert second.value.processing_progress == 100

    async def test_failure_result(self, user, stored_document):
        doc = await stored_document()

        async def invoke(document_id, user_id):
            return ConversionResult(success=False, error="Renderer crashed")

        result = await document_service.convert_to_images(user.id, doc.id, invoke=invoke)

        assert not result.ok
        assert result.message == "Renderer crashed"
        doc = await reload(doc.id)
        assert doc.status == DocumentStatus.FAILED.value
        assert doc.error_message == "Renderer crashed"

    async def test_malformed_result(self, user, stored_document):
        doc = await stored_document()

        async def invoke(document_id, user_id):
            return {"ok": True}

        result = await document_service.convert_to_images(user.id, doc.id, invoke=invoke)

        assert not result.ok
        assert result.message == "Malformed conversion result"
        assert (await reload(doc.id)).status == DocumentStatus.FAILED.value

    async def test_invoke_error(self, user, stored_document):
        doc = await stored_document()

        async def invoke(document_id, user_id):
            raise ConnectionError("broker unreachable")

        result = await document_service.convert_to_images(user.id, doc.id, invoke=invoke)

        assert not result.ok
        assert result.kind == ErrorKind.UPSTREAM
        errors = [entry for entry in await logs_of(doc.id) if entry.status == "error"]
        assert errors[-1].action == "PDF Conversion Error"
        assert errors[-1].message == "broker unreachable"

    async def test_timeout_leaves_document_processing(self, user, stored_document):
        doc = await stored_document()

        async def invoke(document_id, user_id):
            raise TimeoutError("still running")

        result = await document_service.convert_to_images(user.id, doc.id, invoke=invoke)

        assert result.ok
        assert result.value.status == DocumentStatus.PROCESSING.value
        assert result.value.error_message is None

    async def test_other_users_document(self, other_user, stored_document, invoke_conversion):
        doc = await stored_document()
        result = await document_service.convert_to_images(
            other_user.id, doc.id, invoke=invoke_conversion
        )
        assert result.kind == ErrorKind.NOT_FOUND
        assert (await reload(doc.id)).status == DocumentStatus.UPLOADED.value


class TestText:
    async def test_process_text(self, user, stored_document, invoke_conversion):
        doc = await stored_document(pages=2)
        await document_service.convert_to_images(user.id, doc.id, invoke=invoke_conversion)

        result = await document_service.process_text(user.id, doc.id)

        assert result.ok
        assert result.value.status == DocumentStatus.PROCESSED.value
        assert result.value.transcription == ""

    async def test_extract_text(self, user, storage, stored_document):
        doc = await stored_document(pages=2)

        async def invoke(document_id):
            worker = TextExtractionWorker(
                storage_factory=storage, http_client_factory=storage.serve()
            )
            return await worker.run(document_id)

        result = await document_service.extract_text(user.id, doc.id, invoke=invoke)

        assert result.ok
        assert result.value.status == DocumentStatus.PROCESSED.value
        async with database.get_session_context() as db:
            assert len(await list_pages(db, doc.id)) == 2

    async def test_extract_text_failure(self, user, stored_document):
        doc = await stored_document()

        async def invoke(document_id):
            await lifecycle.start_processing(document_id, "Text Extraction")
            return TextResult(success=False, error="No text layer")

        result = await document_service.extract_text(user.id, doc.id, invoke=invoke)

        assert not result.ok
        assert result.message == "No text layer"
        assert (await reload(doc.id)).status == DocumentStatus.FAILED.value

    async def test_text_commands_rejected_while_uploading(self, user, stored_document):
        doc = await stored_document(status=DocumentStatus.UPLOADING)
        invoked = []

        async def invoke(document_id):
            invoked.append(document_id)
            return TextResult(success=True, page_count=0)

        extracted = await document_service.extract_text(user.id, doc.id, invoke=invoke)
        processed = await document_service.process_text(user.id, doc.id)

        assert extracted.kind == processed.kind == ErrorKind.VALIDATION
        assert invoked == []
        assert (await reload(doc.id)).status == DocumentStatus.UPLOADING.value

    async def test_failed_run_that_never_started_keeps_status(self, user, stored_document):
        doc = await stored_document()

        async def invoke(document_id):
            return TextResult(success=False, error="Broker unavailable")

        result = await document_service.extract_text(user.id, doc.id, invoke=invoke)

        assert not result.ok
        assert (await reload(doc.id)).status == DocumentStatus.UPLOADED.value


class TestRemove:
    async def test_remove_document(self, user, storage, stored_document, invoke_conversion):
        doc = await stored_document(pages=2)
        await document_service.convert_to_images(user.id, doc.id, invoke=invoke_conversion)

        result = await document_service.remove_document(user.id, doc.id, storage_factory=storage)

        assert result.ok
        assert await reload(doc.id) is None
        assert storage.objects == {}
        async with database.get_session_context() as db:
            assert await list_pages(db, doc.id) == []
        # The processing log outlives the document
        assert await logs_of(doc.id)

    async def test_storage_failure_still_removes_record(self, user, storage, stored_document):
        doc = await stored_document()
        storage.fail_deletes = True

        result = await document_service.remove_document(user.id, doc.id, storage_factory=storage)

        assert result.ok
        assert await reload(doc.id) is None

    async def test_remove_documents(self, user, storage, stored_document):
        first = await stored_document(name="a.pdf")
        second = await stored_document(name="b.pdf")

        result = await document_service.remove_documents(
            user.id, [first.id, second.id], storage_factory=storage
        )

        assert result.ok
        assert result.value == 2
        assert await reload(first.id) is None
        assert await reload(second.id) is None

    async def test_remove_documents_checks_ownership(self, user, other_user, storage, stored_document):
        doc = await stored_document()

        result = await document_service.remove_documents(
            other_user.id, [doc.id], storage_factory=storage
        )

        assert result.kind == ErrorKind.NOT_FOUND
        assert await reload(doc.id) is not None

    async def test_remove_nothing(self, user, storage):
        result = await document_service.remove_documents(user.id, [], storage_factory=storage)
        assert result.ok
        assert result.value == 0
