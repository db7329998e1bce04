# tests/test_tasks.py
"""Tests for the taskiq task boundary, using the in-memory broker."""

from src.crud.document import get_document, update_document
from src.models.database import db as database
from src.models.sqlmodels.document import DocumentStatus
from src.tasks.document.conversion_task import invoke_conversion
from src.tasks.document.text_task import invoke_text_extraction
from src.tasks.taskiq_setup import broker


class TestBroker:
    def test_tasks_are_registered(self):
        assert broker.find_task("convert_document_to_images") is not None
        assert broker.find_task("extract_document_text") is not None


class TestInvokeConversion:
    async def test_failure_payload_round_trips(self, user, stored_document):
        doc = await stored_document()
        async with database.get_session_context() as db:
            await update_document(db, doc.id, original_url=None)

        result = await invoke_conversion(doc.id, user.id, timeout=30)

        assert result.success is False
        assert result.error == "Document has no source URL"
        async with database.get_session_context() as db:
            doc = await get_document(db, doc.id)
        assert doc.status == DocumentStatus.FAILED.value

    async def test_unknown_document(self, user):
        result = await invoke_conversion("missing", user.id, timeout=30)
        assert result.success is False
        assert result.error == "Document not found"


class TestInvokeTextExtraction:
    async def test_unknown_document(self, fresh_database):
        result = await invoke_text_extraction("missing", timeout=30)
        assert result.success is False
        assert result.error == "Document not found"
