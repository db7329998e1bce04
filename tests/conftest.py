import io
import os
import tempfile

_tmp_dir = tempfile.mkdtemp(prefix="docflow-tests-")
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{os.path.join(_tmp_dir, 'test.db')}"

os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["TASKIQ_BROKER"] = "memory"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["R2_PUBLIC_URL"] = "https://files.test"
for name in ("DB_HOST", "DB_USER", "DB_PASSWORD", "DB_NAME"):
    os.environ.pop(name, None)

import httpx  # noqa: E402
import pytest  # noqa: E402
from pypdf import PdfWriter  # noqa: E402

from src.crud.document import create_document, update_document  # noqa: E402
from src.models.database import db as database  # noqa: E402
from src.models.sqlmodels.document import DocumentStatus  # noqa: E402
from src.models.sqlmodels.user import User  # noqa: E402
from src.utils.exceptions import UpstreamError  # noqa: E402
from src.utils.s3_wrapper import original_key  # noqa: E402


class FakeStorage:
    """In-memory stand-in for ``S3ClientWrapper``.

    Calling the instance returns itself, so it can be passed wherever a
    storage factory is expected.
    """

    base_url = "https://files.test"

    def __init__(self):
        self.objects = {}
        self.failing_keys = set()
        self.fail_uploads = False
        self.fail_deletes = False

    def __call__(self):
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        return None

    def public_url(self, key):
        return f"{self.base_url}/{key}"

    async def upload_fileobj(self, fileobj, key, content_type="application/octet-stream", callback=None):
        if self.fail_uploads:
            raise UpstreamError("Error uploading file to S3: bucket unavailable")
        data = fileobj.read()
        half = len(data) // 2
        for chunk in (half, len(data) - half):
            if callback and chunk:
                callback(chunk)
        self.objects[key] = data
        return self.public_url(key)

    async def put_object(self, key, body, content_type="application/octet-stream"):
        if key in self.failing_keys:
            raise UpstreamError(f"Error uploading file to S3: {key}")
        self.objects[key] = body
        return self.public_url(key)

    async def get_object(self, key):
        if key not in self.objects:
            raise UpstreamError(f"Error getting object from S3: {key}")
        return self.objects[key]

    async def delete_prefix(self, prefix):
        if self.fail_deletes:
            raise UpstreamError("Error deleting objects from S3")
        keys = [key for key in self.objects if key.startswith(prefix)]
        for key in keys:
            del self.objects[key]
        return len(keys)

    def url_of(self, key):
        return self.public_url(key)

    def serve(self):
        """An httpx client factory that serves the stored objects by URL."""

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            prefix = f"{self.base_url}/"
            key = url[len(prefix):] if url.startswith(prefix) else None
            if key is None or key not in self.objects:
                return httpx.Response(404)
            return httpx.Response(200, content=self.objects[key])

        return lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))


def offline_client_factory():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("network is unreachable", request=request)

    return lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))


def make_pdf(pages: int) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=200, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture
async def fresh_database():
    database.configure(TEST_DATABASE_URL)
    await database.drop_all()
    await database.create_all()
    yield database
    await database.close_all_connections()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
async def user(fresh_database):
    async with database.get_session_context() as db:
        user = User(username="reader", hashed_password="not-a-real-hash", disabled=False)
        db.add(user)
        await db.commit()
        await db.refresh(user)
    return user


@pytest.fixture
async def other_user(fresh_database):
    async with database.get_session_context() as db:
        user = User(username="someone-else", hashed_password="not-a-real-hash", disabled=False)
        db.add(user)
        await db.commit()
        await db.refresh(user)
    return user


@pytest.fixture
def stored_document(user, storage):
    """Create a document whose original is already in storage."""

    async def factory(data=None, name="report.pdf", type="pdf", status=DocumentStatus.UPLOADED, pages=3):
        if data is None:
            data = make_pdf(pages)
        content_type = "application/pdf" if type == "pdf" else "image/png"
        async with database.get_session_context() as db:
            doc = await create_document(
                db,
                user_id=user.id,
                name=name,
                type=type,
                size=len(data),
                content_type=content_type,
            )
            key = original_key(user.id, doc.id, name)
            storage.objects[key] = data
            doc = await update_document(
                db,
                doc.id,
                status=status.value,
                storage_key=key,
                original_url=storage.url_of(key),
            )
        return doc

    return factory


@pytest.fixture
def offline_http():
    """An httpx client factory whose every request fails to connect."""
    return offline_client_factory()


@pytest.fixture
def pdf_bytes():
    return make_pdf
