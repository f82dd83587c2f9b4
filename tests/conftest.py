"""
Shared fixtures: in-memory collaborators, HTTP stubs and sample documents.
"""

import io
import json
from urllib.parse import quote, unquote, urlparse

import httpx
import pytest
from docx import Document
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from cvparse.config import CVParseConfig
from cvparse.errors import PersistenceError, StorageError
from cvparse.models import DocumentReference
from cvparse.storage.base import BlobStore, RecordStore, ReferenceStore

STORAGE_BASE = "https://files.test"
EXTRACTION_URL = "https://extract.test/api/parse-cv"

SAMPLE_PAYLOAD = {
    "education": [
        {"institution": "MIT", "degree": "BSc", "field": "Computer Science", "graduation_year": "2018"}
    ],
    "experience": [
        {
            "company": "Acme",
            "position": "Engineer",
            "duration": "2018-2022",
            "responsibilities": ["Built APIs", "Led migrations"],
        }
    ],
    "skills": [{"name": "Python", "level": "Expert"}],
    "languages": [{"language": "English", "proficiency": "Native"}],
    "certifications": [],
}


# === In-memory collaborators ===


class MemoryBlobStore(BlobStore):
    """Blob store backed by a dict, with URLs under STORAGE_BASE."""

    def __init__(self, base_url: str = STORAGE_BASE):
        self.base_url = base_url
        self.objects: dict[tuple[str, str], bytes] = {}
        self.fail_uploads = False
        self.removed: list[tuple[str, str]] = []

    async def get_signed_read_url(self, bucket, path, expires_in=3600):
        if (bucket, path) not in self.objects:
            raise StorageError(f"Object not found: {bucket}/{path}", status_code=404)
        return f"{self.base_url}/storage/v1/object/sign/{bucket}/{quote(path)}?token=signed"

    async def upload(self, bucket, path, data, content_type="application/octet-stream"):
        if self.fail_uploads:
            raise StorageError("upload refused", status_code=500)
        self.objects[(bucket, path)] = data

    def get_public_url(self, bucket, path):
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{quote(path)}"

    async def remove(self, bucket, path):
        self.removed.append((bucket, path))
        self.objects.pop((bucket, path), None)

    def lookup(self, url: str) -> bytes | None:
        """Bytes behind a signed or public URL of this store."""
        parts = [unquote(p) for p in urlparse(url).path.split("/") if p]
        if parts[:3] != ["storage", "v1", "object"] or len(parts) < 6:
            return None
        return self.objects.get((parts[4], "/".join(parts[5:])))


class MemoryReferenceStore(ReferenceStore):
    def __init__(self):
        self.references: dict[str, DocumentReference] = {}
        self.fail_updates = False

    async def get(self, owner_id):
        return self.references.get(owner_id)

    async def put(self, reference):
        self.references[reference.owner_id] = reference

    async def update_locator(self, owner_id, storage_locator):
        if self.fail_updates:
            raise RuntimeError("database unavailable")
        current = self.references[owner_id]
        self.references[owner_id] = DocumentReference(
            owner_id=owner_id,
            storage_locator=storage_locator,
            display_name=current.display_name,
        )

    async def delete(self, owner_id):
        return self.references.pop(owner_id, None) is not None


class MemoryRecordStore(RecordStore):
    def __init__(self):
        self.records = {}
        self.fail = False

    async def upsert(self, owner_id, record):
        if self.fail:
            raise PersistenceError(f"Failed to store parsed CV for owner {owner_id}")
        self.records[owner_id] = record

    async def get(self, owner_id):
        return self.records.get(owner_id)


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def json_response(status_code: int, data) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(data), headers={"content-type": "application/json"})


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# === Sample documents ===


def build_pdf(lines: list[tuple[float, float, str]], pages: int = 1, compress: bool = False) -> bytes:
    """PDF with ``(x, y, text)`` strings drawn on each page."""
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4, pageCompression=int(compress))
    for _ in range(pages):
        for x, y, text in lines:
            pdf.drawString(x, y, text)
        pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def build_docx(paragraphs: list[str], table: list[list[str]] | None = None) -> bytes:
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    if table:
        grid = document.add_table(rows=len(table), cols=len(table[0]))
        for r, row in enumerate(table):
            for c, value in enumerate(row):
                grid.cell(r, c).text = value
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


# === Fixtures ===


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def references():
    return MemoryReferenceStore()


@pytest.fixture
def records():
    return MemoryRecordStore()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def sample_docx():
    return build_docx(
        ["Jane Doe", "Software Engineer", "Python, SQL"],
        table=[["MIT", "BSc Computer Science"]],
    )


@pytest.fixture
def config(tmp_path):
    """Config rooted in a temporary data directory."""
    config = CVParseConfig(data_dir=tmp_path / "data")
    config.data_dir.mkdir(parents=True)
    config.storage.signing_secret = "test-secret"
    config.server.public_url = "http://testserver"
    config.extraction.endpoint_url = EXTRACTION_URL
    return config


def build_broken_filter_pdf() -> bytes:
    """Valid-looking PDF whose page stream names a filter pypdf does not know.

    The replacement keeps the byte length, so the xref offsets stay valid.
    """
    data = build_pdf([(72, 720, "Jane Doe")], compress=True)
    assert b"/FlateDecode" in data
    return data.replace(b"/FlateDecode", b"/FlateDecodX")
