"""
Pytest Configuration and Fixtures
"""

import os
import sys
import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), 'src'))

# Set test environment
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

import pymupdf  # noqa: E402

from core.identity import register_identity  # noqa: E402
from persistence import Database, IdentityRepository, RegistryRepository  # noqa: E402

TEST_PASSWORD = "correct horse battery"


def build_pdf(
    text: str = "Quarterly Report: revenue up 12%",
    title: str = "Quarterly Report",
    producer: str = "Acme Writer 3.1",
    creator: str = "",
    pages: int = 1,
) -> bytes:
    """Create a small PDF in memory."""
    doc = pymupdf.open()
    for i in range(pages):
        page = doc.new_page()
        page.insert_text((72, 72), f"{text} (page {i + 1})", fontsize=12)
    doc.set_metadata({
        "title": title,
        "producer": producer,
        "creator": creator,
        "creationDate": "D:20240101120000Z",
        "modDate": "D:20240102090000Z",
    })
    data = doc.tobytes()
    doc.close()
    return data


HAND_WRITTEN_PDF = b"""%PDF-1.4
1 0 obj << /Type /Catalog /Pages 2 0 R >> endobj
2 0 obj << /Type /Pages /Kids [3 0 R] /Count 1 >> endobj
3 0 obj << /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792]
   /Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >> endobj
4 0 obj << /Length 43 >> stream
BT /F1 12 Tf 72 720 Td (Hand written) Tj ET
endstream endobj
5 0 obj << /Type /Font /Subtype /Type1 /BaseFont /Helvetica >> endobj
trailer << /Root 1 0 R >>
%%EOF
"""

# Save options of other writers: free xref entries left behind, object and
# xref streams, compressed object streams
PDF_SHAPES = {
    "default": None,
    "free_entries": {"garbage": 1},
    "object_streams": {"use_objstms": 1},
    "compressed_object_streams": {"garbage": 4, "deflate": True, "use_objstms": 1},
    "hand_written_no_xref": None,
}


def build_pdf_shape(shape: str) -> bytes:
    """A PDF as some other writer would have saved it."""
    if shape == "default":
        return build_pdf()
    if shape == "hand_written_no_xref":
        return HAND_WRITTEN_PDF

    doc = pymupdf.open(stream=build_pdf(pages=2), filetype="pdf")
    doc.delete_page(1)
    data = doc.tobytes(**PDF_SHAPES[shape])
    doc.close()
    return data


@pytest.fixture(params=sorted(PDF_SHAPES))
def shaped_pdf(request):
    """The same kind of document, once per writer shape."""
    return build_pdf_shape(request.param)


@pytest.fixture
def pdf_factory():
    """Factory for in-memory PDFs."""
    return build_pdf


@pytest.fixture
def sample_pdf():
    """A plain, unsigned PDF."""
    return build_pdf()


@pytest.fixture
def database(tmp_path):
    """A fresh file-backed SQLite database."""
    db = Database(f"sqlite:///{tmp_path / 'docseal-test.db'}")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def identity_repo(database):
    return IdentityRepository(database)


@pytest.fixture
def registry_repo(database):
    return RegistryRepository(database)


@pytest.fixture
def password():
    return TEST_PASSWORD


@pytest.fixture
def alice(identity_repo):
    """A registered identity."""
    return register_identity(identity_repo, "alice@example.com", TEST_PASSWORD)


@pytest.fixture
def bob(identity_repo):
    """A second registered identity."""
    return register_identity(identity_repo, "bob@example.com", TEST_PASSWORD)
