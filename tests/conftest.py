"""
Pytest configuration and fixtures for PDF Tracker Backend tests.
"""

import io
import os
import shutil
import tempfile
from datetime import date

import pytest
from pypdf import PdfWriter
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

# Set test environment variables before importing the app
os.environ["OUTPUT_DIR"] = tempfile.mkdtemp(prefix="pdf_tracker_test_output_")
os.environ["DATABASE_PATH"] = os.path.join(tempfile.mkdtemp(prefix="pdf_tracker_test_data_"), "runs.db")
os.environ.pop("S3_BUCKET_NAME", None)

from pdf_tracker_backend.configuration import load_settings
from pdf_tracker_backend.database import RunDatabase
from pdf_tracker_backend.identifiers import IdentifierGenerator
from pdf_tracker_backend.stamp_manager import StampManager

STAMP_DATE = date(2024, 6, 15)


def build_pdf(page_count: int, pagesize=letter) -> bytes:
    """Build a PDF whose pages each carry an ``Original page N`` line."""
    if page_count == 0:
        buffer = io.BytesIO()
        PdfWriter().write(buffer)
        return buffer.getvalue()

    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=pagesize)
    for number in range(1, page_count + 1):
        c.setFont("Helvetica", 14)
        c.drawString(72, pagesize[1] / 2, f"Original page {number}")
        c.showPage()
    c.save()
    return buffer.getvalue()


@pytest.fixture(scope="session", autouse=True)
def test_dirs():
    """Cleanup environment directories after the session."""
    output_dir = os.environ["OUTPUT_DIR"]
    data_dir = os.path.dirname(os.environ["DATABASE_PATH"])

    yield {
        "output": output_dir,
        "data": data_dir,
    }

    shutil.rmtree(output_dir, ignore_errors=True)
    shutil.rmtree(data_dir, ignore_errors=True)


@pytest.fixture
def pdf_factory():
    return build_pdf


@pytest.fixture
def sample_pdf():
    """A three-page letter-sized PDF."""
    return build_pdf(3)


@pytest.fixture
def empty_pdf():
    """A structurally valid PDF with no pages."""
    return build_pdf(0)


@pytest.fixture
def fixed_clock():
    return lambda: STAMP_DATE


@pytest.fixture
def generator(fixed_clock):
    return IdentifierGenerator(clock=fixed_clock)


@pytest.fixture
def settings(tmp_path):
    """Settings writing outputs and bookkeeping under ``tmp_path``."""
    return load_settings(
        {
            "storage": {
                "output_dir": str(tmp_path / "uploads"),
                "database_path": str(tmp_path / "data" / "runs.db"),
                "s3_bucket": "",
            }
        }
    )


@pytest.fixture
def database(settings):
    return RunDatabase(settings.storage.database_path)


@pytest.fixture
def manager(settings, database, fixed_clock):
    return StampManager(settings, database=database, clock=fixed_clock)
