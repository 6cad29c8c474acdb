"""
Tests for PDF Tracker Backend API endpoints.

Tests cover:
- Health check
- Configuration defaults
- Upload validation and stamping
- Download of generated files
- Bookkeeping lookups
- CORS
"""

import io

import pytest
from fastapi.testclient import TestClient
from pypdf import PdfReader

from pdf_tracker_backend.configuration import load_settings
from pdf_tracker_backend.database import RunDatabase
from pdf_tracker_backend.main import app, get_stamp_manager
from pdf_tracker_backend.stamp_manager import StampManager


@pytest.fixture
def api_manager(tmp_path, fixed_clock):
    """A manager over the served output directory with a fresh database."""
    settings = load_settings({"storage": {"database_path": str(tmp_path / "api.db")}})
    return StampManager(settings, database=RunDatabase(tmp_path / "api.db"), clock=fixed_clock)


@pytest.fixture
def client(api_manager):
    """Create a test client with the manager dependency overridden."""
    app.dependency_overrides[get_stamp_manager] = lambda: api_manager
    yield TestClient(app)
    app.dependency_overrides.clear()


def _upload(client, content: bytes, filename: str = "scan.pdf", content_type: str = "application/pdf"):
    return client.post("/upload", files={"pdfFile": (filename, io.BytesIO(content), content_type)})


class TestHealthCheck:
    """Tests for the /healthz endpoint."""

    def test_health_check_returns_ok(self, client):
        """Health check should return status ok."""
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestConfigDefaults:
    """Tests for the /config/defaults endpoint."""

    def test_get_config_defaults(self, client):
        """Should return configuration metadata."""
        response = client.get("/config/defaults")
        assert response.status_code == 200

        data = response.json()
        assert "defaults" in data
        assert "effective" in data
        assert data["effective"]["upload"]["allowed_content_types"] == ["application/pdf"]


class TestUpload:
    """Tests for the /upload endpoint."""

    def test_upload_stamps_document(self, client, sample_pdf):
        """A valid upload returns identifiers and a download URL."""
        response = _upload(client, sample_pdf)
        assert response.status_code == 200

        data = response.json()
        assert data["message"] == "File uploaded and PDF generated successfully"
        assert data["identifiers"] == ["CXM-061524-00001", "CXM-061524-00002", "CXM-061524-00003"]
        assert data["downloadUrl"] == "/uploads/generated_3.pdf"
        assert data["bookkeeping_saved"] is True

    def test_download_generated_file(self, client, sample_pdf):
        """The generated file is served from the download URL."""
        data = _upload(client, sample_pdf).json()
        response = client.get(data["downloadUrl"])
        assert response.status_code == 200
        assert len(PdfReader(io.BytesIO(response.content)).pages) == 4

    def test_upload_without_file(self, client):
        """A request without the pdfFile field is rejected."""
        response = client.post("/upload", data={"other": "value"})
        assert response.status_code == 400
        assert response.json()["detail"] == "No files were uploaded."

    def test_upload_non_pdf(self, client, api_manager):
        """Non-PDF uploads are rejected before any identifier is issued."""
        response = _upload(client, b"not a pdf", filename="notes.txt", content_type="text/plain")
        assert response.status_code == 400
        assert "PDF" in response.json()["detail"]
        assert api_manager.generator.last_sequence == 0

    def test_upload_too_large(self, client, api_manager):
        """Uploads over the size limit are rejected."""
        oversized = b"%PDF-" + b"0" * api_manager.settings.upload.max_bytes
        response = _upload(client, oversized)
        assert response.status_code == 400
        assert "exceeds" in response.json()["detail"]
        assert api_manager.generator.last_sequence == 0

    def test_upload_malformed_pdf(self, client, api_manager):
        """Unparseable PDFs are reported as unprocessable."""
        response = _upload(client, b"%PDF-1.4 broken")
        assert response.status_code == 422
        assert api_manager.list_runs() == []


class TestRecords:
    """Tests for bookkeeping endpoints."""

    def test_lookup_by_identifier(self, client, sample_pdf):
        """Every issued identifier resolves to its run."""
        data = _upload(client, sample_pdf).json()
        response = client.get("/records/CXM-061524-00002")
        assert response.status_code == 200
        record = response.json()
        assert record["id"] == data["run_id"]
        assert record["filename"] == "generated_3.pdf"
        assert record["identifiers"] == data["identifiers"]

    def test_lookup_unknown_identifier(self, client):
        """Unknown identifiers return 404."""
        response = client.get("/records/CXM-010100-99999")
        assert response.status_code == 404

    def test_list_records(self, client, pdf_factory):
        """Completed runs are listed."""
        _upload(client, pdf_factory(1))
        _upload(client, pdf_factory(1))
        response = client.get("/records")
        assert response.status_code == 200
        assert len(response.json()) == 2


class TestCORS:
    """Tests for CORS configuration."""

    def test_cors_headers_present(self, client):
        """CORS headers should be present on responses."""
        response = client.get("/healthz", headers={"Origin": "http://localhost:3000"})
        assert response.status_code == 200
        assert "access-control-allow-origin" in response.headers
