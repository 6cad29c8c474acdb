"""
Request-level orchestration for stamping uploads.

This module ties the annotation pipeline to its collaborators:
- Upload validation (content type and size) before any processing
- Document assembly through :class:`DocumentAssembler`
- Atomic publication of the output file in the served directory
- Bookkeeping records in the run database
- Optional mirroring of the output to S3

The StampManager class provides the business logic behind the HTTP API.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from .assembler import AssemblyResult, DocumentAssembler
from .barcodes import BarcodeEncoder
from .compositor import PageCompositor
from .configuration import Settings, build_config_metadata
from .database import RunDatabase
from .errors import PersistenceError, SerializationError, ValidationError
from .identifiers import IdentifierGenerator
from .models import ConfigMetadata, RunRecord, UploadResponse
from .s3_service import S3Service
from .summary import SummaryBuilder
from .utils import atomic_write_bytes, ensure_directory, sanitize_filename

logger = logging.getLogger(__name__)


class StampManager:
    """
    Central coordinator for stamping runs.

    Thread Safety:
        The identifier counter is serialized by its sequence state and the
        run registry by ``_lock``. Everything else is owned by one request.

    Attributes:
        settings: Validated runtime settings
        output_root: Directory served as ``/uploads``
        database: Bookkeeping store for completed runs
        generator: Identifier generator shared by all requests
        assembler: Pipeline that produces the stamped document
    """

    def __init__(
        self,
        settings: Settings,
        database: Optional[RunDatabase] = None,
        generator: Optional[IdentifierGenerator] = None,
        s3_service: Optional[S3Service] = None,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self.settings = settings
        self.output_root = ensure_directory(Path(settings.storage.output_dir))
        self.database = database or RunDatabase(Path(settings.storage.database_path))
        self.generator = generator or IdentifierGenerator.from_settings(settings.sequence, self.database, clock=clock)
        self.assembler = DocumentAssembler(
            generator=self.generator,
            encoder=BarcodeEncoder(settings.barcode),
            compositor=PageCompositor(settings.overlay),
            summary_builder=SummaryBuilder(settings.summary),
            max_pages=settings.upload.max_pages,
        )
        self.s3 = s3_service or S3Service(settings.storage.s3_bucket, settings.storage.s3_prefix)
        self._config_metadata: ConfigMetadata | None = None
        self._runs: Dict[str, RunRecord] = {}
        self._lock = Lock()

    def validate_upload(self, filename: Optional[str], content_type: Optional[str], size: Optional[int] = None) -> None:
        """
        Reject uploads that must not reach the pipeline.

        Size checks are skipped when ``size`` is None, so the declared metadata
        can be checked before the body is read.

        Raises:
            ValidationError: On a missing file, a disallowed content type,
                an empty body or a body over the size limit
        """
        limits = self.settings.upload
        if not filename:
            raise ValidationError("No files were uploaded.")
        media_type = (content_type or "").split(";")[0].strip().lower()
        if media_type not in limits.allowed_content_types:
            raise ValidationError("Only PDF files are allowed.")
        if size is None:
            return
        if size == 0:
            raise ValidationError("Uploaded file is empty.")
        if size > limits.max_bytes:
            raise ValidationError(f"File size exceeds the {limits.max_bytes} byte limit.")

    def output_filename(self, result: AssemblyResult, run_id: str) -> str:
        """
        Name the output after its last identifier.

        A run without pages issues no identifier, so its name also carries the
        run ID and never replaces the output of the run that issued the
        current counter value.
        """
        storage = self.settings.storage
        if result.last_sequence is not None:
            return storage.filename_template.format(sequence=result.last_sequence)
        return storage.empty_filename_template.format(sequence=self.generator.last_sequence, run=run_id[:8])

    def download_url(self, filename: str) -> str:
        return f"{self.settings.storage.public_prefix.rstrip('/')}/{filename}"

    def _publish(self, result: AssemblyResult, run_id: str) -> Path:
        output_path = self.output_root / self.output_filename(result, run_id)
        if output_path.exists():
            logger.warning(f"Overwriting existing output {output_path}; its sequence number was issued by an earlier run")
        try:
            atomic_write_bytes(output_path, result.pdf_bytes)
        except OSError as exc:
            raise SerializationError(f"Failed to write {output_path.name}: {exc}") from exc
        logger.info(f"Wrote {output_path}")
        return output_path

    def process_upload(self, data: bytes, filename: Optional[str], content_type: Optional[str]) -> UploadResponse:
        """
        Validate, stamp and publish one uploaded PDF.

        Args:
            data: Raw upload bytes
            filename: Client-supplied filename
            content_type: Declared MIME type of the upload

        Returns:
            UploadResponse describing the published file

        Raises:
            ValidationError: Upload rejected; no identifier was issued
            MalformedDocumentError, EncodingError, SequenceOverflowError,
            SerializationError: Assembly failed; no output file was published

        Note:
            Bookkeeping failures do not raise. The output file stays published
            and the response reports ``bookkeeping_saved = False``. The run is
            still kept in the in-process registry. S3 failures only leave
            ``s3_url`` empty.
        """
        self.validate_upload(filename, content_type, len(data))
        logger.info(f"Stamping upload {filename!r} ({len(data)} bytes)")

        run_id = uuid4().hex
        result = self.assembler.assemble(data)
        output_path = self._publish(result, run_id)

        s3_key, s3_url = None, None
        try:
            s3_key, s3_url = self.s3.mirror(output_path, self.settings.storage.presigned_url_expiration)
        except Exception as exc:
            logger.error(f"S3 mirror failed for {output_path.name}: {exc}")

        record = RunRecord(
            id=run_id,
            identifiers=result.identifiers,
            filename=output_path.name,
            output_path=str(output_path),
            download_url=self.download_url(output_path.name),
            source_filename=sanitize_filename(filename or ""),
            s3_key=s3_key,
            created_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._runs[record.id] = record

        bookkeeping_error = None
        try:
            self.database.save(record)
        except PersistenceError as exc:
            logger.error(f"Bookkeeping failed for {record.filename}: {exc}")
            bookkeeping_error = str(exc)

        return UploadResponse(
            message="File uploaded and PDF generated successfully",
            download_url=record.download_url,
            filename=record.filename,
            identifiers=record.identifiers,
            page_count=result.page_count,
            run_id=record.id,
            bookkeeping_saved=bookkeeping_error is None,
            bookkeeping_error=bookkeeping_error,
            s3_url=s3_url,
        )

    def list_runs(self) -> List[RunRecord]:
        return self.database.list_runs()

    def get_run(self, run_id: str) -> Optional[RunRecord]:
        with self._lock:
            record = self._runs.get(run_id)
        return record or self.database.get_run(run_id)

    def find_run(self, identifier: str) -> Optional[RunRecord]:
        """
        Find the run that issued ``identifier``.

        The database answers first. Runs completed by this process whose
        bookkeeping failed are found in the registry, newest first.
        """
        record = self.database.get_by_identifier(identifier)
        if record:
            return record
        with self._lock:
            records = sorted(self._runs.values(), key=lambda r: r.created_at, reverse=True)
        return next((r for r in records if identifier in r.identifiers), None)

    def get_config_metadata(self) -> ConfigMetadata:
        """
        Get configuration metadata (cached after first call).

        Returns:
            ConfigMetadata with defaults, effective settings and notes
        """
        if self._config_metadata is None:
            self._config_metadata = build_config_metadata(self.settings)
        return self._config_metadata
