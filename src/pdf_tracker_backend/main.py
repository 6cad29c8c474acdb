from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from .configuration import load_settings
from .errors import (
    EncodingError,
    MalformedDocumentError,
    PersistenceError,
    SequenceOverflowError,
    SerializationError,
    StampError,
    ValidationError,
)
from .models import ConfigMetadata, RunRecord, UploadResponse
from .stamp_manager import StampManager

settings = load_settings()
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

app = FastAPI(title="PDF Tracker API", version="0.1.0")

allowed_origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

stamp_manager = StampManager(settings)

app.mount(
    settings.storage.public_prefix,
    StaticFiles(directory=stamp_manager.output_root),
    name="uploads",
)

UPLOAD_CHUNK_SIZE = 1024 * 1024

_ERROR_STATUS = {
    ValidationError: 400,
    MalformedDocumentError: 422,
    EncodingError: 500,
    SequenceOverflowError: 500,
    SerializationError: 500,
    PersistenceError: 503,
}


def get_stamp_manager() -> StampManager:
    return stamp_manager


def _to_http_error(exc: StampError) -> HTTPException:
    status_code = next((code for kind, code in _ERROR_STATUS.items() if isinstance(exc, kind)), 500)
    if status_code >= 500:
        logger.error(f"Error generating PDF: {exc}")
    return HTTPException(status_code=status_code, detail=str(exc))


async def _read_upload(file: UploadFile, max_bytes: int) -> bytes:
    """Read the upload body, failing as soon as it grows past ``max_bytes``."""
    chunks = []
    size = 0
    while chunk := await file.read(UPLOAD_CHUNK_SIZE):
        size += len(chunk)
        if size > max_bytes:
            await file.close()
            raise ValidationError(f"File size exceeds the {max_bytes} byte limit.")
        chunks.append(chunk)
    await file.close()
    return b"".join(chunks)


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/config/defaults", response_model=ConfigMetadata)
def get_config_defaults(manager: StampManager = Depends(get_stamp_manager)) -> ConfigMetadata:
    return manager.get_config_metadata()


@app.post("/upload", response_model=UploadResponse)
async def upload(
    pdf_file: Optional[UploadFile] = File(None, alias="pdfFile"),
    manager: StampManager = Depends(get_stamp_manager),
) -> UploadResponse:
    if pdf_file is None:
        raise HTTPException(status_code=400, detail="No files were uploaded.")

    try:
        manager.validate_upload(pdf_file.filename, pdf_file.content_type)
        data = await _read_upload(pdf_file, manager.settings.upload.max_bytes)
        return await run_in_threadpool(manager.process_upload, data, pdf_file.filename, pdf_file.content_type)
    except StampError as exc:
        raise _to_http_error(exc) from exc


@app.get("/records", response_model=List[RunRecord])
def list_records(manager: StampManager = Depends(get_stamp_manager)) -> List[RunRecord]:
    try:
        return manager.list_runs()
    except PersistenceError as exc:
        raise _to_http_error(exc) from exc


@app.get("/records/{identifier}", response_model=RunRecord)
def get_record(identifier: str, manager: StampManager = Depends(get_stamp_manager)) -> RunRecord:
    try:
        record = manager.find_run(identifier)
    except PersistenceError as exc:
        raise _to_http_error(exc) from exc
    if not record:
        raise HTTPException(status_code=404, detail="Identifier not found")
    return record
