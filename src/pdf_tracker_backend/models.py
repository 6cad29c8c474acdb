from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SummaryRow(BaseModel):
    identifier: str
    completed: str = ""
    posted: str = ""


class RunRecord(BaseModel):
    id: str
    identifiers: List[str]
    filename: str
    output_path: str
    download_url: str
    source_filename: Optional[str] = None
    s3_key: Optional[str] = None
    created_at: datetime


class UploadResponse(BaseModel):
    message: str
    download_url: str = Field(serialization_alias="downloadUrl")
    filename: str
    identifiers: List[str]
    page_count: int
    run_id: str
    bookkeeping_saved: bool = True
    bookkeeping_error: Optional[str] = None
    s3_url: Optional[str] = None


class ConfigMetadata(BaseModel):
    defaults: Dict[str, Any]
    effective: Dict[str, Any]
    environment_variables: List[str]
    notes: Dict[str, str]
