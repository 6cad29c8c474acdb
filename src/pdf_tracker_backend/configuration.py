from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf
from pydantic import BaseModel, Field

from .models import ConfigMetadata

load_dotenv()

_HERE = Path(__file__).resolve()
_CANDIDATE_CONFIG_PATHS = [_HERE.parent / "config/config.yaml"]
if os.environ.get("PDF_TRACKER_CONFIG"):
    _CANDIDATE_CONFIG_PATHS.insert(0, Path(os.environ["PDF_TRACKER_CONFIG"]))

CONFIG_PATH = next((path for path in _CANDIDATE_CONFIG_PATHS if path.exists()), None)
if CONFIG_PATH is None:  # pragma: no cover - fail fast in broken installs
    raise FileNotFoundError("Default config.yaml could not be located; set PDF_TRACKER_CONFIG or reinstall the package.")

ENV_VARIABLES = [
    "LOG_LEVEL",
    "IDENTIFIER_PREFIX",
    "MAX_UPLOAD_BYTES",
    "OUTPUT_DIR",
    "DATABASE_PATH",
    "S3_BUCKET_NAME",
]

NOTES = {
    "sequence.persistent": "Keep the last issued sequence number in the run database so restarts do not reuse identifiers.",
    "sequence.width": "Issuing past the largest value that fits this many digits fails instead of widening the field.",
    "summary.bottom_margin": "Rows below this line are still drawn; the summary page does not paginate.",
    "overlay": "Offsets are measured from the top-left corner of each page's media box.",
}


class SequenceSettings(BaseModel):
    prefix: str = "CXM"
    initial_value: int = Field(default=1, ge=0)
    width: int = Field(default=5, ge=1)
    date_format: str = "%m%d%y"
    persistent: bool = False


class UploadLimits(BaseModel):
    max_bytes: int = Field(default=5 * 1024 * 1024, gt=0)
    max_pages: Optional[int] = Field(default=500, gt=0)
    allowed_content_types: List[str] = ["application/pdf"]


class BarcodeOptions(BaseModel):
    """Writer options for python-barcode; lengths are in millimetres."""

    module_width: float = 0.3
    module_height: float = 10.0
    dpi: int = 254
    quiet_zone: float = 2.5
    font_size: int = 10
    text_distance: float = 4.0
    write_text: bool = True

    def writer_options(self) -> Dict[str, Any]:
        return self.model_dump()


class OverlayLayout(BaseModel):
    """Overlay geometry in PDF points, anchored at a page's top-left corner."""

    x_offset: float = 20.0
    barcode_top_offset: float = 80.0
    barcode_width: float = 100.0
    barcode_height: float = 50.0
    code_text_top_offset: float = 90.0
    date_text_top_offset: float = 110.0
    font_name: str = "Helvetica"
    font_size: float = 12.0
    code_label: str = "Barcode: "
    date_label: str = "Date: "
    date_format: str = "%m/%d/%Y"

    def positions(self, left: float, top: float) -> Dict[str, tuple[float, float]]:
        """Return the lower-left drawing origin of each overlay element."""
        x = left + self.x_offset
        return {
            "barcode": (x, top - self.barcode_top_offset),
            "code_text": (x, top - self.code_text_top_offset),
            "date_text": (x, top - self.date_text_top_offset),
        }


class SummaryLayout(BaseModel):
    page_width: float = 595.28
    page_height: float = 841.89
    title: str = "Summary Table"
    title_font_size: float = 16.0
    title_top_offset: float = 50.0
    header_top_offset: float = 80.0
    row_height: float = 20.0
    bottom_margin: float = 40.0
    font_name: str = "Helvetica"
    font_size: float = 12.0
    column_x: List[float] = [50.0, 250.0, 400.0]
    headers: List[str] = ["Barcode Name", "Completed", "Posted"]
    blank_marker: str = "_____________"

    def row_y(self, index: int) -> float:
        """Baseline of the zero-based data row ``index``."""
        return self.page_height - self.header_top_offset - self.row_height * (index + 1)

    def capacity(self) -> int:
        """Number of data rows that fit above the bottom margin."""
        usable = self.page_height - self.header_top_offset - self.bottom_margin
        return max(int(usable // self.row_height), 0)


class StorageSettings(BaseModel):
    output_dir: Path = Path("uploads")
    database_path: Path = Path("data/runs.db")
    filename_template: str = "generated_{sequence}.pdf"
    empty_filename_template: str = "generated_{sequence}_{run}.pdf"
    public_prefix: str = "/uploads"
    s3_bucket: str = ""
    s3_prefix: str = "generated"
    presigned_url_expiration: int = 3600


class Settings(BaseModel):
    log_level: str = "INFO"
    sequence: SequenceSettings = SequenceSettings()
    upload: UploadLimits = UploadLimits()
    barcode: BarcodeOptions = BarcodeOptions()
    overlay: OverlayLayout = OverlayLayout()
    summary: SummaryLayout = SummaryLayout()
    storage: StorageSettings = StorageSettings()


@lru_cache(maxsize=1)
def _load_default_config() -> DictConfig:
    if not CONFIG_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {CONFIG_PATH}")
    return OmegaConf.load(CONFIG_PATH)


def get_default_config_container(resolve: bool = False) -> Dict[str, Any]:
    config = _load_default_config()
    return OmegaConf.to_container(config, resolve=resolve, enum_to_str=True)  # type: ignore[return-value]


def make_runtime_config(overrides: Dict[str, Any]) -> DictConfig:
    base_container = OmegaConf.to_container(_load_default_config(), resolve=False)
    base = OmegaConf.create(base_container)
    OmegaConf.set_struct(base, True)

    cli_config = OmegaConf.create(overrides)
    merged = DictConfig(OmegaConf.merge(base, cli_config))
    return merged


def load_settings(overrides: Dict[str, Any] | None = None) -> Settings:
    """Merge ``overrides`` over the YAML defaults and validate the result."""
    runtime_config = make_runtime_config(overrides or {})
    resolved = OmegaConf.to_container(runtime_config, resolve=True, enum_to_str=True)
    return Settings.model_validate(resolved)


def build_config_metadata(settings: Settings) -> ConfigMetadata:
    return ConfigMetadata(
        defaults=get_default_config_container(resolve=False),
        effective=settings.model_dump(mode="json"),
        environment_variables=ENV_VARIABLES,
        notes=NOTES,
    )
