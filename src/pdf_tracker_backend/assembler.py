"""
Document assembly: parse, stamp every page, append the summary, serialize.

The assembler works entirely in memory. It never writes files, so a failure at
any step leaves nothing behind for the file server or bookkeeping to see.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

from .barcodes import BarcodeEncoder
from .compositor import PageCompositor
from .errors import MalformedDocumentError, SerializationError, ValidationError
from .identifiers import IdentifierGenerator, sequence_of
from .summary import SummaryBuilder

logger = logging.getLogger(__name__)


@dataclass
class AssemblyResult:
    """
    Outcome of one assembly.

    Attributes:
        pdf_bytes: The serialized output document
        identifiers: Identifiers in page order, one per source page
        page_count: Number of source pages (the output has one more)
    """

    pdf_bytes: bytes
    identifiers: List[str] = field(default_factory=list)
    page_count: int = 0

    @property
    def last_sequence(self) -> Optional[int]:
        return sequence_of(self.identifiers[-1]) if self.identifiers else None


class DocumentAssembler:
    def __init__(
        self,
        generator: IdentifierGenerator,
        encoder: Optional[BarcodeEncoder] = None,
        compositor: Optional[PageCompositor] = None,
        summary_builder: Optional[SummaryBuilder] = None,
        max_pages: Optional[int] = None,
        clock: Optional[Callable[[], date]] = None,
    ) -> None:
        self.generator = generator
        self.encoder = encoder or BarcodeEncoder()
        self.compositor = compositor or PageCompositor()
        self.summary_builder = summary_builder or SummaryBuilder()
        self.max_pages = max_pages
        self._clock = clock or generator.clock

    def _parse(self, source_bytes: bytes) -> PdfReader:
        try:
            reader = PdfReader(io.BytesIO(source_bytes))
            if reader.is_encrypted and not reader.decrypt(""):
                raise MalformedDocumentError("Encrypted PDF documents are not supported")
            # Resolve the page tree now so broken documents fail before any identifier is issued.
            len(reader.pages)
        except MalformedDocumentError:
            raise
        except (PyPdfError, OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            raise MalformedDocumentError(f"Could not read PDF document: {exc}") from exc
        return reader

    def assemble(self, source_bytes: bytes) -> AssemblyResult:
        reader = self._parse(source_bytes)
        page_count = len(reader.pages)
        if self.max_pages is not None and page_count > self.max_pages:
            raise ValidationError(f"Document has {page_count} pages; at most {self.max_pages} are accepted")

        stamp_date = self._clock()
        identifiers = self.generator.issue(page_count, stamp_date)

        writer = PdfWriter()
        try:
            for source_page, identifier in zip(reader.pages, identifiers):
                barcode_image = self.encoder.encode(identifier)
                page = writer.add_page(source_page)
                self.compositor.compose(page, identifier, barcode_image, stamp_date)
        except (PyPdfError, ValueError, KeyError, TypeError) as exc:
            raise MalformedDocumentError(f"Could not copy page content: {exc}") from exc

        writer.add_page(self.summary_builder.build(identifiers))

        buffer = io.BytesIO()
        try:
            writer.write(buffer)
        except (PyPdfError, OSError, ValueError, TypeError) as exc:
            raise SerializationError(f"Failed to serialize output document: {exc}") from exc

        logger.info(f"Assembled {page_count} stamped page(s) plus summary ({len(buffer.getvalue())} bytes)")
        return AssemblyResult(pdf_bytes=buffer.getvalue(), identifiers=identifiers, page_count=page_count)
