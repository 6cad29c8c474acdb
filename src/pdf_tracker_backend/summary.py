"""Trailing summary page listing every identifier issued for one document."""

from __future__ import annotations

import io
import logging
from typing import List, Optional, Sequence

from pypdf import PageObject, PdfReader
from reportlab.pdfgen import canvas

from .configuration import SummaryLayout
from .models import SummaryRow

logger = logging.getLogger(__name__)


class SummaryBuilder:
    """
    Builds a single tracking page: a title, a header row and one row per
    identifier with blank "Completed" and "Posted" columns for manual use.

    The page does not paginate. Rows past ``bottom_margin`` are still drawn
    and fall off the page.
    """

    def __init__(self, layout: Optional[SummaryLayout] = None) -> None:
        self.layout = layout or SummaryLayout()

    def rows(self, identifiers: Sequence[str]) -> List[SummaryRow]:
        return [SummaryRow(identifier=identifier) for identifier in identifiers]

    def render(self, identifiers: Sequence[str]) -> bytes:
        layout = self.layout
        height = layout.page_height
        name_x, completed_x, posted_x = layout.column_x

        capacity = layout.capacity()
        if len(identifiers) > capacity:
            logger.warning(
                f"Summary page holds {capacity} rows; {len(identifiers) - capacity} row(s) will run off the page"
            )

        buffer = io.BytesIO()
        c = canvas.Canvas(buffer, pagesize=(layout.page_width, height), invariant=1)

        c.setFont(layout.font_name, layout.title_font_size)
        c.drawString(name_x, height - layout.title_top_offset, layout.title)

        c.setFont(layout.font_name, layout.font_size)
        header_y = height - layout.header_top_offset
        for x, header in zip(layout.column_x, layout.headers):
            c.drawString(x, header_y, header)

        for index, row in enumerate(self.rows(identifiers)):
            y = layout.row_y(index)
            c.drawString(name_x, y, row.identifier)
            c.drawString(completed_x, y, row.completed or layout.blank_marker)
            c.drawString(posted_x, y, row.posted or layout.blank_marker)

        c.showPage()
        c.save()
        return buffer.getvalue()

    def build(self, identifiers: Sequence[str]) -> PageObject:
        return PdfReader(io.BytesIO(self.render(identifiers))).pages[0]
