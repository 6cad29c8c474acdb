"""
Page overlay composition.

The overlay (barcode image, identifier text and date) is drawn with reportlab
onto a transparent one-page PDF and merged on top of the target page, leaving
the page's own content where it was.
"""

from __future__ import annotations

import io
from datetime import date
from typing import Optional

from PIL import Image
from pypdf import PageObject, PdfReader
from pypdf.generic import RectangleObject
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from .configuration import OverlayLayout


class PageCompositor:
    def __init__(self, layout: Optional[OverlayLayout] = None) -> None:
        self.layout = layout or OverlayLayout()

    def format_date(self, stamp_date: date) -> str:
        return stamp_date.strftime(self.layout.date_format)

    def build_overlay(
        self,
        width: float,
        height: float,
        left: float,
        top: float,
        identifier: str,
        barcode_image: Image.Image,
        stamp_date: date,
    ) -> bytes:
        """
        Render the overlay as a standalone PDF.

        ``left`` and ``top`` are the page's media box corner in user space.
        Rendering uses reportlab's invariant mode, so equal inputs always give
        byte-identical output.
        """
        layout = self.layout
        positions = layout.positions(left, top)

        buffer = io.BytesIO()
        c = canvas.Canvas(buffer, pagesize=(width, height), invariant=1)

        barcode_x, barcode_y = positions["barcode"]
        c.drawImage(
            ImageReader(barcode_image),
            barcode_x,
            barcode_y,
            width=layout.barcode_width,
            height=layout.barcode_height,
        )

        c.setFont(layout.font_name, layout.font_size)
        code_x, code_y = positions["code_text"]
        c.drawString(code_x, code_y, f"{layout.code_label}{identifier}")
        date_x, date_y = positions["date_text"]
        c.drawString(date_x, date_y, f"{layout.date_label}{self.format_date(stamp_date)}")

        c.showPage()
        c.save()
        return buffer.getvalue()

    def compose(
        self,
        page: PageObject,
        identifier: str,
        barcode_image: Image.Image,
        stamp_date: date,
    ) -> PageObject:
        """Merge the overlay onto ``page`` and return it."""
        box = page.mediabox
        left, bottom = float(box.left), float(box.bottom)
        right, top = float(box.right), float(box.top)

        overlay_bytes = self.build_overlay(
            width=right - left,
            height=top - bottom,
            left=left,
            top=top,
            identifier=identifier,
            barcode_image=barcode_image,
            stamp_date=stamp_date,
        )
        overlay_page = PdfReader(io.BytesIO(overlay_bytes)).pages[0]
        # pypdf clips merged content to the overlay's box; align it with the target page.
        overlay_page.mediabox = RectangleObject([left, bottom, right, top])
        page.merge_page(overlay_page)
        return page
