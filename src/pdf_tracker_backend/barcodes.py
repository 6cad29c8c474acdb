"""Code-128 barcode rendering for content identifiers."""

from __future__ import annotations

import io
import logging
from typing import Optional

from barcode import Code128
from barcode.errors import BarcodeError
from barcode.writer import ImageWriter
from PIL import Image

from .configuration import BarcodeOptions
from .errors import EncodingError

logger = logging.getLogger(__name__)

# Code 128 code set B covers printable ASCII; control characters would need
# code set A shifts, which identifiers never contain.
PRINTABLE_ASCII = frozenset(chr(code) for code in range(32, 127))


def module_pixels(options: BarcodeOptions) -> float:
    """Width of one narrow bar in pixels for the given writer options."""
    return options.module_width * options.dpi / 25.4


class BarcodeEncoder:
    """Renders identifiers as Code-128 raster images with the text printed below the bars."""

    def __init__(self, options: Optional[BarcodeOptions] = None) -> None:
        self.options = options or BarcodeOptions()

    def _validate(self, identifier: str) -> None:
        if not identifier:
            raise EncodingError("Cannot encode an empty identifier")
        unsupported = sorted({char for char in identifier if char not in PRINTABLE_ASCII})
        if unsupported:
            raise EncodingError(f"Identifier {identifier!r} contains characters Code 128 cannot encode: {unsupported!r}")

    def encode(self, identifier: str) -> Image.Image:
        self._validate(identifier)
        try:
            symbol = Code128(identifier, writer=ImageWriter())
            image = symbol.render(writer_options=self.options.writer_options())
        except BarcodeError as exc:
            raise EncodingError(f"Failed to encode {identifier!r}: {exc}") from exc
        logger.debug(f"Rendered barcode for {identifier} ({image.width}x{image.height}px)")
        return image

    def encode_png(self, identifier: str) -> bytes:
        buffer = io.BytesIO()
        self.encode(identifier).save(buffer, format="PNG")
        return buffer.getvalue()
