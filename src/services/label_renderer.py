"""Product label rendering with PyMuPDF."""

import asyncio
import logging
from pathlib import Path
from typing import Any

import fitz  # PyMuPDF

from src.core.config import get_settings
from src.core.exceptions import RenderError

logger = logging.getLogger(__name__)

# Item lines start right of the preprinted logo area on the label stock
ITEM_LEFT_PT = 45.0
RIGHT_MARGIN_PT = 5.0
ORDER_LINE_TOP_PT = 7.0
ELLIPSIS = "..."

# (style, Roboto file, base-14 fallback)
FONT_FILES = {
    "bold": ("Roboto-Bold.ttf", "hebo"),
    "regular": ("Roboto-Regular.ttf", "helv"),
    "italic": ("Roboto-Italic.ttf", "heit"),
}


def truncate_to_width(text: str, font: fitz.Font, fontsize: float, max_width: float) -> str:
    """Shorten text with a trailing ellipsis until it fits max_width."""
    if font.text_length(text, fontsize=fontsize) <= max_width:
        return text
    while text and font.text_length(text + ELLIPSIS, fontsize=fontsize) > max_width:
        text = text[:-1]
    return text.rstrip() + ELLIPSIS if text else ""


class LabelRenderer:
    """Render one small PDF label per print unit.

    Layout, top to bottom and centered: order number, product title, variant
    title (if any), order note (if any).
    """

    def __init__(
        self,
        width: float = 164.57,
        height: float = 53.86,
        font_dir: str | Path | None = None,
    ) -> None:
        self.width = width
        self.height = height
        self._fonts: dict[str, tuple[str, str | None, fitz.Font]] = {}
        self._load_fonts(Path(font_dir) if font_dir else None)

    def _load_fonts(self, font_dir: Path | None) -> None:
        for style, (filename, fallback) in FONT_FILES.items():
            fontfile = font_dir / filename if font_dir else None
            if fontfile is not None and fontfile.is_file():
                name = f"roboto-{style}"
                self._fonts[style] = (name, str(fontfile), fitz.Font(fontfile=str(fontfile)))
            else:
                self._fonts[style] = (fallback, None, fitz.Font(fallback))

        if any(fontfile is None for _, fontfile, _ in self._fonts.values()):
            logger.debug("Roboto fonts not found in %s, using Helvetica", font_dir)

    def _draw_line(
        self,
        page: fitz.Page,
        text: str,
        style: str,
        fontsize: float,
        top: float,
        left: float,
        right: float,
    ) -> None:
        fontname, fontfile, font = self._fonts[style]
        text = truncate_to_width(text, font, fontsize, right - left)
        if not text:
            return
        x = left + (right - left - font.text_length(text, fontsize=fontsize)) / 2
        page.insert_text(
            fitz.Point(x, top + fontsize),
            text,
            fontname=fontname,
            fontfile=fontfile,
            fontsize=fontsize,
        )

    def render_sync(self, item: dict[str, Any], order_info: dict[str, Any]) -> bytes:
        """Render a label synchronously.

        Args:
            item: Line item snapshot (title, variant_title, ...).
            order_info: Order fields (order_number, note, ...).

        Returns:
            bytes: PDF document.
        """
        doc = fitz.open()
        try:
            page = doc.new_page(width=self.width, height=self.height)
            right = self.width - RIGHT_MARGIN_PT
            y = ORDER_LINE_TOP_PT

            self._draw_line(page, str(order_info.get("order_number") or "N/A"), "bold", 6, y, RIGHT_MARGIN_PT, right)
            y += 9
            self._draw_line(page, str(item.get("title") or "N/A"), "bold", 7, y, ITEM_LEFT_PT, right)
            y += 9
            if item.get("variant_title"):
                self._draw_line(page, str(item["variant_title"]), "regular", 6, y, ITEM_LEFT_PT, right)
                y += 8
            if order_info.get("note"):
                self._draw_line(page, str(order_info["note"]), "italic", 5, y, ITEM_LEFT_PT, right)

            return doc.tobytes()
        finally:
            doc.close()

    async def render(self, item: dict[str, Any], order_info: dict[str, Any]) -> bytes:
        """Render a label off the event loop.

        Raises:
            RenderError: If the document cannot be produced.
        """
        try:
            return await asyncio.to_thread(self.render_sync, item, order_info)
        except Exception as e:
            raise RenderError(f"Label rendering failed: {type(e).__name__}: {e}") from e


# Global singleton instance
_label_renderer: LabelRenderer | None = None


def get_label_renderer() -> LabelRenderer:
    """Get or create the global label renderer."""
    global _label_renderer
    if _label_renderer is None:
        settings = get_settings()
        _label_renderer = LabelRenderer(
            width=settings.label_width_pt,
            height=settings.label_height_pt,
            font_dir=settings.label_font_dir,
        )
    return _label_renderer
