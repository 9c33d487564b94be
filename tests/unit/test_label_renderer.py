"""Unit tests for the label renderer."""

from unittest.mock import patch

import fitz
import pytest

from src.core.exceptions import RenderError
from src.services.label_renderer import LabelRenderer, truncate_to_width


@pytest.fixture
def label_renderer() -> LabelRenderer:
    """Renderer with the built-in Helvetica fallback fonts."""
    return LabelRenderer(font_dir=None)


class TestTruncateToWidth:
    """Tests for truncate_to_width."""

    def test_short_text_unchanged(self) -> None:
        """Test that text that fits is returned as is."""
        font = fitz.Font("helv")
        assert truncate_to_width("Tea", font, 7, 100) == "Tea"

    def test_long_text_gets_ellipsis(self) -> None:
        """Test that text that does not fit is cut with an ellipsis."""
        font = fitz.Font("helv")
        text = "Extra Large Caramel Macchiato With Oat Milk And Vanilla"

        result = truncate_to_width(text, font, 7, 60)

        assert result.endswith("...")
        assert font.text_length(result, fontsize=7) <= 60


class TestLabelRenderer:
    """Tests for LabelRenderer."""

    def test_renders_single_page_pdf(self, label_renderer: LabelRenderer) -> None:
        """Test that a label is one page of the configured size with its text."""
        pdf = label_renderer.render_sync(
            {"title": "Iced Latte", "variant_title": "Large"},
            {"order_number": "#1001", "note": "Oat milk"},
        )

        assert pdf.startswith(b"%PDF")
        with fitz.open(stream=pdf, filetype="pdf") as doc:
            assert doc.page_count == 1
            page = doc[0]
            assert round(page.rect.width, 2) == 164.57
            assert round(page.rect.height, 2) == 53.86
            text = page.get_text()
        assert "#1001" in text
        assert "Iced Latte" in text
        assert "Large" in text
        assert "Oat milk" in text

    def test_missing_title_prints_placeholder(self, label_renderer: LabelRenderer) -> None:
        """Test that an item without a title still renders."""
        pdf = label_renderer.render_sync({}, {"order_number": "#1001"})

        with fitz.open(stream=pdf, filetype="pdf") as doc:
            assert "N/A" in doc[0].get_text()

    @pytest.mark.asyncio
    async def test_async_render(self, label_renderer: LabelRenderer) -> None:
        """Test that render runs off the event loop and returns PDF bytes."""
        pdf = await label_renderer.render({"title": "Tea"}, {"order_number": "#7"})

        assert pdf.startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_render_errors_are_wrapped(self, label_renderer: LabelRenderer) -> None:
        """Test that rendering failures surface as RenderError."""
        with patch.object(label_renderer, "render_sync", side_effect=RuntimeError("font file unreadable")):
            with pytest.raises(RenderError) as exc_info:
                await label_renderer.render({"title": "Tea"}, {"order_number": "#7"})

        assert "font file unreadable" in str(exc_info.value)
