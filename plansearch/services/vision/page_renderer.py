"""Service for loading plan PDFs and rendering pages to images.

Uses pdfplumber both to rasterize pages for the vision model and to pull the
page text used for sheet classification. Rendering is CPU-bound, so the
async entry points run it in a worker thread.
"""

import asyncio
from io import BytesIO
from pathlib import Path
from typing import Optional

import httpx

from plansearch.core.exceptions import DocumentDownloadError, DocumentNotFoundError, RenderError
from plansearch.schemas.vision import RenderedPage
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

PDF_POINTS_PER_INCH = 72
DOWNLOAD_TIMEOUT_SECONDS = 120


async def load_document_bytes(file_path: str) -> bytes:
    """Read a document from a local path or download it from an http(s) URL.

    Raises:
        DocumentNotFoundError: Local file is missing
        DocumentDownloadError: Remote fetch failed
    """
    if file_path.startswith("http://") or file_path.startswith("https://"):
        try:
            async with httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT_SECONDS, follow_redirects=True) as client:
                response = await client.get(file_path)
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            raise DocumentDownloadError(f"Failed to download document: {file_path}", e) from e

    path = Path(file_path)
    if not path.is_file():
        raise DocumentNotFoundError(f"Document file not found: {file_path}")
    return await asyncio.to_thread(path.read_bytes)


class PageRenderer:
    """Rasterizes PDF pages with a scale factor and a maximum pixel dimension.

    Example usage:
        renderer = PageRenderer(scale=2.0, max_dimension=2048)
        page = await renderer.render(pdf_bytes, page_number=3)
    """

    def __init__(self, scale: float = 2.0, max_dimension: int = 2048):
        self.scale = scale
        self.max_dimension = max_dimension
        self._pdfplumber = None

    @property
    def pdfplumber(self):
        """Lazy-load pdfplumber to avoid import overhead."""
        if self._pdfplumber is None:
            import pdfplumber
            self._pdfplumber = pdfplumber
        return self._pdfplumber

    def effective_scale(self, width_points: float, height_points: float, scale: Optional[float] = None) -> float:
        """Requested scale, reduced so the longer side fits ``max_dimension`` pixels."""
        scale = scale or self.scale
        longest = max(width_points, height_points) * scale
        if longest > self.max_dimension:
            scale = scale * self.max_dimension / longest
        return scale

    async def get_page_count(self, pdf_bytes: bytes) -> int:
        return await asyncio.to_thread(self._page_count, pdf_bytes)

    async def extract_text(self, pdf_bytes: bytes, page_number: int) -> str:
        return await asyncio.to_thread(self._extract_text, pdf_bytes, page_number)

    async def render(self, pdf_bytes: bytes, page_number: int, scale: Optional[float] = None) -> RenderedPage:
        """Render one 1-indexed page to PNG.

        Raises:
            RenderError: Page is out of range or rasterization failed
        """
        return await asyncio.to_thread(self._render, pdf_bytes, page_number, scale)

    def _page_count(self, pdf_bytes: bytes) -> int:
        try:
            with self.pdfplumber.open(BytesIO(pdf_bytes)) as pdf:
                return len(pdf.pages)
        except Exception as e:
            raise RenderError(f"Failed to open PDF: {e}", e) from e

    def _extract_text(self, pdf_bytes: bytes, page_number: int) -> str:
        try:
            with self.pdfplumber.open(BytesIO(pdf_bytes)) as pdf:
                if page_number < 1 or page_number > len(pdf.pages):
                    return ""
                return pdf.pages[page_number - 1].extract_text() or ""
        except Exception as e:
            LOGGER.warning(f"Text extraction failed for page {page_number}: {e}")
            return ""

    def _render(self, pdf_bytes: bytes, page_number: int, scale: Optional[float]) -> RenderedPage:
        try:
            with self.pdfplumber.open(BytesIO(pdf_bytes)) as pdf:
                if page_number < 1 or page_number > len(pdf.pages):
                    raise RenderError(f"Page {page_number} out of range (1-{len(pdf.pages)})")

                page = pdf.pages[page_number - 1]
                page_scale = self.effective_scale(float(page.width), float(page.height), scale)
                page_image = page.to_image(resolution=PDF_POINTS_PER_INCH * page_scale)

                buffer = BytesIO()
                page_image.original.save(buffer, format="PNG")
                width, height = page_image.original.size
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(f"Failed to render page {page_number}: {e}", e) from e

        LOGGER.debug(
            "Rendered page",
            extra={"page_number": page_number, "width": width, "height": height, "scale": round(page_scale, 3)},
        )
        return RenderedPage(
            page_number=page_number,
            image_bytes=buffer.getvalue(),
            width=width,
            height=height,
            media_type="image/png",
        )
