import base64
import io
import logging
import tempfile
from dataclasses import dataclass
from typing import Literal

import pdfplumber
from pdfminer.psparser import PSException
from pdfplumber.utils.exceptions import PdfminerException

from fuel_analyzer.core.errors import FileTooLarge, UnreadablePdf

logger = logging.getLogger(__name__)

_PDF_MAGIC = b"%PDF"
_MIN_TEXT_CHARS_PER_PAGE = 50
_MAX_TEXT_CHARS = 200_000

# pdfminer reports malformed structure through its own hierarchy and, for some
# broken object streams, through plain lookup/type errors.
_PARSE_ERRORS = (PdfminerException, PSException, ValueError, TypeError, KeyError)


class InvalidContentTypeError(UnreadablePdf):
    pass


class InvalidMagicBytesError(UnreadablePdf):
    pass


def validate_pdf(
    content_type: str | None,
    file_bytes: bytes,
    max_size_mb: int,
    filename: str | None = None,
) -> None:
    if content_type != "application/pdf":
        raise InvalidContentTypeError("File must be a PDF", filename=filename)
    if len(file_bytes) > max_size_mb * 1024 * 1024:
        raise FileTooLarge(f"File exceeds maximum size of {max_size_mb} MB")
    if file_bytes[:4] != _PDF_MAGIC:
        raise InvalidMagicBytesError(
            "File does not appear to be a PDF", filename=filename
        )


def _is_text_based(
    text: str,
    page_count: int,
    min_chars_per_page: int = _MIN_TEXT_CHARS_PER_PAGE,
) -> bool:
    return (len(text) / page_count) >= min_chars_per_page if page_count > 0 else False


class PlumberExtractor:
    def extract_text_and_page_count(
        self, file_bytes: bytes, filename: str = "report.pdf"
    ) -> tuple[str, int]:
        if not file_bytes:
            raise UnreadablePdf(f"{filename} is empty", filename=filename)
        try:
            with pdfplumber.open(io.BytesIO(file_bytes)) as pdf:
                text = "\n\n".join(page.extract_text() or "" for page in pdf.pages)
                page_count = len(pdf.pages)
        except _PARSE_ERRORS as exc:
            raise UnreadablePdf(
                f"{filename} could not be parsed as a PDF", filename=filename
            ) from exc
        return text, page_count


class PaddleOCRExtractor:
    def extract_text(self, file_bytes: bytes) -> str:
        from paddleocr import PaddleOCR  # type: ignore[import-untyped]
        from pdf2image import convert_from_bytes

        ocr = PaddleOCR(use_textline_orientation=True, lang="en")
        pages: list[str] = []
        with tempfile.TemporaryDirectory() as tmp_dir:
            image_paths = convert_from_bytes(
                file_bytes, output_folder=tmp_dir, fmt="png", paths_only=True
            )
            for image_path in image_paths:
                # Period reports are tabular; keep one OCR line per text line so
                # category names stay next to their totals.
                lines = [
                    text
                    for result in ocr.predict(image_path)
                    for text in result["rec_texts"]
                ]
                pages.append("\n".join(lines))
        return "\n\n".join(pages)


@dataclass(frozen=True)
class ExtractionResult:
    text: str
    path: Literal["text", "ocr", "document"]
    filename: str = "report.pdf"


class SmartPDFExtractor:
    """Turns PDF bytes into model input: text (with OCR fallback) or base64."""

    def __init__(
        self,
        min_chars_per_page: int = _MIN_TEXT_CHARS_PER_PAGE,
        max_text_chars: int = _MAX_TEXT_CHARS,
    ) -> None:
        self._plumber = PlumberExtractor()
        self._min_chars = min_chars_per_page
        self._max_chars = max_text_chars

    def extract(self, file_bytes: bytes, filename: str = "report.pdf") -> ExtractionResult:
        text, page_count = self._plumber.extract_text_and_page_count(
            file_bytes, filename
        )
        if page_count == 0:
            raise UnreadablePdf(f"{filename} has no pages", filename=filename)
        if _is_text_based(text, page_count, self._min_chars):
            return ExtractionResult(
                text=self._cap(text, filename), path="text", filename=filename
            )

        logger.info(
            "Text layer too sparse, falling back to OCR",
            extra={"file": filename, "page_count": page_count},
        )
        ocr_text = PaddleOCRExtractor().extract_text(file_bytes)
        return ExtractionResult(
            text=self._cap(ocr_text, filename), path="ocr", filename=filename
        )

    def encode(self, file_bytes: bytes, filename: str = "report.pdf") -> ExtractionResult:
        _, page_count = self._plumber.extract_text_and_page_count(file_bytes, filename)
        if page_count == 0:
            raise UnreadablePdf(f"{filename} has no pages", filename=filename)
        return ExtractionResult(
            text=base64.b64encode(file_bytes).decode("ascii"),
            path="document",
            filename=filename,
        )

    def from_text(self, text: str, filename: str = "request text") -> ExtractionResult:
        return ExtractionResult(
            text=self._cap(text, filename), path="text", filename=filename
        )

    def _cap(self, text: str, filename: str) -> str:
        if len(text) <= self._max_chars:
            return text
        logger.info(
            "Truncating extracted text",
            extra={"file": filename, "chars": len(text), "limit": self._max_chars},
        )
        return text[: self._max_chars]
