"""Image and PDF attachments read from disk."""
import io
from pathlib import Path

from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from recall_tutor.errors import ValidationError
from recall_tutor.models import StudyItem


def read_attachment(file_path: str) -> bytes:
    path = Path(file_path).expanduser()
    if not path.is_file():
        raise ValidationError(f"File not found: {path}")
    return path.read_bytes()


def pdf_page_count(data: bytes) -> int:
    """Number of pages, or ValidationError if the bytes are not a PDF."""
    try:
        reader = PdfReader(io.BytesIO(data))
        return len(reader.pages)
    except (PdfReadError, ValueError) as exc:
        raise ValidationError(f"Not a readable PDF: {exc}") from exc


def read_pdf(file_path: str) -> bytes:
    data = read_attachment(file_path)
    pdf_page_count(data)
    return data


def describe_media(item: StudyItem) -> str:
    parts = []
    if item.images:
        parts.append(f"{len(item.images)} image(s)")
    if item.pdf is not None:
        try:
            parts.append(f"PDF, {pdf_page_count(item.pdf)} page(s)")
        except ValidationError:
            parts.append("PDF (unreadable)")
    return " + ".join(parts)
