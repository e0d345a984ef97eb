"""
Text extraction for uploaded menu files.

Downloads the upload's file and reads it as PDF, Word (.docx) or plain text.
The file type comes from the response Content-Type, falling back to the
original file name's extension.
"""
import io
import logging
import os
import re
import zipfile
import xml.etree.ElementTree as ET
from typing import Optional

import requests
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from menu_ingest.core.config import get_settings
from menu_ingest.core.exceptions import UnsupportedMenuUploadError
from menu_ingest.schemas.menu_upload import MenuUploadRecord, UploadTextExtraction

logger = logging.getLogger(__name__)

PDF_MIME_TYPES = {"application/pdf"}
DOCX_MIME_TYPES = {
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/zip",
}
TEXT_MIME_TYPES = {"text/plain", "application/json"}

SUPPORTED_EXTENSIONS = {
    ".pdf": "pdf",
    ".docx": "docx",
    ".txt": "plain",
    ".json": "plain",
}

WORD_NAMESPACE = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"


def normalize_whitespace(text: str) -> str:
    """CRLF to LF, strip line ends, collapse 3+ newlines to one blank line."""
    text = text.replace("\r\n", "\n")
    text = "\n".join(line.rstrip() for line in text.split("\n"))
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def infer_extension(file_name: Optional[str]) -> Optional[str]:
    if not file_name:
        return None
    path = file_name.split("?")[0]
    extension = os.path.splitext(path)[1].lower()
    return extension or None


def infer_source_from_mime(mime_type: Optional[str]) -> Optional[str]:
    if not mime_type:
        return None
    if mime_type in PDF_MIME_TYPES:
        return "pdf"
    if mime_type in DOCX_MIME_TYPES:
        return "docx"
    if mime_type in TEXT_MIME_TYPES:
        return "plain"
    return None


def extract_content_type(headers) -> Optional[str]:
    raw = headers.get("content-type") if headers is not None else None
    if not isinstance(raw, str):
        return None
    value = raw.split(";")[0].strip().lower()
    return value or None


def read_pdf_text(content: bytes) -> tuple[str, int]:
    """Return (text, page_count) for a PDF document."""
    reader = PdfReader(io.BytesIO(content))
    pages = [(page.extract_text() or "") for page in reader.pages]
    return "\n\n".join(pages), len(reader.pages)


def read_docx_text(content: bytes) -> str:
    """Paragraph text from word/document.xml, one paragraph per line."""
    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        xml_payload = archive.read("word/document.xml")
    root = ET.fromstring(xml_payload)

    paragraphs = []
    for paragraph in root.iter(f"{WORD_NAMESPACE}p"):
        parts = []
        for node in paragraph.iter():
            if node.tag == f"{WORD_NAMESPACE}t" and node.text:
                parts.append(node.text)
            elif node.tag == f"{WORD_NAMESPACE}tab":
                parts.append("\t")
            elif node.tag in (f"{WORD_NAMESPACE}br", f"{WORD_NAMESPACE}cr"):
                parts.append("\n")
        paragraphs.append("".join(parts))
    return "\n".join(paragraphs)


class UploadTextExtractor:
    """Downloads menu uploads and extracts their text."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        """
        Args:
            session: requests session to download with (a new one if not provided)
            timeout: Download timeout in seconds (defaults to UPLOAD_DOWNLOAD_TIMEOUT_SECONDS)
        """
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else get_settings().UPLOAD_DOWNLOAD_TIMEOUT_SECONDS

    def extract_upload_text(self, upload: MenuUploadRecord) -> UploadTextExtraction:
        if not upload.file_url:
            raise UnsupportedMenuUploadError("Menu upload is missing file_url")

        response = self.session.get(upload.file_url, timeout=self.timeout)
        response.raise_for_status()

        content = response.content or b""
        if not content:
            raise UnsupportedMenuUploadError("Uploaded file is empty")

        content_type = extract_content_type(response.headers)

        original_name = upload.metadata.get("originalFileName")
        if not (isinstance(original_name, str) and original_name.strip()):
            original_name = None
        extension = infer_extension(original_name.strip() if original_name else upload.file_name)

        source = infer_source_from_mime(content_type) or SUPPORTED_EXTENSIONS.get(extension or "")
        logger.info(
            f"[upload-text] Upload {upload.id}: content-type={content_type}, "
            f"extension={extension}, source={source}, bytes={len(content)}"
        )

        if source == "pdf":
            try:
                raw_text, page_count = read_pdf_text(content)
            except (PyPdfError, ValueError) as e:
                raise UnsupportedMenuUploadError(f"Failed to parse PDF menu: {e}") from e
            text = normalize_whitespace(raw_text)
            if not text:
                raise UnsupportedMenuUploadError("PDF parser returned empty text")
            return UploadTextExtraction(
                text=text, source="pdf", content_type=content_type, page_count=page_count
            )

        if source == "docx":
            try:
                raw_text = read_docx_text(content)
            except (zipfile.BadZipFile, KeyError, ET.ParseError) as e:
                raise UnsupportedMenuUploadError(f"Failed to parse DOCX menu: {e}") from e
            text = normalize_whitespace(raw_text)
            if not text:
                raise UnsupportedMenuUploadError("DOCX parser returned empty text")
            return UploadTextExtraction(text=text, source="docx", content_type=content_type)

        if source == "plain":
            text = normalize_whitespace(content.decode("utf-8", errors="replace"))
            if not text:
                raise UnsupportedMenuUploadError("Text menu contains no readable content")
            return UploadTextExtraction(text=text, source="plain", content_type=content_type)

        raise UnsupportedMenuUploadError(
            f"Unsupported menu upload type. Content-Type: {content_type or 'unknown'}, "
            f"extension: {extension or 'unknown'}"
        )
