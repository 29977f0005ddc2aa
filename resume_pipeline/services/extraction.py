"""
Resume text extraction.

Each supported mime type maps to a DocumentFormat, and each format to one
TextExtractor. Supporting a new format means adding a table entry and an
extractor, not another branch.

Formats:
- PDF: pdfplumber (text layer)
- DOCX: docx2txt
- DOC: docx2txt when the file is really a DOCX, otherwise rejected
- Images (JPEG, PNG, GIF): OpenAI vision OCR
"""

import base64
import io
import logging
import zipfile
from enum import Enum
from typing import Dict, Optional, Union
import docx2txt
import openai
import pdfplumber
from resume_pipeline.core.config import settings
from resume_pipeline.core.exceptions import ExtractionError, UnsupportedFormatError
from resume_pipeline.services.openai_client import get_openai_client, translate_openai_error

logger = logging.getLogger(__name__)


class DocumentFormat(str, Enum):
    PDF = "pdf"
    DOCX = "docx"
    DOC = "doc"
    IMAGE = "image"


MIME_TYPE_FORMATS: Dict[str, DocumentFormat] = {
    "application/pdf": DocumentFormat.PDF,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DocumentFormat.DOCX,
    "application/msword": DocumentFormat.DOC,
    "image/jpeg": DocumentFormat.IMAGE,
    "image/png": DocumentFormat.IMAGE,
    "image/gif": DocumentFormat.IMAGE,
}


def format_for_mime_type(mime_type: str) -> DocumentFormat:
    """
    Raises:
        UnsupportedFormatError: If no extractor handles the mime type
    """
    try:
        return MIME_TYPE_FORMATS[mime_type]
    except KeyError:
        raise UnsupportedFormatError(f"Unsupported file type: {mime_type}")


def detect_image_mime_type(data: bytes) -> str:
    """Sniff the image type from its magic bytes, defaulting to JPEG"""
    if data.startswith(b"\x89PNG"):
        return "image/png"
    if data.startswith(b"GIF8"):
        return "image/gif"
    return "image/jpeg"


class TextExtractor:
    """Turns document bytes into plain text"""

    def extract_text(self, data: bytes, filename: str = "") -> str:
        raise NotImplementedError


class PdfTextExtractor(TextExtractor):
    """Reads the PDF text layer page by page"""

    def extract_text(self, data: bytes, filename: str = "") -> str:
        extracted_text = ""
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                for page_num, page in enumerate(pdf.pages, 1):
                    text = page.extract_text()
                    if text:
                        extracted_text += text + "\n"
                        logger.debug(f"Extracted {len(text)} chars from page {page_num} of {filename}")
        except Exception as e:
            raise ExtractionError(f"Could not read PDF file {filename}: {e}")
        return extracted_text


class DocxTextExtractor(TextExtractor):
    """Reads document.xml (plus headers/footers) out of the DOCX archive"""

    def extract_text(self, data: bytes, filename: str = "") -> str:
        try:
            return docx2txt.process(io.BytesIO(data)) or ""
        except (zipfile.BadZipFile, KeyError) as e:
            raise ExtractionError(f"Could not read DOCX file {filename}: {e}")


class LegacyDocTextExtractor(DocxTextExtractor):
    """
    Word 97-2003 files are not parsed. Uploads labelled application/msword
    that are actually DOCX archives are still read.
    """

    def extract_text(self, data: bytes, filename: str = "") -> str:
        if not zipfile.is_zipfile(io.BytesIO(data)):
            raise ExtractionError(
                "Legacy .doc format is not supported. "
                "Please convert the resume to .docx or .pdf format and upload again."
            )
        return super().extract_text(data, filename)


class OpenAIImageTextExtractor(TextExtractor):
    """OCR through an OpenAI vision model"""

    SYSTEM_PROMPT = (
        "You are an OCR specialist. Extract all text content from the provided image. "
        "This image contains a resume or CV document. "
        "Return only the extracted text without any additional formatting or commentary. "
        "Preserve the structure and formatting as much as possible."
    )

    def __init__(self, client=None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.OPENAI_MODEL

    @property
    def client(self):
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    def extract_text(self, data: bytes, filename: str = "") -> str:
        image_type = detect_image_mime_type(data)
        data_url = f"data:{image_type};base64,{base64.b64encode(data).decode('ascii')}"

        logger.info(f"Extracting text from image: {filename} ({image_type})")
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self.SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": "Please extract all text from this image:"},
                            {"type": "image_url", "image_url": {"url": data_url}},
                        ],
                    },
                ],
                max_tokens=4000,
                temperature=0,
            )
        except openai.OpenAIError as e:
            raise translate_openai_error(e, "image text extraction")

        return response.choices[0].message.content or ""


def default_extractors() -> Dict[DocumentFormat, TextExtractor]:
    return {
        DocumentFormat.PDF: PdfTextExtractor(),
        DocumentFormat.DOCX: DocxTextExtractor(),
        DocumentFormat.DOC: LegacyDocTextExtractor(),
        DocumentFormat.IMAGE: OpenAIImageTextExtractor(),
    }


class TextExtractionService:
    """Single "extract text" entry point that dispatches on the format hint."""

    def __init__(self, extractors: Optional[Dict[DocumentFormat, TextExtractor]] = None):
        self.extractors = extractors if extractors is not None else default_extractors()

    def extract_text(self, data: bytes, format_hint: Union[DocumentFormat, str], filename: str = "") -> str:
        """
        Args:
            data: Raw document bytes
            format_hint: DocumentFormat, or a mime type string
            filename: Original file name, for logging

        Raises:
            UnsupportedFormatError: No extractor registered for the format
            ExtractionError: The document yielded no text
        """
        if not isinstance(format_hint, DocumentFormat):
            try:
                format_hint = DocumentFormat(format_hint)
            except ValueError:
                format_hint = format_for_mime_type(format_hint)

        extractor = self.extractors.get(format_hint)
        if extractor is None:
            raise UnsupportedFormatError(f"Unsupported file type: {format_hint.value}")

        text = extractor.extract_text(data, filename).strip()
        if not text:
            raise ExtractionError(
                f"No text could be extracted from this {format_hint.value.upper()} file. "
                "The file may be corrupted or a scanned image."
            )

        logger.info(f"Extracted {len(text)} characters from {format_hint.value} file {filename}")
        return text
