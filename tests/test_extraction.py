"""
Tests for text extraction and structured parsing.

Tests:
- Mime type to format registry
- PDF/DOCX/DOC/image extractors
- AI response validation and cleaning
- OpenAI error translation
"""

import io
import json
import zipfile
import httpx
import openai
import pytest
from types import SimpleNamespace
from resume_pipeline.core.exceptions import (
    ExtractionError,
    MalformedResponseError,
    TransientServiceError,
    UnsupportedFormatError,
)
from resume_pipeline.services.error_classifier import ErrorClassifier
from resume_pipeline.services.extraction import (
    DocumentFormat,
    DocxTextExtractor,
    LegacyDocTextExtractor,
    OpenAIImageTextExtractor,
    PdfTextExtractor,
    TextExtractionService,
    detect_image_mime_type,
    format_for_mime_type,
)
from resume_pipeline.services.openai_client import translate_openai_error
from resume_pipeline.services.resume_parser import ResumeParser, parse_resume_json

OPENAI_URL = "https://api.openai.com/v1/chat/completions"

DOCUMENT_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
    "<w:body>"
    "<w:p><w:r><w:t>Jane Candidate</w:t></w:r></w:p>"
    "<w:p><w:r><w:t>Senior Backend Engineer</w:t></w:r></w:p>"
    "</w:body>"
    "</w:document>"
)


def make_docx(document_xml=DOCUMENT_XML):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("word/document.xml", document_xml)
    return buffer.getvalue()


def chat_client(content=None, error=None):
    """Minimal stand-in for the OpenAI client's chat.completions.create"""
    calls = []

    def create(**kwargs):
        calls.append(kwargs)
        if error is not None:
            raise error
        message = SimpleNamespace(content=content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    return client, calls


class StaticExtractor:
    def __init__(self, text):
        self.text = text

    def extract_text(self, data, filename=""):
        return self.text


class TestFormatRegistry:
    """Mime types resolve to one extractor each"""

    @pytest.mark.parametrize("mime_type, expected", [
        ("application/pdf", DocumentFormat.PDF),
        ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", DocumentFormat.DOCX),
        ("application/msword", DocumentFormat.DOC),
        ("image/png", DocumentFormat.IMAGE),
    ])
    def test_known_mime_types(self, mime_type, expected):
        assert format_for_mime_type(mime_type) == expected

    def test_unknown_mime_type(self):
        with pytest.raises(UnsupportedFormatError, match="Unsupported file type: text/plain"):
            format_for_mime_type("text/plain")

    def test_dispatches_by_format_or_mime_type(self):
        service = TextExtractionService({
            DocumentFormat.PDF: StaticExtractor("from pdf"),
            DocumentFormat.IMAGE: StaticExtractor("from image"),
        })

        assert service.extract_text(b"", DocumentFormat.PDF) == "from pdf"
        assert service.extract_text(b"", "image/gif") == "from image"
        assert service.extract_text(b"", "pdf") == "from pdf"

    def test_missing_extractor(self):
        service = TextExtractionService({DocumentFormat.PDF: StaticExtractor("x")})

        with pytest.raises(UnsupportedFormatError):
            service.extract_text(b"", DocumentFormat.IMAGE)

    def test_blank_text_is_an_extraction_error(self):
        service = TextExtractionService({DocumentFormat.PDF: StaticExtractor("  \n ")})

        with pytest.raises(ExtractionError, match="No text could be extracted"):
            service.extract_text(b"", DocumentFormat.PDF)


class TestExtractors:
    """Format-specific extractors"""

    def test_docx(self):
        text = DocxTextExtractor().extract_text(make_docx(), "resume.docx")

        assert "Jane Candidate" in text
        assert "Senior Backend Engineer" in text

    def test_docx_not_a_zip(self):
        with pytest.raises(ExtractionError):
            DocxTextExtractor().extract_text(b"not a zip", "resume.docx")

    def test_legacy_doc_is_rejected(self):
        with pytest.raises(ExtractionError, match="Legacy .doc format is not supported"):
            LegacyDocTextExtractor().extract_text(b"\xd0\xcf\x11\xe0 binary word", "resume.doc")

    def test_mislabelled_docx_is_read(self):
        text = LegacyDocTextExtractor().extract_text(make_docx(), "resume.doc")
        assert "Jane Candidate" in text

    def test_corrupt_pdf(self):
        with pytest.raises(ExtractionError, match="Could not read PDF"):
            PdfTextExtractor().extract_text(b"definitely not a pdf", "resume.pdf")

    @pytest.mark.parametrize("header, expected", [
        (b"\x89PNG\r\n\x1a\n", "image/png"),
        (b"GIF89a", "image/gif"),
        (b"\xff\xd8\xff\xe0", "image/jpeg"),
        (b"", "image/jpeg"),
    ])
    def test_image_type_detection(self, header, expected):
        assert detect_image_mime_type(header) == expected

    def test_image_ocr(self):
        client, calls = chat_client(content="Jane Candidate\nPython")
        extractor = OpenAIImageTextExtractor(client=client, model="gpt-4o")

        text = extractor.extract_text(b"\x89PNG\r\n\x1a\nrest", "resume.png")

        assert text == "Jane Candidate\nPython"
        image_part = calls[0]["messages"][1]["content"][1]
        assert image_part["image_url"]["url"].startswith("data:image/png;base64,")

    def test_image_ocr_rate_limited(self):
        request = httpx.Request("POST", OPENAI_URL)
        error = openai.RateLimitError("Rate limit reached", response=httpx.Response(429, request=request), body=None)
        client, _ = chat_client(error=error)

        with pytest.raises(TransientServiceError, match="rate limit"):
            OpenAIImageTextExtractor(client=client).extract_text(b"\xff\xd8", "resume.jpg")


class TestResumeParser:
    """Structured parsing and cleaning of the model's JSON"""

    def test_parses_camel_case_response(self):
        payload = {
            "personalInfo": {"name": "Jane", "email": "jane@x.com", "linkedinUrl": "https://linkedin.com/in/jane"},
            "skills": ["Python", " ", 42],
            "experience": [
                {"company": "Acme", "position": "Engineer", "startDate": "2020-01", "technologies": ["Go"]},
                "not an object",
            ],
            "education": [{"institution": "MIT", "degree": "BSc", "field": "CS", "graduationYear": "2019"}],
            "totalExperience": 4.5,
        }
        client, calls = chat_client(content=json.dumps(payload))

        parsed = ResumeParser(client=client, model="gpt-4o-mini").parse_structured("resume text")

        assert calls[0]["response_format"] == {"type": "json_object"}
        assert calls[0]["model"] == "gpt-4o-mini"
        assert parsed.personal_info.email == "jane@x.com"
        assert parsed.personal_info.linkedin_url == "https://linkedin.com/in/jane"
        assert parsed.skills == ["Python", "42"]
        assert len(parsed.experience) == 1
        assert parsed.experience[0].end_date is None
        assert parsed.education[0].graduation_year == 2019
        assert parsed.certifications == []
        assert parsed.total_experience == 4.5

    def test_missing_fields_get_defaults(self):
        parsed = parse_resume_json("{}")

        assert parsed.skills == []
        assert parsed.experience == []
        assert parsed.education == []
        assert parsed.certifications == []
        assert parsed.summary is None
        assert parsed.total_experience == 0.0

    @pytest.mark.parametrize("value", [-3, "five", None, True])
    def test_bad_total_experience_becomes_zero(self, value):
        assert parse_resume_json(json.dumps({"totalExperience": value})).total_experience == 0.0

    @pytest.mark.parametrize("content", ["not json", "[1, 2]", "```json\n{}\n```"])
    def test_malformed_response(self, content):
        with pytest.raises(MalformedResponseError, match="Invalid JSON response from OpenAI"):
            parse_resume_json(content)

    def test_malformed_response_is_not_retryable(self):
        client, _ = chat_client(content="Sorry, I cannot help with that")

        with pytest.raises(MalformedResponseError) as exc_info:
            ResumeParser(client=client).parse_structured("resume text")
        assert ErrorClassifier().classify(exc_info.value, 1) is False

    def test_empty_text(self):
        client, calls = chat_client(content="{}")

        with pytest.raises(ExtractionError):
            ResumeParser(client=client).parse_structured("   ")
        assert calls == []


class TestOpenAIErrorTranslation:
    """Upstream failures map onto the retry classifier's vocabulary"""

    def _request(self):
        return httpx.Request("POST", OPENAI_URL)

    def test_rate_limit(self):
        error = openai.RateLimitError(
            "Too many requests", response=httpx.Response(429, request=self._request()), body=None
        )
        translated = translate_openai_error(error, "resume parsing")

        assert isinstance(translated, TransientServiceError)
        assert ErrorClassifier().is_transient(translated)

    def test_timeout(self):
        translated = translate_openai_error(openai.APITimeoutError(request=self._request()), "resume parsing")

        assert isinstance(translated, TransientServiceError)
        assert "timeout" in str(translated)

    def test_connection_error(self):
        error = openai.APIConnectionError(request=self._request())
        translated = translate_openai_error(error, "resume parsing")

        assert ErrorClassifier().is_transient(translated)

    def test_server_error(self):
        error = openai.InternalServerError(
            "Bad gateway", response=httpx.Response(502, request=self._request()), body=None
        )
        translated = translate_openai_error(error, "resume parsing")

        assert "service unavailable" in str(translated)

    def test_bad_request_is_permanent(self):
        error = openai.BadRequestError(
            "Invalid model", response=httpx.Response(400, request=self._request()), body=None
        )
        translated = translate_openai_error(error, "resume parsing")

        assert isinstance(translated, ExtractionError)
        assert not ErrorClassifier().is_transient(translated)
