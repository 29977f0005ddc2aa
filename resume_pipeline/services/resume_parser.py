"""
Structured resume parsing with OpenAI.

The model is asked for JSON in the camelCase shape of ParsedResumeContent
in JSON mode. Replies that are not valid JSON or do not fit
the schema raise MalformedResponseError; API failures are translated by
openai_client so the retry classifier can tell transient ones apart.
"""

import json
import logging
from typing import Optional
import openai
from pydantic import ValidationError as PydanticValidationError
from resume_pipeline.core.config import settings
from resume_pipeline.core.exceptions import ExtractionError, MalformedResponseError
from resume_pipeline.schemas.resume import ParsedResumeContent
from resume_pipeline.services.openai_client import get_openai_client, translate_openai_error

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = "You are a precise resume parsing assistant. Return only valid JSON with the extracted information."


def _get_schema_example() -> str:
    """JSON shape the model is asked to return"""
    return """
{
  "personalInfo": {
    "name": "string or null",
    "email": "string or null",
    "phone": "string or null",
    "location": "string or null",
    "linkedinUrl": "string or null",
    "portfolioUrl": "string or null"
  },
  "summary": "string or null",
  "skills": ["skill1", "skill2", "skill3"],
  "experience": [
    {
      "company": "Company Name",
      "position": "Job Title",
      "startDate": "YYYY-MM or YYYY",
      "endDate": "YYYY-MM or YYYY or null for current",
      "description": "Job description and achievements",
      "technologies": ["tech1", "tech2"]
    }
  ],
  "education": [
    {
      "institution": "University/School Name",
      "degree": "Degree Type",
      "field": "Field of Study",
      "graduationYear": 2023,
      "gpa": "3.8 or null"
    }
  ],
  "certifications": ["cert1", "cert2"],
  "totalExperience": 5
}
"""


def build_parsing_prompt(text: str) -> str:
    return f"""You are a resume parsing specialist. Parse the following resume text and extract structured information.
Return the data in the exact JSON format specified below. Be thorough and accurate.

IMPORTANT: Return ONLY valid JSON, no additional text or formatting.

Expected JSON format:
{_get_schema_example()}
Guidelines:
- Extract skills from throughout the resume, including technical skills, soft skills, and tools
- Calculate totalExperience as the sum of all work experience in years
- For dates, use YYYY-MM format when month is available, otherwise YYYY
- Include all relevant work experience, internships, and projects
- Extract education information including degrees, certifications, and courses
- Be comprehensive but accurate - don't hallucinate information not present in the text

Resume text to parse:
{text}
"""


def parse_resume_json(content: Optional[str]) -> ParsedResumeContent:
    """
    Turn the model's raw reply into ParsedResumeContent.

    Raises:
        MalformedResponseError: The reply is not a JSON object
    """
    try:
        data = json.loads(content or "{}")
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse JSON response from OpenAI: {e}")
        raise MalformedResponseError("Invalid JSON response from OpenAI")

    if not isinstance(data, dict):
        raise MalformedResponseError("Invalid JSON response from OpenAI: expected an object")

    try:
        return ParsedResumeContent.model_validate(data)
    except PydanticValidationError as e:
        raise MalformedResponseError(f"Invalid JSON response from OpenAI: {e}")


class ResumeParser:
    """
    Structured resume parsing with an OpenAI chat model in JSON mode.

    The client's own retries (OPENAI_MAX_RETRIES) cover short blips inside a
    single attempt; anything left over surfaces as a pipeline error and is
    retried, or not, by the job queue.
    """

    def __init__(self, client=None, model: Optional[str] = None, temperature: Optional[float] = None):
        self._client = client
        self.model = model or settings.OPENAI_PARSING_MODEL
        self.temperature = settings.OPENAI_TEMPERATURE if temperature is None else temperature

    @property
    def client(self):
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    def parse_structured(self, text: str) -> ParsedResumeContent:
        """
        Args:
            text: Plain resume text from the extraction stage

        Returns:
            ParsedResumeContent with every list present and total_experience >= 0

        Raises:
            MalformedResponseError: The model did not return a JSON object
            TransientServiceError: Rate limit, timeout, network or 5xx from OpenAI
            ExtractionError: Any other OpenAI failure
        """
        if not text or not text.strip():
            raise ExtractionError("Cannot parse an empty resume text")

        logger.info(f"Parsing structured data from resume text ({len(text)} chars)")
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_parsing_prompt(text)},
                ],
                response_format={"type": "json_object"},
                max_tokens=3000,
                temperature=self.temperature,
            )
        except openai.OpenAIError as e:
            raise translate_openai_error(e, "resume parsing")

        content = response.choices[0].message.content if response.choices else None
        parsed = parse_resume_json(content)

        logger.info(
            f"Parsed resume: {len(parsed.skills)} skills, {len(parsed.experience)} positions, "
            f"{parsed.total_experience} years of experience"
        )
        return parsed
