"""
Pydantic schemas for structured resume content returned by the AI parser.

The model's JSON is untrusted: missing lists become empty lists, malformed
entries are dropped, and a missing, negative or non-numeric total experience
becomes 0. Field aliases accept the camelCase keys the parsing prompt asks for.
"""

from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _clean_str(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _clean_str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    cleaned = [_clean_str(item) for item in value]
    return [item for item in cleaned if item]


class _AIModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PersonalInfo(_AIModel):
    """Contact details found in the resume"""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    linkedin_url: Optional[str] = None
    portfolio_url: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        return _clean_str(v)


class WorkExperience(_AIModel):
    """Single position in the candidate's work history"""
    company: str = ""
    position: str = ""
    start_date: str = ""
    end_date: Optional[str] = None  # None for the current position
    description: str = ""
    technologies: List[str] = Field(default_factory=list)

    @field_validator("company", "position", "start_date", "description", mode="before")
    @classmethod
    def text_or_empty(cls, v):
        return _clean_str(v) or ""

    @field_validator("end_date", mode="before")
    @classmethod
    def optional_text(cls, v):
        return _clean_str(v)

    @field_validator("technologies", mode="before")
    @classmethod
    def string_list(cls, v):
        return _clean_str_list(v)


class Education(_AIModel):
    """Single degree or program"""
    institution: str = ""
    degree: str = ""
    field: str = ""
    graduation_year: Optional[int] = None
    gpa: Optional[str] = None

    @field_validator("institution", "degree", "field", mode="before")
    @classmethod
    def text_or_empty(cls, v):
        return _clean_str(v) or ""

    @field_validator("graduation_year", mode="before")
    @classmethod
    def year_or_none(cls, v):
        if isinstance(v, bool):
            return None
        if isinstance(v, int):
            return v
        if isinstance(v, float) and v.is_integer():
            return int(v)
        if isinstance(v, str) and v.strip().isdigit():
            return int(v.strip())
        return None

    @field_validator("gpa", mode="before")
    @classmethod
    def gpa_text(cls, v):
        return _clean_str(v)


class ParsedResumeContent(_AIModel):
    """
    Full structured resume as returned by ResumeParser.parse_structured().

    Every list is always present; total_experience is a non-negative number
    of years.
    """
    personal_info: PersonalInfo = Field(default_factory=PersonalInfo)
    summary: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    experience: List[WorkExperience] = Field(default_factory=list)
    education: List[Education] = Field(default_factory=list)
    certifications: List[str] = Field(default_factory=list)
    total_experience: float = 0.0

    @field_validator("personal_info", mode="before")
    @classmethod
    def personal_info_object(cls, v):
        return v if isinstance(v, dict) else {}

    @field_validator("summary", mode="before")
    @classmethod
    def summary_text(cls, v):
        return _clean_str(v)

    @field_validator("skills", "certifications", mode="before")
    @classmethod
    def string_list(cls, v):
        return _clean_str_list(v)

    @field_validator("experience", "education", mode="before")
    @classmethod
    def object_list(cls, v):
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, dict)]

    @field_validator("total_experience", mode="before")
    @classmethod
    def non_negative_years(cls, v):
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return 0.0
        if v != v or v < 0:  # NaN or negative
            return 0.0
        return float(v)

    def resume_fields(self) -> dict:
        """Everything except personal info, in the shape stored on ParsedResumeData"""
        return {
            "skills": list(self.skills),
            "experience": [item.model_dump() for item in self.experience],
            "education": [item.model_dump() for item in self.education],
            "certifications": list(self.certifications),
            "summary": self.summary,
            "total_experience": self.total_experience,
        }
