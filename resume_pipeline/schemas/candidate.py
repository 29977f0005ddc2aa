"""
Pydantic schemas for resume intake requests/responses.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CandidateIdentity(BaseModel):
    """
    Who the resume belongs to.

    Either candidate_id (existing candidate) or email (existing or new
    candidate) must be present; candidate_id takes precedence.
    """
    candidate_id: Optional[str] = Field(None, description="Existing candidate ID")
    email: Optional[EmailStr] = Field(None, description="Candidate email, used to find or create the candidate")
    first_name: Optional[str] = Field(None, description="First name for a newly created candidate")
    last_name: Optional[str] = Field(None, description="Last name for a newly created candidate")
    linkedin_url: Optional[str] = Field(None, description="LinkedIn URL for a newly created candidate")


class ResumeUpload(BaseModel):
    """Uploaded file as received by the intake service"""
    content: bytes
    mime_type: str
    size: int = Field(..., ge=0, description="Declared size in bytes")
    original_name: str


class UploadResumeResponse(BaseModel):
    """Response after uploading a resume."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_id: str
    candidate_id: str
    file_url: str
    status: str = "queued"
