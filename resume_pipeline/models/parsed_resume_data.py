"""
Structured resume data produced by the parsing stage.

Exactly one row per candidate: created on the first successful parse and
updated in place on every later one.
"""

import uuid
from sqlalchemy import Column, String, Float, ForeignKey, Text, DateTime, func
from sqlalchemy.orm import relationship
from resume_pipeline.core.database import Base, JSONType


class ParsedResumeData(Base):
    """
    Normalized resume content for a candidate.

    - skills: ["Python", "PostgreSQL", ...]
    - experience: [{company, position, start_date, end_date, description, technologies}]
    - education: [{institution, degree, field, graduation_year, gpa}]
    - certifications: ["AWS Certified Developer", ...]
    """
    __tablename__ = "parsed_resume_data"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    candidate_id = Column(String(36), ForeignKey("candidates.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    skills = Column(JSONType, nullable=False, default=list)
    experience = Column(JSONType, nullable=False, default=list)
    education = Column(JSONType, nullable=False, default=list)
    certifications = Column(JSONType, nullable=False, default=list)
    summary = Column(Text, nullable=True)
    total_experience = Column(Float, nullable=False, default=0.0)  # Years

    raw_text = Column(Text, nullable=True)  # Text the structure was parsed from

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    candidate = relationship("Candidate", back_populates="parsed_data")

    def __repr__(self):
        return f"<ParsedResumeData(candidate_id={self.candidate_id}, skills={len(self.skills or [])})>"
