"""
Candidate database model.

The candidate record is owned by the surrounding application. The resume
pipeline creates one at intake when no identity matches, records the resume
URL, and later fills contact fields that are still blank from the parsed
resume. It never clears or overwrites a populated field.
"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func
from sqlalchemy.orm import relationship
from resume_pipeline.core.database import Base

# Contact fields the pipeline may fill from the parsed resume
MERGEABLE_CONTACT_FIELDS = ("email", "phone", "location", "linkedin_url", "portfolio_url")


def is_blank(value) -> bool:
    """None or a whitespace-only string. Other values are never blank."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


class Candidate(Base):
    """
    A person whose resume has been uploaded.

    One-to-one with ParsedResumeData, which holds the structured resume.
    """
    __tablename__ = "candidates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Identity and contact details
    email = Column(String, nullable=True, unique=True, index=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    location = Column(String, nullable=True)
    linkedin_url = Column(String, nullable=True)
    portfolio_url = Column(String, nullable=True)

    # Durable reference to the latest uploaded resume
    resume_url = Column(String, nullable=True)

    # Consent is captured when the pipeline creates the candidate
    consent_given = Column(Boolean, nullable=False, default=False)
    consent_date = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    parsed_data = relationship(
        "ParsedResumeData",
        back_populates="candidate",
        uselist=False,
        cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Candidate(id={self.id}, email={self.email})>"
