"""
CRUD operations for ParsedResumeData.
"""

from typing import Optional
from sqlalchemy.orm import Session
from resume_pipeline.models.parsed_resume_data import ParsedResumeData
from resume_pipeline.schemas.resume import ParsedResumeContent


def get_by_candidate(db: Session, candidate_id: str) -> Optional[ParsedResumeData]:
    return db.query(ParsedResumeData).filter(ParsedResumeData.candidate_id == candidate_id).first()


def upsert(
    db: Session,
    candidate_id: str,
    content: ParsedResumeContent,
    raw_text: Optional[str] = None,
) -> ParsedResumeData:
    """
    Store the parsed resume for a candidate.

    Updates the existing row in place so a candidate never has more than one.
    Does not commit.
    """
    fields = content.resume_fields()

    parsed = get_by_candidate(db, candidate_id)
    if parsed is None:
        parsed = ParsedResumeData(candidate_id=candidate_id)
        db.add(parsed)

    for name, value in fields.items():
        setattr(parsed, name, value)
    parsed.raw_text = raw_text

    db.flush()
    return parsed
