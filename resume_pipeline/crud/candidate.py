"""
CRUD operations for the Candidate model.

The resume pipeline only ever adds information to a candidate: it creates the
record at intake and later fills contact fields that are still blank.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from resume_pipeline.models.candidate import Candidate, MERGEABLE_CONTACT_FIELDS, is_blank


def get_by_id(db: Session, candidate_id: str) -> Optional[Candidate]:
    """
    Retrieve a candidate by its ID.

    Returns:
        Candidate instance if found, None otherwise
    """
    return db.query(Candidate).filter(Candidate.id == candidate_id).first()


def get_by_email(db: Session, email: str) -> Optional[Candidate]:
    return db.query(Candidate).filter(Candidate.email == email).first()


def create(
    db: Session,
    email: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    linkedin_url: Optional[str] = None,
) -> Candidate:
    """
    Create a candidate from an upload identity. Consent is recorded at
    creation time.
    """
    db_candidate = Candidate(
        email=email,
        first_name=first_name,
        last_name=last_name,
        linkedin_url=linkedin_url,
        consent_given=True,
        consent_date=datetime.now(timezone.utc),
    )

    db.add(db_candidate)
    db.commit()
    db.refresh(db_candidate)

    return db_candidate


def set_resume_url(db: Session, candidate: Candidate, resume_url: str) -> Candidate:
    candidate.resume_url = resume_url
    db.commit()
    db.refresh(candidate)
    return candidate


def merge_contact_fields(db: Session, candidate: Candidate, contact: Dict[str, Optional[str]]) -> List[str]:
    """
    Copy parsed contact details onto blank candidate fields.

    Populated fields are never overwritten or cleared. An email already used
    by another candidate is skipped. Does not commit.

    Args:
        db: Database session
        candidate: Candidate to update
        contact: Parsed values keyed by field name (email, phone, ...)

    Returns:
        List of field names that were filled
    """
    filled = []
    for field in MERGEABLE_CONTACT_FIELDS:
        value = contact.get(field)
        if is_blank(value) or not is_blank(getattr(candidate, field)):
            continue

        value = value.strip()
        if field == "email":
            owner = get_by_email(db, value)
            if owner is not None and owner.id != candidate.id:
                continue

        setattr(candidate, field, value)
        filled.append(field)

    return filled
