"""
Database models package.
"""

from resume_pipeline.models.candidate import Candidate
from resume_pipeline.models.parsed_resume_data import ParsedResumeData

__all__ = ["Candidate", "ParsedResumeData"]
