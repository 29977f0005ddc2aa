"""
CRUD operations (Create, Read, Update, Delete) for database models.

This layer provides a clean separation between services and database operations,
following the Repository pattern.
"""

from resume_pipeline.crud import candidate, parsed_resume

__all__ = ["candidate", "parsed_resume"]
