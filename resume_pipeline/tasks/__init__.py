"""
Celery tasks package.

- resume_tasks: Resume extraction, parsing and candidate merge
"""

from resume_pipeline.tasks import resume_tasks

__all__ = ["resume_tasks"]
