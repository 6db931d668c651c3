# powindex/tasks/ingestion/__init__.py
"""
Artifact Ingestion Package

Collects raw GitHub activity for a subject and turns it into validated,
ownership-checked artifacts.
"""

from .artifact_ingestion import ArtifactIngestionService, require_subject
from .ownership import normalize, sort_artifacts, validate_ownership

__all__ = [
    'ArtifactIngestionService',
    'require_subject',
    'normalize',
    'sort_artifacts',
    'validate_ownership'
]
