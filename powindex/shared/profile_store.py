# powindex/shared/profile_store.py
"""
Persistence for artifacts and profiles.

The pipeline only talks to the narrow ProfileStore interface. The JSON file
store keeps one directory per subject and writes every file atomically.
"""

import json
import re
import logging
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from powindex.core.errors import ValidationError
from powindex.core.models import Artifact, PoWProfile, parse_timestamp

logger = logging.getLogger(__name__)


@dataclass
class StoredProfile:
    profile: PoWProfile
    artifact_count: int
    updated_at: datetime

    def to_dict(self):
        return {
            "profile": self.profile.to_dict(),
            "artifactCount": self.artifact_count,
            "updatedAt": self.updated_at.isoformat(),
        }


class ProfileStore(ABC):
    """Key-value persistence keyed by subject."""

    def __init__(self, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.clock = clock

    @abstractmethod
    def save_artifacts(self, subject: str, artifacts: List[Artifact]) -> None:
        """Replace the subject's full artifact set."""

    @abstractmethod
    def get_artifacts(self, subject: str) -> List[Artifact]:
        """Stored artifacts; empty when none were saved."""

    @abstractmethod
    def save_profile(self, subject: str, profile: PoWProfile, artifact_count: int) -> StoredProfile:
        """Store the subject's latest profile."""

    @abstractmethod
    def get_profile(self, subject: str) -> Optional[StoredProfile]:
        """Latest stored profile, or None."""

    def should_refresh_profile(self, subject: str, max_age_hours: float = 24) -> bool:
        """True when no profile exists or the stored one is older than ``max_age_hours``."""
        stored = self.get_profile(subject)
        if stored is None:
            return True
        return self.clock() - stored.updated_at > timedelta(hours=max_age_hours)


class InMemoryProfileStore(ProfileStore):

    def __init__(self, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        super().__init__(clock)
        self._artifacts: Dict[str, List[Artifact]] = {}
        self._profiles: Dict[str, StoredProfile] = {}
        self._lock = threading.Lock()

    def save_artifacts(self, subject: str, artifacts: List[Artifact]) -> None:
        with self._lock:
            self._artifacts[subject.lower()] = list(artifacts)

    def get_artifacts(self, subject: str) -> List[Artifact]:
        with self._lock:
            return list(self._artifacts.get(subject.lower(), []))

    def save_profile(self, subject: str, profile: PoWProfile, artifact_count: int) -> StoredProfile:
        stored = StoredProfile(profile=profile, artifact_count=artifact_count, updated_at=self.clock())
        with self._lock:
            self._profiles[subject.lower()] = stored
        return stored

    def get_profile(self, subject: str) -> Optional[StoredProfile]:
        with self._lock:
            return self._profiles.get(subject.lower())


class JsonFileProfileStore(ProfileStore):
    """
    File-backed store: ``<directory>/<subject>/artifacts.json`` and ``profile.json``.
    """

    def __init__(self, directory: str,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        """
        Args:
            directory: Root directory for stored subjects
            clock: Returns the current time
        """
        super().__init__(clock)
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        logger.info(f"Profile store initialized: {self.directory}")

    def _subject_dir(self, subject: str, create: bool = False) -> Path:
        # Sanitize subject for filesystem
        safe_subject = re.sub(r'[^A-Za-z0-9_.-]', '-', subject.lower())
        if not safe_subject or safe_subject.startswith('.'):
            raise ValidationError(f"Invalid subject for file storage: {subject!r}")
        subject_dir = self.directory / safe_subject
        if create:
            subject_dir.mkdir(parents=True, exist_ok=True)
        return subject_dir

    def save_artifacts(self, subject: str, artifacts: List[Artifact]) -> None:
        path = self._subject_dir(subject, create=True) / "artifacts.json"
        self._atomic_write_json(path, {
            "subject": subject,
            "artifacts": [artifact.to_dict() for artifact in artifacts],
        })
        logger.info(f"Saved {len(artifacts)} artifacts for {subject}")

    def get_artifacts(self, subject: str) -> List[Artifact]:
        data = self._read_json(self._subject_dir(subject) / "artifacts.json")
        if data is None:
            return []
        return [Artifact.from_dict(item) for item in data.get("artifacts", [])]

    def save_profile(self, subject: str, profile: PoWProfile, artifact_count: int) -> StoredProfile:
        stored = StoredProfile(profile=profile, artifact_count=artifact_count, updated_at=self.clock())
        self._atomic_write_json(self._subject_dir(subject, create=True) / "profile.json", stored.to_dict())
        logger.info(f"Saved profile for {subject} (overall index {profile.overall_index})")
        return stored

    def get_profile(self, subject: str) -> Optional[StoredProfile]:
        data = self._read_json(self._subject_dir(subject) / "profile.json")
        if data is None:
            return None
        return StoredProfile(
            profile=PoWProfile.model_validate(data["profile"]),
            artifact_count=int(data.get("artifactCount", 0)),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )

    @staticmethod
    def _read_json(path: Path) -> Optional[Dict]:
        if not path.exists():
            return None
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def _atomic_write_json(self, file_path: Path, data: Dict):
        """
        Atomically write JSON data to file.

        Args:
            file_path: Target file path
            data: Data to write
        """
        temp_file = None
        try:
            with tempfile.NamedTemporaryFile(
                mode='w',
                encoding='utf-8',
                dir=file_path.parent,
                delete=False,
                suffix='.tmp'
            ) as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                temp_file = f.name

            Path(temp_file).replace(file_path)

        except OSError:
            if temp_file:
                Path(temp_file).unlink(missing_ok=True)
            raise
