# powindex/core/pipeline.py
"""
End-to-end Proof-of-Work profile pipeline.

ingestion -> normalization -> ownership validation -> (skill extraction ||
batched impact analysis) -> scoring -> persistence, with a progress update at
every stage boundary.
"""

import time
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from powindex.core.errors import ValidationError
from powindex.core.models import Artifact, PoWProfile
from powindex.shared.github_client import GitHubClient
from powindex.shared.profile_store import InMemoryProfileStore, JsonFileProfileStore, ProfileStore
from powindex.shared.progress_tracker import InMemoryProgressStore, ProgressStore
from powindex.shared.snapshot import extract_skill_scores, generate_artifact_hash
from powindex.tasks.classification.classifier_gateway import ClassifierGateway
from powindex.tasks.ingestion.artifact_ingestion import ArtifactIngestionService, require_subject
from powindex.tasks.ingestion.ownership import normalize, validate_ownership
from powindex.tasks.scoring.scoring_engine import ScoringEngine

logger = logging.getLogger(__name__)

INGESTION_MODES = ("fast", "full")

# stage -> percent reported when the stage starts
STAGE_PERCENT = {
    "fetching": 10,
    "validating": 30,
    "analyzing": 50,
    "scoring": 80,
    "saving": 90,
    "complete": 100,
}


@dataclass
class PipelineResult:
    subject: str
    profile: PoWProfile
    artifacts: List[Artifact]
    artifact_hash: str
    skill_scores: List[int]
    processing_time_ms: float

    def to_dict(self):
        return {
            "subject": self.subject,
            "profile": self.profile.to_dict(),
            "artifactCount": len(self.artifacts),
            "artifactHash": self.artifact_hash,
            "skillScores": self.skill_scores,
            "processingTimeMs": round(self.processing_time_ms, 1),
        }


class ProfilePipeline:
    """
    Runs one profile generation per call. Instances hold no per-run state and
    may serve concurrent runs for different subjects.
    """

    def __init__(self, ingestion: ArtifactIngestionService, classifier: ClassifierGateway,
                 store: Optional[ProfileStore] = None, progress: Optional[ProgressStore] = None,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.ingestion = ingestion
        self.classifier = classifier
        self.store = store or InMemoryProfileStore()
        self.progress = progress or InMemoryProgressStore()
        self.clock = clock

    @classmethod
    def from_settings(cls, settings, progress: Optional[ProgressStore] = None) -> "ProfilePipeline":
        """
        Build a pipeline from PowIndexSettings.

        Missing credentials do not fail here; they surface on the first run.
        """
        config = settings.config
        client = GitHubClient(settings.github_token, config.github)
        ingestion = ArtifactIngestionService(client, config.github)
        classifier = ClassifierGateway(config.classifier)
        store = JsonFileProfileStore(settings.get_storage_dir())
        if progress is None:
            progress = InMemoryProgressStore(ttl_seconds=config.progress.ttl_seconds)
        return cls(ingestion, classifier, store=store, progress=progress)

    def _stage(self, subject: str, stage: str, message: str):
        self.progress.set_progress(subject, stage, message, STAGE_PERCENT[stage])
        logger.info(f"[{subject}] {stage}: {message}")

    def run(self, subject: str, mode: str = "fast", months_back: int = 12) -> PipelineResult:
        """
        Generate, persist and return a profile for one subject.

        Args:
            subject: Developer login
            mode: ``fast`` (event-derived) or ``full`` (per-repo history)
            months_back: Size of the activity window

        Returns:
            PipelineResult

        Raises:
            ValidationError: missing subject or bad arguments, before any network call
            AuthenticationError: activity-source credentials rejected
            ConfigurationError: no classifier provider configured
        """
        subject = require_subject(subject)
        if mode not in INGESTION_MODES:
            raise ValidationError(f"Unknown ingestion mode '{mode}', expected one of {INGESTION_MODES}")
        if months_back < 1:
            raise ValidationError("months_back must be at least 1")

        start_time = time.time()
        try:
            self._stage(subject, "fetching", f"Fetching GitHub activity ({mode} mode)")
            if mode == "fast":
                ingested = self.ingestion.ingest_fast(subject, months_back)
            else:
                ingested = self.ingestion.ingest_full(subject, months_back)

            self._stage(subject, "validating", "Validating artifact ownership")
            artifacts = validate_ownership(normalize(ingested, subject))
            logger.info(f"[{subject}] {len(artifacts)} validated artifacts")

            self._stage(subject, "analyzing", f"Analyzing {len(artifacts)} artifacts")
            engine = ScoringEngine(self.classifier, months_back=months_back, clock=self.clock)
            with ThreadPoolExecutor(max_workers=2) as executor:
                skills_future = executor.submit(
                    self.classifier.extract_skills, subject, artifacts, ingested.time_window
                )
                context_future = executor.submit(engine.analyze_impacts, artifacts, subject)
                skill_extraction = skills_future.result()
                context = context_future.result()

            self._stage(subject, "scoring", "Computing Proof-of-Work scores")
            profile = engine.generate_profile(artifacts, skill_extraction, context)

            self._stage(subject, "saving", "Saving profile")
            self.store.save_artifacts(subject, artifacts)
            self.store.save_profile(subject, profile, len(artifacts))

            result = PipelineResult(
                subject=subject,
                profile=profile,
                artifacts=artifacts,
                artifact_hash=generate_artifact_hash(artifacts),
                skill_scores=extract_skill_scores(profile),
                processing_time_ms=(time.time() - start_time) * 1000,
            )
            self._stage(subject, "complete", f"Profile complete: overall index {profile.overall_index}")
            return result

        except Exception as e:
            self.progress.set_progress(subject, "error", str(e), 0)
            logger.error(f"[{subject}] Pipeline failed: {e}")
            raise
