# powindex/core/models.py
"""
Domain models for the Proof-of-Work profile pipeline.

Artifacts and classifier outputs are plain dataclasses that only live for the
duration of a run. The profile is a pydantic model because it is the one object
that leaves the pipeline and travels as JSON.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, validator

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# key -> display name, in scoring order
SKILL_CATEGORIES: Dict[str, str] = {
    "backend_engineering": "Backend Engineering",
    "frontend_engineering": "Frontend Engineering",
    "devops_infrastructure": "DevOps / Infrastructure",
    "systems_architecture": "Systems / Architecture",
}


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO-8601 timestamp from the activity source into an aware datetime.

    Missing or unparseable values map to the epoch so that sorting stays total.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not value or not isinstance(value, str):
        return EPOCH
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return EPOCH
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def subtract_months(moment: datetime, months: int) -> datetime:
    """Calendar-aware month subtraction; the day is clamped to the target month's length."""
    year, month = divmod(moment.year * 12 + (moment.month - 1) - months, 12)
    month += 1
    if month == 12:
        next_month_start = datetime(year + 1, 1, 1)
    else:
        next_month_start = datetime(year, month + 1, 1)
    last_day = (next_month_start - datetime(year, month, 1)).days
    return moment.replace(year=year, month=month, day=min(moment.day, last_day))


class ArtifactKind(str, Enum):
    REPO = "repo"
    COMMIT = "commit"
    PULL_REQUEST = "pull_request"


@dataclass(frozen=True)
class RepositoryRef:
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class Artifact:
    """Canonical record of one unit of developer activity. Identity is (kind, id)."""
    kind: ArtifactKind
    id: str
    payload: Dict[str, Any] = field(hash=False, compare=False, repr=False)
    timestamp: datetime = EPOCH
    repository: Optional[RepositoryRef] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.kind.value, self.id)

    @property
    def is_contribution(self) -> bool:
        return self.kind in (ArtifactKind.COMMIT, ArtifactKind.PULL_REQUEST)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "repository": self.repository.full_name if self.repository else None,
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Artifact":
        repository = None
        if data.get("repository") and "/" in data["repository"]:
            owner, name = data["repository"].split("/", 1)
            repository = RepositoryRef(owner=owner, name=name)
        return cls(
            kind=ArtifactKind(data["kind"]),
            id=str(data["id"]),
            payload=data.get("payload") or {},
            timestamp=parse_timestamp(data.get("timestamp")),
            repository=repository,
        )


@dataclass
class TimeWindow:
    start: datetime
    end: datetime

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass
class IngestedArtifacts:
    """Raw, author-filtered payloads from one ingestion run."""
    repos: List[Dict[str, Any]]
    commits: List[Dict[str, Any]]
    pull_requests: List[Dict[str, Any]]
    time_window: TimeWindow
    # Forks kept only because the subject contributed to them; never emitted as repo artifacts
    forked_repos: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class FastIngestedData(IngestedArtifacts):
    """Low-latency ingestion result: event-derived contributions plus repo metadata."""
    user_stats: Dict[str, Any] = field(default_factory=dict)
    top_languages: List[Dict[str, Any]] = field(default_factory=list)
    event_count: int = 0


@dataclass
class Evidence:
    artifact_type: str
    artifact_id: str
    reason: str
    name: Optional[str] = None


@dataclass
class SkillScore:
    score: float = 0.0
    confidence: float = 0.0
    evidence: List[Evidence] = field(default_factory=list)


@dataclass
class SkillExtraction:
    """One SkillScore per fixed skill category."""
    categories: Dict[str, SkillScore]

    @classmethod
    def default(cls) -> "SkillExtraction":
        return cls(categories={key: SkillScore() for key in SKILL_CATEGORIES})

    def get(self, category: str) -> SkillScore:
        return self.categories.get(category) or SkillScore()


@dataclass
class QualityIndicators:
    has_tests: bool = False
    reviewed: bool = False
    refactored: bool = False
    documented: bool = False


@dataclass
class ContributionImpact:
    impact_score: float = 50.0
    complexity_delta: float = 50.0
    quality_indicators: QualityIndicators = field(default_factory=QualityIndicators)

    @classmethod
    def neutral(cls) -> "ContributionImpact":
        return cls()


@dataclass
class ProgressState:
    subject: str
    stage: str
    message: str
    percent: int
    updated_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject": self.subject,
            "stage": self.stage,
            "message": self.message,
            "percent": self.percent,
            "updated_at": self.updated_at,
        }


class SkillPoWScore(BaseModel):
    """Final score for a single skill category."""

    skill_name: str = Field(..., alias="skill", description="Display name of the skill category")
    score: int = Field(..., ge=0, le=100)
    percentile: int = Field(..., ge=0, le=100)
    confidence: float = Field(0.0, ge=0.0, le=100.0)
    artifact_count: int = Field(0, alias="artifactCount", ge=0)

    model_config = {"populate_by_name": True}


class ArtifactSummary(BaseModel):
    repos: int = 0
    commits: int = 0
    pull_requests: int = Field(0, alias="pullRequests")
    merged_prs: int = Field(0, alias="mergedPRs")

    model_config = {"populate_by_name": True}


class PoWProfile(BaseModel):
    """Proof-of-Work profile; the pipeline's only durable output."""

    skills: List[SkillPoWScore]
    overall_index: int = Field(..., alias="overallIndex", ge=0, le=100)
    artifact_summary: ArtifactSummary = Field(..., alias="artifactSummary")

    model_config = {"populate_by_name": True}

    @validator("skills")
    def validate_skills(cls, v):
        """Every profile carries one entry per skill category."""
        if len(v) != len(SKILL_CATEGORIES):
            raise ValueError(f"Expected {len(SKILL_CATEGORIES)} skill scores, got {len(v)}")
        return v

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation using the transport field names."""
        return self.model_dump(by_alias=True)
