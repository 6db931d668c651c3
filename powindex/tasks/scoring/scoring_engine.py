# powindex/tasks/scoring/scoring_engine.py
"""
Proof-of-Work scoring engine.

Turns validated artifacts and classifier outputs into a PoWProfile. The
per-artifact impact cache lives in a ScoringContext created for one run and
passed explicitly through the scoring calls, so nothing is shared between
concurrent runs for different subjects.
"""

import math
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import numpy as np

from powindex.core.errors import ClassifierFormatError, ClassifierTransportError
from powindex.core.models import (
    SKILL_CATEGORIES,
    Artifact,
    ArtifactKind,
    ArtifactSummary,
    ContributionImpact,
    PoWProfile,
    SkillExtraction,
    SkillPoWScore,
    subtract_months,
)
from powindex.tasks.classification.classifier_gateway import ClassifierGateway
from powindex.tasks.ingestion.ownership import validate_ownership
from powindex.tasks.scoring.constants import (
    CLOSED_PR_WEIGHT,
    COMPONENT_WEIGHTS,
    CONSISTENCY_DISPERSION_FACTOR,
    FORKED_REPO_WEIGHT,
    IMPACT_MEAN_WEIGHT,
    IMPACT_MERGE_RATE_WEIGHT,
    LOW_CONFIDENCE_FLOOR,
    MAX_SMALL_COMMIT_PENALTY,
    MERGED_PR_WEIGHT,
    PERCENTILE_STEPS,
    RECENCY_MONTHS,
    REFACTOR_BONUS,
    SMALL_COMMIT_LINES,
    SMALL_COMMIT_PENALTY,
    TESTS_BONUS,
)

logger = logging.getLogger(__name__)


@dataclass
class ScoringContext:
    """Run-scoped state: the impact cache keyed by artifact id."""
    impact_cache: Dict[str, ContributionImpact] = field(default_factory=dict)


@dataclass
class CategoryBreakdown:
    """Component scores behind one category's final score."""
    impact: float
    complexity: float
    collaboration: float
    consistency: float
    raw_pow: float
    final: int


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def lookup_percentile(score: float) -> int:
    """Fixed score-to-percentile table; an approximation, not a population rank."""
    for minimum, percentile in PERCENTILE_STEPS:
        if score >= minimum:
            return percentile
    return round_half_up(clamp(100 - score))


def _pull_requests(artifacts: List[Artifact]) -> List[Artifact]:
    return [a for a in artifacts if a.kind == ArtifactKind.PULL_REQUEST]


def is_merged(artifact: Artifact) -> bool:
    return bool(artifact.payload.get('merged') or artifact.payload.get('merged_at'))


def merged_pr_fraction(artifacts: List[Artifact]) -> float:
    prs = _pull_requests(artifacts)
    if not prs:
        return 0.0
    return sum(1 for pr in prs if is_merged(pr)) / len(prs)


def closed_pr_fraction(artifacts: List[Artifact]) -> float:
    prs = _pull_requests(artifacts)
    if not prs:
        return 0.0
    return sum(1 for pr in prs if pr.payload.get('state') == 'closed') / len(prs)


def impact_component(artifacts: List[Artifact], impact_cache: Dict[str, ContributionImpact]) -> float:
    """Mean cached impact blended with the PR merge rate."""
    relevant = [a for a in artifacts if a.is_contribution]
    if not relevant:
        return 0.0

    impacts = [impact_cache[a.id].impact_score for a in relevant if a.id in impact_cache]
    mean_impact = sum(impacts) / len(impacts) if impacts else 0.0
    merge_rate = merged_pr_fraction(artifacts) * 100
    return clamp(mean_impact * IMPACT_MEAN_WEIGHT + merge_rate * IMPACT_MERGE_RATE_WEIGHT)


def complexity_component(artifacts: List[Artifact], impact_cache: Dict[str, ContributionImpact]) -> float:
    """
    Mean cached complexity with quality bonuses, minus a penalty for small commits.

    Tests add 10 and refactoring adds 5 to an artifact's complexity. Every commit
    under 50 changed lines costs 0.5, up to 20 in total.
    """
    relevant = [a for a in artifacts if a.is_contribution]
    if not relevant:
        return 0.0

    values = []
    for artifact in relevant:
        impact = impact_cache.get(artifact.id)
        if impact is None:
            continue
        value = impact.complexity_delta
        if impact.quality_indicators.has_tests:
            value += TESTS_BONUS
        if impact.quality_indicators.refactored:
            value += REFACTOR_BONUS
        values.append(value)

    small_commits = 0
    for artifact in relevant:
        stats = artifact.payload.get('stats') if artifact.kind == ArtifactKind.COMMIT else None
        if stats and stats.get('total') is not None and stats['total'] < SMALL_COMMIT_LINES:
            small_commits += 1

    penalty = min(MAX_SMALL_COMMIT_PENALTY, small_commits * SMALL_COMMIT_PENALTY)
    mean_complexity = sum(values) / len(values) if values else 0.0
    return clamp(mean_complexity - penalty)


def collaboration_component(artifacts: List[Artifact]) -> float:
    repos = [a for a in artifacts if a.kind == ArtifactKind.REPO]
    forked_share = (
        sum(1 for r in repos if (r.payload.get('forks_count') or 0) > 0) / len(repos)
        if repos else 0.0
    )
    score = (
        CLOSED_PR_WEIGHT * closed_pr_fraction(artifacts) * 100
        + MERGED_PR_WEIGHT * merged_pr_fraction(artifacts) * 100
        + FORKED_REPO_WEIGHT * forked_share * 100
    )
    return min(100.0, score)


def consistency_component(artifacts: List[Artifact], now: datetime, months_back: int = 12) -> float:
    """
    Regularity of monthly activity, scaled by how recent the activity is.

    Month buckets cover the whole window ending at ``now``, empty months
    included, so a burst of activity in one month scores low.
    """
    if not artifacts:
        return 0.0

    month_keys = []
    for offset in range(months_back):
        moment = subtract_months(now, offset)
        month_keys.append((moment.year, moment.month))
    counts = dict.fromkeys(month_keys, 0)
    for artifact in artifacts:
        key = (artifact.timestamp.year, artifact.timestamp.month)
        if key in counts:
            counts[key] += 1

    monthly = np.array(list(counts.values()), dtype=float)
    mean = float(monthly.mean())
    if mean == 0:
        return 0.0
    consistency = max(0.0, 100 - CONSISTENCY_DISPERSION_FACTOR * float(monthly.std()) / mean)

    recent_cutoff = subtract_months(now, RECENCY_MONTHS)
    recency = sum(1 for a in artifacts if a.timestamp >= recent_cutoff) / len(artifacts)
    return clamp(consistency * recency)


def apply_confidence(raw_pow: float, confidence: float) -> float:
    """Low confidence pulls the score halfway toward zero, never below that."""
    c = clamp(confidence) / 100
    return raw_pow * c + raw_pow * (1 - c) * LOW_CONFIDENCE_FLOOR


def artifacts_for_category(artifacts: List[Artifact], category: str) -> List[Artifact]:
    """Artifacts that count toward a skill category. Every artifact counts toward every category."""
    return list(artifacts)


class ScoringEngine:
    """
    Produces PoW profiles from validated artifacts and classifier output.
    """

    def __init__(self, classifier: ClassifierGateway, months_back: int = 12,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        """
        Args:
            classifier: Gateway used for batched impact analysis
            months_back: Window used for the consistency component
            clock: Returns the current time; injectable for tests
        """
        self.classifier = classifier
        self.months_back = months_back
        self.clock = clock

    def analyze_impacts(self, artifacts: List[Artifact], subject: Optional[str] = None) -> ScoringContext:
        """
        Run one batched impact analysis over the commit/PR artifacts.

        Returns:
            A fresh ScoringContext holding the impact cache for this run
        """
        context = ScoringContext()
        relevant = [a for a in artifacts if a.is_contribution]
        if not relevant:
            return context

        try:
            context.impact_cache.update(self.classifier.analyze_impact_batch(relevant, subject=subject))
        except (ClassifierTransportError, ClassifierFormatError) as e:
            logger.error(f"Impact analysis unavailable, using neutral values: {e}")
            context.impact_cache.update({a.id: ContributionImpact.neutral() for a in relevant})

        logger.info(f"Impact cache populated for {len(context.impact_cache)} artifacts")
        return context

    def score_category(self, category: str, artifacts: List[Artifact],
                       skill_extraction: SkillExtraction, context: ScoringContext,
                       now: datetime) -> CategoryBreakdown:
        relevant = artifacts_for_category(artifacts, category)

        impact = impact_component(relevant, context.impact_cache)
        complexity = complexity_component(relevant, context.impact_cache)
        collaboration = collaboration_component(relevant)
        consistency = consistency_component(relevant, now, self.months_back)

        raw_pow = (
            COMPONENT_WEIGHTS["impact"] * impact
            + COMPONENT_WEIGHTS["complexity"] * complexity
            + COMPONENT_WEIGHTS["collaboration"] * collaboration
            + COMPONENT_WEIGHTS["consistency"] * consistency
        )
        confidence = skill_extraction.get(category).confidence
        final = round_half_up(clamp(apply_confidence(raw_pow, confidence)))

        return CategoryBreakdown(
            impact=impact,
            complexity=complexity,
            collaboration=collaboration,
            consistency=consistency,
            raw_pow=raw_pow,
            final=final,
        )

    def generate_profile(self, artifacts: List[Artifact], skill_extraction: Optional[SkillExtraction],
                         context: Optional[ScoringContext] = None) -> PoWProfile:
        """
        Generate a PoW profile.

        Args:
            artifacts: Normalized artifacts; ownership is re-validated here
            skill_extraction: Classifier skill output (None means all-zero)
            context: Impact cache for this run; built here when not supplied

        Returns:
            PoWProfile with one entry per skill category
        """
        validated = validate_ownership(artifacts)
        skill_extraction = skill_extraction or SkillExtraction.default()
        if context is None:
            context = self.analyze_impacts(validated)

        now = self.clock()
        try:
            skills = []
            for category, display_name in SKILL_CATEGORIES.items():
                breakdown = self.score_category(category, validated, skill_extraction, context, now)
                logger.debug(f"{category}: {breakdown}")
                skills.append(SkillPoWScore(
                    skill_name=display_name,
                    score=breakdown.final,
                    percentile=lookup_percentile(breakdown.final),
                    confidence=clamp(skill_extraction.get(category).confidence),
                    artifact_count=len(artifacts_for_category(validated, category)),
                ))
        finally:
            context.impact_cache.clear()

        overall_index = round_half_up(sum(s.score for s in skills) / len(skills))
        prs = _pull_requests(validated)
        summary = ArtifactSummary(
            repos=sum(1 for a in validated if a.kind == ArtifactKind.REPO),
            commits=sum(1 for a in validated if a.kind == ArtifactKind.COMMIT),
            pull_requests=len(prs),
            merged_prs=sum(1 for pr in prs if is_merged(pr)),
        )

        logger.info(f"Profile generated: overall index {overall_index} from {len(validated)} artifacts")
        return PoWProfile(skills=skills, overall_index=overall_index, artifact_summary=summary)
