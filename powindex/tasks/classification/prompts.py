# powindex/tasks/classification/prompts.py
"""
Prompt builders for skill extraction and contribution impact analysis.
"""

from typing import Any, Dict, List

from powindex.core.models import SKILL_CATEGORIES, Artifact, ArtifactKind, TimeWindow

MAX_BODY_CHARS = 500


def summarize_artifacts(artifacts: List[Artifact]) -> Dict[str, Any]:
    """Counts by kind and the language set of the repositories."""
    languages = set()
    for artifact in artifacts:
        if artifact.kind == ArtifactKind.REPO:
            if artifact.payload.get('language'):
                languages.add(artifact.payload['language'])
            languages.update((artifact.payload.get('languages_breakdown') or {}).keys())

    return {
        'repos': sum(1 for a in artifacts if a.kind == ArtifactKind.REPO),
        'commits': sum(1 for a in artifacts if a.kind == ArtifactKind.COMMIT),
        'pull_requests': sum(1 for a in artifacts if a.kind == ArtifactKind.PULL_REQUEST),
        'languages': sorted(languages),
    }


class ClassifierPromptGenerator:
    """
    Builds the user prompts sent to the classifier.
    """

    def create_skill_extraction_prompt(self, subject: str, artifacts: List[Artifact],
                                       time_window: TimeWindow) -> str:
        summary = summarize_artifacts(artifacts)
        category_names = ", ".join(SKILL_CATEGORIES.values())
        category_keys = ", ".join(SKILL_CATEGORIES.keys())

        return f"""Analyze the developer's GitHub activity and extract skill scores.

Developer: {subject}
Time Period: {time_window.start.isoformat()} to {time_window.end.isoformat()}
Repositories: {summary['repos']}
Commits: {summary['commits']}
Pull Requests: {summary['pull_requests']}
Languages: {", ".join(summary['languages']) or "N/A"}

For each skill category ({category_names}), provide:
- score (0-100)
- confidence (0-100)
- evidence (array of {{"type", "id", "name", "reason"}} objects referencing specific artifacts)

Return JSON format with keys: {category_keys}"""

    def create_impact_prompt(self, artifact: Artifact) -> str:
        return f"""Analyze this contribution's impact and complexity:

{self._describe_artifact(artifact)}

Provide:
- impact_score (0-100)
- complexity_delta (0-100)
- quality_indicators (has_tests, reviewed, refactored, documented)

Return JSON format."""

    def create_batch_impact_prompt(self, subject: str, artifacts: List[Artifact]) -> str:
        described = "\n\n".join(
            f"[{artifact.id}]\n{self._describe_artifact(artifact)}" for artifact in artifacts
        )
        return f"""Analyze the impact and complexity of each contribution below, made by {subject}.

Scoring rules:
- Score 0 for work in forks that the developer did not change.
- Score 0 for work authored by someone other than {subject}.
- Score 0 for entries with no user-authored changes.

Contributions:

{described}

Return a JSON array with one object per contribution, in any order:
[{{"id": "<contribution id in brackets>", "impact_score": 0-100, "complexity_delta": 0-100,
  "quality_indicators": {{"has_tests": bool, "reviewed": bool, "refactored": bool, "documented": bool}}}}]"""

    @staticmethod
    def _describe_artifact(artifact: Artifact) -> str:
        data = artifact.payload
        repo = artifact.repository.full_name if artifact.repository else "unknown"

        if artifact.kind == ArtifactKind.PULL_REQUEST:
            body = (data.get('body') or "N/A")[:MAX_BODY_CHARS]
            return f"""Type: Pull Request
Repository: {repo}
Title: {data.get('title', '')}
Body: {body}
State: {data.get('state', 'unknown')}
Merged: {bool(data.get('merged') or data.get('merged_at'))}
Additions: {data.get('additions') or 0}
Deletions: {data.get('deletions') or 0}"""

        if artifact.kind == ArtifactKind.COMMIT:
            stats = data.get('stats') or {}
            message = ((data.get('commit') or {}).get('message') or '')[:MAX_BODY_CHARS]
            return f"""Type: Commit
Repository: {repo}
Message: {message}
SHA: {data.get('sha', '')}
Lines changed: {stats.get('total', 'unknown')}"""

        return f"""Type: Repository
Name: {data.get('full_name', repo)}
Description: {data.get('description') or 'N/A'}
Language: {data.get('language') or 'N/A'}"""
