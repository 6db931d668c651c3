# powindex/tasks/ingestion/ownership.py
"""
Normalization of raw GitHub payloads into canonical artifacts, and the
ownership filters applied before scoring.

Commit/PR to repository association is a best-effort string heuristic
(commit messages and branch names are matched against repository names).
It is not a guaranteed join and downstream consumers rely on its loose behavior.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from powindex.core.models import (
    Artifact,
    ArtifactKind,
    IngestedArtifacts,
    RepositoryRef,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


def _split_full_name(repo: Dict[str, Any]) -> RepositoryRef:
    full_name = repo.get('full_name') or ''
    if '/' in full_name:
        owner, name = full_name.split('/', 1)
    else:
        owner = (repo.get('owner') or {}).get('login', '')
        name = repo.get('name') or full_name
    return RepositoryRef(owner=owner, name=name)


def commit_author_login(commit: Dict[str, Any]) -> Optional[str]:
    return (commit.get('author') or {}).get('login')


def pull_request_author_login(pr: Dict[str, Any]) -> Optional[str]:
    return (pr.get('user') or {}).get('login')


def same_login(login: Optional[str], subject: Optional[str]) -> bool:
    """GitHub logins are case-insensitive."""
    return bool(login) and bool(subject) and login.casefold() == subject.casefold()


def associate_commit_repository(commit: Dict[str, Any],
                                repos: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Best-effort match of a commit to one of the candidate repositories.

    Message or SHA-prefix matches on the repository name win; otherwise the
    first repository owned by the commit author is used.
    """
    message = ((commit.get('commit') or {}).get('message') or '')
    sha = commit.get('sha') or ''

    for repo in repos:
        name = _split_full_name(repo).name
        if name and (name in message or sha.startswith(name)):
            return repo

    login = commit_author_login(commit)
    if login:
        for repo in repos:
            if same_login(_split_full_name(repo).owner, login):
                return repo
    return None


def associate_pull_request_repository(pr: Dict[str, Any],
                                      repos: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Best-effort match of a PR to a repository by its head/base branch names."""
    head_ref = ((pr.get('head') or {}).get('ref') or '').lower()
    base_ref = ((pr.get('base') or {}).get('ref') or '').lower()

    for repo in repos:
        name = (repo.get('name') or _split_full_name(repo).name).lower()
        if name and (name in head_ref or name in base_ref):
            return repo
    return None


def _ref_from_head(pr: Dict[str, Any]) -> RepositoryRef:
    parts = ((pr.get('head') or {}).get('ref') or '').split('/')
    owner = parts[0] if parts and parts[0] else 'unknown'
    name = parts[1] if len(parts) > 1 and parts[1] else 'unknown'
    return RepositoryRef(owner=owner, name=name)


def normalize(ingested: IngestedArtifacts, subject: Optional[str] = None) -> List[Artifact]:
    """
    Map raw repo/commit/PR payloads to canonical artifacts.

    Authorship is re-verified against ``subject`` when one is given, repositories
    without associated contributions are dropped, and the result is sorted by
    timestamp, newest first.

    Args:
        ingested: Output of one of the ingestion modes
        subject: Login of the developer the profile is built for

    Returns:
        Deduplicated artifact list
    """
    commits = [
        c for c in ingested.commits
        if not subject or same_login(commit_author_login(c), subject)
    ]
    pull_requests = [
        pr for pr in ingested.pull_requests
        if not subject or same_login(pull_request_author_login(pr), subject)
    ]

    dropped = (len(ingested.commits) - len(commits)) + (len(ingested.pull_requests) - len(pull_requests))
    if dropped:
        logger.warning(f"Dropped {dropped} contributions not authored by {subject}")

    candidate_repos = [
        repo for repo in ingested.repos
        if not repo.get('fork')
        and (not subject or same_login(_split_full_name(repo).owner, subject))
    ]

    artifacts: Dict[tuple, Artifact] = {}
    repos_with_contributions = set()

    for commit in commits:
        repo = associate_commit_repository(commit, candidate_repos)
        ref = _split_full_name(repo) if repo else None
        if ref:
            repos_with_contributions.add(ref.full_name)
        artifact = Artifact(
            kind=ArtifactKind.COMMIT,
            id=f"commit-{commit.get('sha')}",
            payload=commit,
            timestamp=parse_timestamp(((commit.get('commit') or {}).get('author') or {}).get('date')),
            repository=ref,
        )
        artifacts.setdefault(artifact.key, artifact)

    for pr in pull_requests:
        repo = associate_pull_request_repository(pr, candidate_repos)
        if repo:
            ref = _split_full_name(repo)
            repos_with_contributions.add(ref.full_name)
        else:
            ref = _ref_from_head(pr)
        artifact = Artifact(
            kind=ArtifactKind.PULL_REQUEST,
            id=f"pr-{pr.get('id')}",
            payload=pr,
            timestamp=parse_timestamp(pr.get('created_at')),
            repository=ref,
        )
        artifacts.setdefault(artifact.key, artifact)

    for repo in candidate_repos:
        ref = _split_full_name(repo)
        if ref.full_name not in repos_with_contributions:
            continue
        artifact = Artifact(
            kind=ArtifactKind.REPO,
            id=f"repo-{repo.get('id')}",
            payload=repo,
            timestamp=parse_timestamp(repo.get('updated_at')),
            repository=ref,
        )
        artifacts.setdefault(artifact.key, artifact)

    return sort_artifacts(artifacts.values())


def sort_artifacts(artifacts: Iterable[Artifact]) -> List[Artifact]:
    """Newest first; ties broken by identity so the order never depends on fetch order."""
    return sorted(artifacts, key=lambda a: (a.timestamp, a.kind.value, a.id), reverse=True)


def validate_ownership(artifacts: List[Artifact]) -> List[Artifact]:
    """
    Second-pass filter applied just before scoring.

    Drops repo artifacts that are forks or that no commit/PR in the same set
    points at. Commits and PRs pass through unchanged.
    """
    active_repos = {
        a.repository for a in artifacts
        if a.is_contribution and a.repository is not None
    }

    validated = []
    for artifact in artifacts:
        if artifact.kind == ArtifactKind.REPO:
            if artifact.payload.get('fork'):
                logger.debug(f"Skipping fork: {artifact.payload.get('full_name')}")
                continue
            if artifact.repository not in active_repos:
                logger.debug(f"Skipping repo without contributions: {artifact.payload.get('full_name')}")
                continue
        validated.append(artifact)

    logger.info(f"Ownership validation kept {len(validated)}/{len(artifacts)} artifacts")
    return validated
