# powindex/tasks/ingestion/artifact_ingestion.py
"""
Artifact ingestion from the activity source.

Two modes are offered:
- fast: a handful of calls (profile, repo list, event feed) plus parallel
  metadata fetches for the top-ranked repositories
- full: every owned repository and every fork is walked sequentially and its
  commits and pull requests are filtered down to the subject's own work
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from powindex.core.errors import ActivitySourceError, PartialFetchFailure, ValidationError
from powindex.core.models import (
    FastIngestedData,
    IngestedArtifacts,
    TimeWindow,
    parse_timestamp,
    subtract_months,
)
from powindex.shared.github_client import GitHubClient
from powindex.tasks.ingestion.ownership import commit_author_login, pull_request_author_login, same_login

logger = logging.getLogger(__name__)

# Errors that only cost us one repository
RECOVERABLE_FETCH_ERRORS = (ActivitySourceError, requests.RequestException, ValueError)


def require_subject(subject: Optional[str]) -> str:
    """Reject a missing subject before any network call is made."""
    if not subject or not isinstance(subject, str) or not subject.strip():
        raise ValidationError("A subject login is required")
    return subject.strip()


class ArtifactIngestionService:
    """
    Collects raw repository, commit and pull request payloads for one subject.
    """

    def __init__(self, client: GitHubClient, config=None,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        """
        Args:
            client: Activity-source client
            config: The ``github`` configuration section
            clock: Returns the current time; injectable for tests
        """
        self.client = client
        self.clock = clock

        config = config or {}
        fast_config = config.get('fast_mode', {}) or {}
        self.top_n_repos = int(fast_config.get('top_n_repos', 10))
        self.max_workers = int(fast_config.get('max_workers', 5))
        self.event_page_size = int(fast_config.get('event_page_size', 100))
        self.commit_sample_size = int(fast_config.get('commit_sample_size', 15))
        self.max_commit_details = int(config.get('max_commit_details', 100))

    def _time_window(self, months_back: int) -> TimeWindow:
        end = self.clock()
        return TimeWindow(start=subtract_months(end, months_back), end=end)

    # ------------------------------------------------------------------ fast mode

    def ingest_fast(self, subject: str, months_back: int = 12) -> FastIngestedData:
        """
        Low-latency ingestion for an initial profile.

        Args:
            subject: GitHub login
            months_back: Size of the activity window in months

        Returns:
            FastIngestedData with event-derived commits/PRs and enriched top repositories
        """
        subject = require_subject(subject)
        window = self._time_window(months_back)
        logger.info(f"Fast ingestion for {subject} since {window.start.isoformat()}")

        user_stats = self.client.get_user_stats(subject)
        repos = self.client.get_user_repos(subject)
        events = self.client.get_user_events(subject, per_page=self.event_page_size)

        owned = [
            repo for repo in repos
            if same_login((repo.get('owner') or {}).get('login'), subject) and not repo.get('fork')
        ]
        selected = self.rank_repositories(owned, window.end, months_back)[:self.top_n_repos]
        logger.info(f"Selected {len(selected)}/{len(owned)} owned repositories for metadata fetch")

        enriched = self._enrich_repositories(selected, subject)
        commits, pull_requests = self._contributions_from_events(events, subject, window)
        # event payloads carry no line counts; sample the newest commits for them
        self.attach_commit_stats([
            (commit['repository_full_name'], commit) for commit in commits[:self.commit_sample_size]
        ])
        logger.info(
            f"Fast ingestion for {subject}: {len(enriched)} repos, "
            f"{len(commits)} commits, {len(pull_requests)} PRs from {len(events)} events"
        )

        return FastIngestedData(
            repos=enriched,
            commits=commits,
            pull_requests=pull_requests,
            time_window=window,
            user_stats=user_stats or {},
            top_languages=self.aggregate_languages(enriched),
            event_count=len(events),
        )

    @staticmethod
    def rank_repositories(repos: List[Dict[str, Any]], now: datetime,
                          months_back: int = 12) -> List[Dict[str, Any]]:
        """Order repositories by stars plus a recency bonus for recent pushes."""
        def score(repo: Dict[str, Any]) -> float:
            pushed = parse_timestamp(repo.get('pushed_at') or repo.get('updated_at'))
            months_since_push = max(0.0, (now - pushed).days / 30.0)
            recency = max(0.0, months_back - months_since_push)
            return (repo.get('stargazers_count') or 0) + recency

        return sorted(repos, key=score, reverse=True)

    def _enrich_repositories(self, repos: List[Dict[str, Any]], subject: str) -> List[Dict[str, Any]]:
        if not repos:
            return []

        def fetch(repo: Dict[str, Any]) -> Dict[str, Any]:
            owner, name = repo['full_name'].split('/', 1)
            enriched = dict(repo)
            enriched['languages_breakdown'] = self.client.get_repo_languages(owner, name)
            enriched['contributor_stats'] = self.client.get_repo_contributor_stats(owner, name, subject)
            return enriched

        with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(repos)))) as executor:
            # map preserves input order regardless of completion order
            return list(executor.map(fetch, repos))

    @staticmethod
    def _contributions_from_events(events: List[Dict[str, Any]], subject: str,
                                   window: TimeWindow) -> Tuple[List[Dict], List[Dict]]:
        """Turn PushEvent and PullRequestEvent entries into commit and PR payloads."""
        commits: Dict[str, Dict[str, Any]] = {}
        pull_requests: Dict[Any, Dict[str, Any]] = {}

        for event in events:
            actor = (event.get('actor') or {}).get('login')
            if not same_login(actor, subject):
                continue
            created_at = event.get('created_at')
            if parse_timestamp(created_at) < window.start:
                continue
            payload = event.get('payload') or {}
            repo_name = (event.get('repo') or {}).get('name', '')

            if event.get('type') == 'PushEvent':
                for raw in payload.get('commits') or []:
                    sha = raw.get('sha')
                    if not sha or sha in commits:
                        continue
                    author = raw.get('author') or {}
                    commits[sha] = {
                        'sha': sha,
                        'commit': {
                            'message': raw.get('message', ''),
                            'author': {
                                'name': author.get('name'),
                                'email': author.get('email'),
                                'date': created_at,
                            },
                        },
                        'author': {'login': actor},
                        'repository_full_name': repo_name,
                    }

            elif event.get('type') == 'PullRequestEvent':
                if payload.get('action') not in ('opened', 'closed', 'reopened'):
                    continue
                pr = payload.get('pull_request') or {}
                if not same_login(pull_request_author_login(pr), subject):
                    continue
                # events arrive newest first, so the first sighting is the latest state
                pull_requests.setdefault(pr.get('id'), dict(pr, merged=bool(pr.get('merged') or pr.get('merged_at'))))

        return list(commits.values()), list(pull_requests.values())

    @staticmethod
    def aggregate_languages(repos: List[Dict[str, Any]], limit: int = 10) -> List[Dict[str, Any]]:
        """Top languages by bytes across the enriched repositories."""
        totals: Dict[str, int] = {}
        for repo in repos:
            for language, size in (repo.get('languages_breakdown') or {}).items():
                totals[language] = totals.get(language, 0) + (size or 0)

        total_bytes = sum(totals.values())
        ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)[:limit]
        return [
            {
                'language': language,
                'bytes': size,
                'percentage': round(size / total_bytes * 100) if total_bytes else 0,
            }
            for language, size in ranked
        ]

    def attach_commit_stats(self, targets: List[Tuple[str, Dict[str, Any]]]) -> int:
        """
        Copy ``stats`` from the commit detail endpoint onto commit payloads.

        Args:
            targets: (repository full name, commit payload) pairs; payloads are updated in place

        Returns:
            Number of commits that received stats
        """
        pending = [
            (full_name, commit) for full_name, commit in targets
            if commit.get('sha') and not commit.get('stats') and '/' in (full_name or '')
        ]
        if not pending:
            return 0

        def fetch(target: Tuple[str, Dict[str, Any]]) -> bool:
            full_name, commit = target
            owner, name = full_name.split('/', 1)
            try:
                details = self.client.get_commit_details(owner, name, commit['sha'])
            except RECOVERABLE_FETCH_ERRORS as e:
                logger.debug(f"Commit details unavailable for {full_name}@{commit['sha']}: {e}")
                return False
            stats = (details or {}).get('stats')
            if not stats:
                return False
            commit['stats'] = stats
            return True

        with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(pending)))) as executor:
            attached = sum(executor.map(fetch, pending))
        logger.info(f"Attached line counts to {attached}/{len(pending)} commits")
        return attached

    # ------------------------------------------------------------------ full mode

    def ingest_full(self, subject: str, months_back: int = 12) -> IngestedArtifacts:
        """
        Complete ingestion over every repository of the subject.

        Owned non-fork repositories are kept when the subject authored at least one
        commit or PR in the window. Forks are kept when the subject committed to them
        or, failing that, opened a PR from them. A failure on one repository is logged
        and skipped.

        Args:
            subject: GitHub login
            months_back: Size of the activity window in months

        Returns:
            IngestedArtifacts with author-filtered commits and PRs
        """
        subject = require_subject(subject)
        window = self._time_window(months_back)
        since = window.start.isoformat()
        logger.info(f"Full ingestion for {subject} since {since}")

        all_repos = self.client.get_user_repos(subject)
        owned_repos = [
            repo for repo in all_repos
            if same_login((repo.get('owner') or {}).get('login'), subject) and not repo.get('fork')
        ]
        forked_repos = [repo for repo in all_repos if repo.get('fork') is True]

        commits: Dict[str, Dict[str, Any]] = {}
        commit_repos: Dict[str, str] = {}
        pull_requests: Dict[Any, Dict[str, Any]] = {}
        relevant_owned: List[Dict[str, Any]] = []
        relevant_forks: List[Dict[str, Any]] = []
        failures: List[PartialFetchFailure] = []

        for repo, is_fork in [(r, False) for r in owned_repos] + [(r, True) for r in forked_repos]:
            try:
                user_commits, user_prs = self._fetch_repo_contributions(repo, subject, window, since)
            except RECOVERABLE_FETCH_ERRORS as e:
                failure = PartialFetchFailure(repo.get('full_name', '?'), e)
                logger.warning(str(failure))
                failures.append(failure)
                continue

            if not user_commits and not user_prs:
                continue

            (relevant_forks if is_fork else relevant_owned).append(repo)
            for commit in user_commits:
                commits.setdefault(commit.get('sha'), commit)
                commit_repos.setdefault(commit.get('sha'), repo['full_name'])
            for pr in user_prs:
                pull_requests.setdefault(pr.get('id'), pr)

        # list endpoints omit line counts
        self.attach_commit_stats([
            (commit_repos[sha], commit) for sha, commit in list(commits.items())[:self.max_commit_details]
        ])

        logger.info(
            f"Full ingestion for {subject}: {len(relevant_owned)} owned repos, "
            f"{len(relevant_forks)} forks, {len(commits)} commits, {len(pull_requests)} PRs, "
            f"{len(failures)} repo failures"
        )

        return IngestedArtifacts(
            repos=relevant_owned,
            commits=list(commits.values()),
            pull_requests=list(pull_requests.values()),
            time_window=window,
            forked_repos=relevant_forks,
        )

    def _fetch_repo_contributions(self, repo: Dict[str, Any], subject: str,
                                  window: TimeWindow, since: str) -> Tuple[List[Dict], List[Dict]]:
        """Fetch a repository's commits and PRs concurrently and keep the subject's own."""
        owner, name = repo['full_name'].split('/', 1)

        with ThreadPoolExecutor(max_workers=2) as executor:
            commits_future = executor.submit(self.client.get_repo_commits, owner, name, since)
            prs_future = executor.submit(self.client.get_repo_pull_requests, owner, name, "all")
            repo_commits = commits_future.result()
            repo_prs = prs_future.result()

        user_commits = [
            c for c in repo_commits
            if same_login(commit_author_login(c), subject)
            and parse_timestamp(((c.get('commit') or {}).get('author') or {}).get('date')) >= window.start
        ]
        user_prs = [
            pr for pr in repo_prs
            if same_login(pull_request_author_login(pr), subject)
            and parse_timestamp(pr.get('created_at')) >= window.start
        ]
        return user_commits, user_prs
