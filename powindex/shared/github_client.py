# powindex/shared/github_client.py
"""
GitHub REST client for the activity source.
Fetches user stats, repositories, commits, pull requests and public events
with a fixed page size. Authentication failures are fatal; the optional
metadata endpoints (languages, contributor stats, events) degrade to empty results.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from powindex.core.errors import ActivitySourceError, AuthenticationError

logger = logging.getLogger(__name__)


class GitHubClient:
    """Thin wrapper around the GitHub v3 REST API."""

    def __init__(self, access_token: str, config=None, session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            access_token: GitHub token used for every request; a missing token
                fails the first request, not construction
            config: The ``github`` section of the pipeline configuration
            session: Optional pre-built session (tests inject one)
        """
        self.access_token = access_token

        config = config or {}
        self.base_url = str(config.get('base_url', "https://api.github.com")).rstrip('/')
        self.per_page = int(config.get('per_page', 100))
        self.max_pages = max(1, int(config.get('max_pages', 1)))
        self.timeout = config.get('timeout_seconds', 30)

        self.session = session or requests.Session()
        self.session.headers.update({
            'Accept': 'application/vnd.github.v3+json',
            'User-Agent': config.get('user_agent', 'powindex/0.1'),
        })
        if access_token:
            self.session.headers['Authorization'] = f'token {access_token}'

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if not self.access_token:
            raise AuthenticationError("GitHub access token is required")

        url = f"{self.base_url}{path}"
        response = self.session.get(url, params=params, timeout=self.timeout)

        if response.status_code == 401:
            raise AuthenticationError("GitHub rejected the access token (HTTP 401)")
        if response.status_code != 200:
            raise ActivitySourceError(
                f"GitHub API error {response.status_code} for {path}",
                status_code=response.status_code
            )
        return response.json()

    def _get_paginated(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Fetch up to ``max_pages`` pages of ``per_page`` items."""
        params = dict(params or {})
        params['per_page'] = self.per_page

        items: List[Dict[str, Any]] = []
        for page in range(1, self.max_pages + 1):
            params['page'] = page
            batch = self._get(path, params)
            if not isinstance(batch, list):
                break
            items.extend(batch)
            if len(batch) < self.per_page:
                break
        return items

    def get_user_stats(self, username: str) -> Dict[str, Any]:
        return self._get(f"/users/{username}")

    def get_user_repos(self, username: str) -> List[Dict[str, Any]]:
        """Repositories owned by the user, most recently updated first."""
        return self._get_paginated(f"/users/{username}/repos", {'sort': 'updated', 'type': 'owner'})

    def get_repo_languages(self, owner: str, repo: str) -> Dict[str, int]:
        """Bytes of code per language; empty on any non-auth failure."""
        try:
            return self._get(f"/repos/{owner}/{repo}/languages")
        except AuthenticationError:
            raise
        except (ActivitySourceError, requests.RequestException, ValueError) as e:
            logger.debug(f"Language breakdown unavailable for {owner}/{repo}: {e}")
            return {}

    def get_repo_contributor_stats(self, owner: str, repo: str, username: str) -> Optional[Dict[str, int]]:
        """
        Aggregate the user's contributor statistics for a repository.

        Returns:
            Dict with total_commits, additions and deletions, or None when the
            statistics are unavailable or the user is not a contributor
        """
        try:
            stats = self._get(f"/repos/{owner}/{repo}/stats/contributors")
        except AuthenticationError:
            raise
        except (ActivitySourceError, requests.RequestException, ValueError) as e:
            logger.debug(f"Contributor stats unavailable for {owner}/{repo}: {e}")
            return None

        if not isinstance(stats, list):
            return None

        for entry in stats:
            login = (entry.get('author') or {}).get('login') or ''
            if login.casefold() == username.casefold():
                weeks = entry.get('weeks') or []
                return {
                    'total_commits': entry.get('total', 0) or 0,
                    'additions': sum(w.get('a', 0) or 0 for w in weeks),
                    'deletions': sum(w.get('d', 0) or 0 for w in weeks),
                }
        return None

    def get_user_events(self, username: str, per_page: int = 100) -> List[Dict[str, Any]]:
        try:
            events = self._get(f"/users/{username}/events/public", {'per_page': per_page})
        except AuthenticationError:
            raise
        except (ActivitySourceError, requests.RequestException, ValueError) as e:
            logger.warning(f"Event feed unavailable for {username}: {e}")
            return []
        return events if isinstance(events, list) else []

    def get_repo_commits(self, owner: str, repo: str, since: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {'since': since} if since else {}
        return self._get_paginated(f"/repos/{owner}/{repo}/commits", params)

    def get_repo_pull_requests(self, owner: str, repo: str, state: str = "all") -> List[Dict[str, Any]]:
        return self._get_paginated(f"/repos/{owner}/{repo}/pulls", {'state': state, 'sort': 'updated'})

    def get_pull_request_details(self, owner: str, repo: str, number: int) -> Dict[str, Any]:
        return self._get(f"/repos/{owner}/{repo}/pulls/{number}")

    def get_commit_details(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        return self._get(f"/repos/{owner}/{repo}/commits/{sha}")

    def close(self):
        self.session.close()
