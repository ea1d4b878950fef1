"""
GitHub pull request source for the extensions repository.

Provides:
- list_pull_requests(): recently closed PRs (merged or not) as ChangeRecords
- list_changed_files(): a PR's changed files, for slug resolution and
  removal confirmation

The PR list is the pass's primary input, so a rate-limit response there is
raised (RateLimitExceeded) for the pipeline to record. Changed-file lookups
are per-record enrichment and degrade to None instead.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from catalog.models import ChangedFile, ChangeRecord
from collectors.base import BaseFetcher, RateLimitExceeded, RateLimitInfo, reset_hint_from_response
from collectors.retry_strategy import RetryConfig, is_rate_limit_response, is_retryable_error

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
DEFAULT_REPO = "raycast/extensions"

GITHUB_MAX_RETRIES = 3
PR_FILES_PAGE_SIZE = 100


class GitHubPullsSource(BaseFetcher):
    """
    Usage:
        async with GitHubPullsSource(github_token=os.getenv("GITHUB_TOKEN")) as pulls:
            records = await pulls.list_pull_requests(per_page=50)
            files = await pulls.list_changed_files(records[0].reference_id)
    """

    def __init__(
        self,
        repo: str = DEFAULT_REPO,
        github_token: Optional[str] = None,
        retry_config: Optional[RetryConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = GITHUB_API_BASE,
    ):
        """
        Args:
            repo: "owner/name" of the extensions repository
            github_token: Optional token (or GITHUB_TOKEN env var); raises the API quota
            retry_config: Retry behavior for changed-file lookups
            client: Shared httpx client
            base_url: GitHub API root
        """
        if "/" not in repo:
            raise ValueError(f"repo must look like 'owner/name', got {repo!r}")

        self.github_token = github_token or os.getenv("GITHUB_TOKEN")
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.github_token:
            headers["Authorization"] = f"Bearer {self.github_token}"

        super().__init__(
            fetcher_name="github_pulls",
            api_name="github_authenticated" if self.github_token else "github",
            retry_config=retry_config,
            client=client,
            headers=headers,
        )
        self.repo = repo
        self.base_url = base_url.rstrip("/")

    def pulls_url(self) -> str:
        return f"{self.base_url}/repos/{self.repo}/pulls"

    def files_url(self, reference_id: int) -> str:
        return f"{self.base_url}/repos/{self.repo}/pulls/{reference_id}/files"

    @retry(
        stop=stop_after_attempt(GITHUB_MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception(is_retryable_error),
        reraise=True,
    )
    async def _github_request(self, url: str, params: Dict[str, Any]) -> Any:
        """
        Rate-limited GET that raises on failure.

        Retries 5xx and network errors; rate limits are raised immediately.
        """
        await self.rate_limiter.acquire()
        logger.debug(f"GitHub API: GET {url}")
        response = await self._send(url, params)

        info = RateLimitInfo.from_headers(response.headers)
        if info is not None:
            self.last_rate_limit = info
            if info.remaining is not None and info.remaining < 10:
                logger.warning(f"GitHub rate limit low: {info.remaining} remaining")

        if is_rate_limit_response(response):
            raise RateLimitExceeded(url, response.status_code, reset_hint_from_response(response))

        response.raise_for_status()
        return response.json()

    async def list_pull_requests(self, per_page: int = 50) -> Optional[List[ChangeRecord]]:
        """
        Recently closed pull requests, most recently updated first.

        Unmerged PRs are included; the classifier discards them. Malformed
        pull requests are skipped.

        Returns:
            ChangeRecords, or None when the list could not be fetched

        Raises:
            RateLimitExceeded: on 403/429
        """
        params = {
            "state": "closed",
            "sort": "updated",
            "direction": "desc",
            "per_page": per_page,
        }
        try:
            payload = await self._github_request(self.pulls_url(), params)
        except RateLimitExceeded:
            raise
        except Exception as e:
            logger.warning(f"Pull request list failed: {e}")
            return None

        if not isinstance(payload, list):
            logger.warning(f"Unexpected pull request payload: {type(payload).__name__}")
            return None

        records = []
        skipped = 0
        for pr in payload:
            try:
                record = ChangeRecord.from_pull_request(pr)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.debug(f"Malformed pull request: {e}")
                record = None
            if record is None:
                skipped += 1
                continue
            records.append(record)

        if skipped:
            logger.warning(f"Skipped {skipped} malformed pull requests")
        logger.info(f"Fetched {len(records)} closed pull requests from {self.repo}")
        return records

    async def list_changed_files(self, reference_id: int) -> Optional[List[ChangedFile]]:
        """Changed files of a pull request (first 100), or None on any failure."""
        payload = await self.get_json(
            self.files_url(reference_id),
            params={"per_page": PR_FILES_PAGE_SIZE},
        )
        if not isinstance(payload, list):
            return None

        return [
            ChangedFile(filename=f["filename"], status=f.get("status", ""))
            for f in payload
            if isinstance(f, dict) and isinstance(f.get("filename"), str)
        ]
