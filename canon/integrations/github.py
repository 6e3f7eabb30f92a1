# =============================================================================
# GitHub Issues Integration
# =============================================================================
#
# Setup:
#   1. Create a fine-grained token with "Issues: read and write" on the repo
#   2. Set env vars:
#      - CONFLICT_SINK=github
#      - GITHUB_TOKEN=...
#      - GITHUB_REPOSITORY=owner/name
#
# Each issue body carries a hidden marker with the report key, which is how
# open reports are found again.
#
# =============================================================================

import logging

import httpx

from canon.core.errors import PersistenceFailure
from canon.core.models import ConflictReport
from canon.services.conflicts import BASE_LABEL, ConflictSink

logger = logging.getLogger(__name__)


def report_marker(key: str) -> str:
    return f"<!-- canon-report: {key} -->"


class GitHubIssueSink(ConflictSink):
    """File reports as GitHub issues."""

    def __init__(
        self,
        repository: str,
        token: str,
        api_url: str = "https://api.github.com",
        label: str = BASE_LABEL,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        if not repository or "/" not in repository:
            raise ValueError("GITHUB_REPOSITORY must look like owner/name")
        if not token:
            raise ValueError("GITHUB_TOKEN not set")

        self.repository = repository
        self.label = label
        self.client = httpx.Client(
            base_url=api_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise PersistenceFailure(f"GitHub request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"GitHub {method} {url} failed: {response.text}")
            raise PersistenceFailure(
                f"GitHub {method} {url} returned {response.status_code}",
                context={"status": response.status_code},
            )
        return response

    def find_open(self, key: str) -> str | None:
        marker = report_marker(key)
        page = 1
        while True:
            response = self._request(
                "GET",
                f"/repos/{self.repository}/issues",
                params={"state": "open", "labels": self.label, "per_page": 100, "page": page},
            )
            issues = response.json()
            for issue in issues:
                if marker in (issue.get("body") or ""):
                    return issue.get("html_url") or str(issue.get("number"))
            if len(issues) < 100:
                return None
            page += 1

    def create(self, report: ConflictReport) -> str:
        labels = report.labels if self.label in report.labels else [self.label, *report.labels]
        response = self._request(
            "POST",
            f"/repos/{self.repository}/issues",
            json={
                "title": report.title,
                "body": f"{report.body}\n{report_marker(report.key)}\n",
                "labels": labels,
            },
        )
        issue = response.json()
        logger.info(f"Created issue #{issue.get('number')}: {report.title}")
        return issue.get("html_url") or str(issue.get("number"))
