"""PR report rendering and lifecycle.

A gate identifies its own comments by a marker string. Every run deletes the prior
marked comments authored by the automation account, then posts one fresh report, so a
PR carries at most one live report per gate.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Iterable

from . import actions
from .config import DEFAULT_REPORT_AUTHOR
from .errors import NotFoundError, ReportError
from .github import DEFAULT_PAGE_SIZE, GitHubAPIError, RepositoryService
from .retriever import Finding

REPORT_HEADING = "Code Scanning Policy Findings"
TABLE_HEADERS = ("Alert Number", "URL", "Age", "Policy Violation")


def ensure_marker(body: str, marker: str) -> str:
    """Prefix an HTML comment carrying ``marker`` unless the body already contains it."""
    if not marker or marker in body:
        return body
    return f"<!-- {marker} -->\n{body}"


def _cell(value: str) -> str:
    return " ".join(str(value).split()).replace("|", "\\|")


def _link(url: str, visibility: str) -> str:
    # Public repos hide the raw URL behind "Link"; private repos show it in full.
    text = "Link" if visibility == "public" else url
    return f'<a href="{html.escape(url, quote=True)}">{html.escape(text)}</a>'


@dataclass(frozen=True)
class Report:
    message: str
    findings: tuple[Finding, ...]
    visibility: str = "private"
    heading: str = REPORT_HEADING
    marker: str = ""

    def rows(self) -> list[tuple[str, str, str, str]]:
        return [
            (
                str(f.id),
                _link(f.url, self.visibility),
                f"{f.age_days} Days",
                "Yes" if f.exceeds_threshold else "No",
            )
            for f in self.findings
        ]

    def render(self) -> str:
        lines = [f"# {self.heading}", ""]
        if self.message:
            lines.extend([self.message, ""])
        lines.extend(["---", ""])
        lines.append("| " + " | ".join(TABLE_HEADERS) + " |")
        lines.append("|" + " --- |" * len(TABLE_HEADERS))
        for row in self.rows():
            lines.append("| " + " | ".join(_cell(c) for c in row) + " |")
        return ensure_marker("\n".join(lines) + "\n", self.marker)


def _author_login(comment: dict) -> str:
    user = comment.get("user")
    if isinstance(user, dict):
        return str(user.get("login") or "")
    return ""


def find_marked_comments(comments: Iterable[object], marker: str, author: str) -> list[dict]:
    """Comments by ``author`` whose body contains ``marker``, in listing order."""
    out: list[dict] = []
    for comment in comments:
        if not isinstance(comment, dict):
            continue
        if _author_login(comment) != author:
            continue
        if marker in str(comment.get("body") or ""):
            out.append(comment)
    return out


class ReportLifecycle:
    def __init__(
        self,
        client: RepositoryService,
        owner: str,
        repo: str,
        *,
        author: str = DEFAULT_REPORT_AUTHOR,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._client = client
        self.owner = owner
        self.repo = repo
        self.author = author
        self.page_size = page_size

    def _pr_label(self, pr_number: int) -> str:
        return f"{self.owner}/{self.repo}/pull/{pr_number}"

    def find_prior(self, pr_number: int, marker: str) -> list[dict]:
        comments = self._client.list_issue_comments(self.owner, self.repo, pr_number, self.page_size)
        return find_marked_comments(comments, marker, self.author)

    def clear(self, pr_number: int, marker: str) -> int:
        """Delete prior marked comments. Best effort: failures are logged, never raised."""
        actions.info(f"Listing previous comments for {self._pr_label(pr_number)}")
        try:
            prior = self.find_prior(pr_number, marker)
        except (GitHubAPIError, NotFoundError, OSError) as exc:
            actions.warning(f"Failed to list comments for {self._pr_label(pr_number)}: {exc}")
            return 0

        deleted = 0
        for comment in prior:
            comment_id = comment.get("id")
            if isinstance(comment_id, bool) or not isinstance(comment_id, int):
                actions.warning(f"Skipping comment with non-numeric id {comment_id!r}")
                continue
            actions.info(f"Deleting previous comment {comment_id} for {self._pr_label(pr_number)}")
            try:
                self._client.delete_comment(self.owner, self.repo, comment_id)
            except (GitHubAPIError, NotFoundError, OSError) as exc:
                actions.warning(f"Failed to delete comment {comment_id}: {exc}")
                continue
            deleted += 1
        return deleted

    def post(self, pr_number: int, body: str) -> dict:
        actions.info(f"Creating comment for {self._pr_label(pr_number)}")
        try:
            return self._client.create_comment(self.owner, self.repo, pr_number, body)
        except (GitHubAPIError, NotFoundError, OSError) as exc:
            raise ReportError(f"Failed to create comment: {exc}") from exc

    def replace(self, pr_number: int, marker: str, body: str) -> dict:
        """Supersede every prior report carrying ``marker`` with ``body``.

        Raises:
            ReportError: marker is empty, or the new comment could not be created.
        """
        if not marker:
            raise ReportError("report marker cannot be empty")
        self.clear(pr_number, marker)
        return self.post(pr_number, ensure_marker(body, marker))
