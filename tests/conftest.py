"""Shared fakes for the policy gate tests. Nothing here touches the network."""
from __future__ import annotations

import dataclasses
import importlib.util
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from pkg.policygate.config import PolicyConfig
from pkg.policygate.errors import NotFoundError
from pkg.policygate.github import GitHubAPIError

SCRIPTS_DIR = Path(__file__).parent.parent / "scripts"

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
BOT = "github-actions[bot]"
DEFAULT_BRANCH = "refs/heads/main"
MERGE_REF = "refs/pull/7/merge"
HEAD_REF = "refs/pull/7/head"


def _import_script(name: str, filename: str):
    """Import a script file as a module using importlib."""
    spec = importlib.util.spec_from_file_location(name, SCRIPTS_DIR / filename)
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


def iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def make_alert(number: int, days_old: float, *, now: datetime = NOW) -> dict:
    return {
        "number": number,
        "html_url": f"https://github.com/acme/widgets/security/code-scanning/{number}",
        "created_at": iso(now - timedelta(days=days_old)),
        "state": "open",
    }


def make_analysis(analysis_id: int, days_old: float, *, now: datetime = NOW) -> dict:
    return {
        "id": analysis_id,
        "tool": {"name": "CodeQL"},
        "created_at": iso(now - timedelta(days=days_old)),
        "url": f"https://api.github.com/repos/acme/widgets/code-scanning/analyses/{analysis_id}",
    }


def make_config(**overrides) -> PolicyConfig:
    base = PolicyConfig(
        org="acme",
        repo="widgets",
        pull_request=7,
        token="secret-token",
        default_branch=DEFAULT_BRANCH,
        threshold="high",
        max_age_days=30,
        attempt=1,
        visibility="private",
        message="Please remediate the findings below.",
    )
    return dataclasses.replace(base, **overrides)


class FakeRepository:
    """In-memory stand-in for the GitHub client."""

    def __init__(self) -> None:
        self.alerts: dict[tuple[str, str], list[dict]] = {}
        self.analyses: dict[str, list[dict]] = {}
        self.missing_refs: set[str] = set()
        self.properties: dict[str, object] = {}
        self.comments: list[dict] = []
        self.fail_deletes: set[int] = set()
        self.fail_create = False
        self.fail_list_comments = False
        self.findings_error: Exception | None = None
        self.calls: list[tuple] = []
        self._next_id = 1000

    def add_alerts(self, ref: str, severity: str, *alerts: dict) -> None:
        self.alerts.setdefault((ref, severity), []).extend(alerts)

    def add_comment(self, body: str, *, author: str = BOT) -> dict:
        self._next_id += 1
        comment = {"id": self._next_id, "user": {"login": author}, "body": body}
        self.comments.append(comment)
        return comment

    def list_findings(self, owner, repo, ref, severity, page_size=100):
        self.calls.append(("list_findings", ref, severity))
        if ref in self.missing_refs:
            raise NotFoundError(f"no analysis found for {ref}")
        if self.findings_error is not None:
            raise self.findings_error
        return iter(list(self.alerts.get((ref, severity), [])))

    def list_recent_analyses(self, owner, repo, ref, tool_name, page_size=1):
        self.calls.append(("list_recent_analyses", ref, tool_name))
        if ref in self.missing_refs:
            raise NotFoundError(f"no analysis found for {ref}")
        return list(self.analyses.get(ref, []))[:page_size]

    def list_issue_comments(self, owner, repo, issue_number, page_size=100):
        self.calls.append(("list_issue_comments", issue_number))
        if self.fail_list_comments:
            raise GitHubAPIError("HTTP 502 from GET comments", status=502)
        return iter(list(self.comments))

    def create_comment(self, owner, repo, issue_number, body):
        self.calls.append(("create_comment", issue_number))
        if self.fail_create:
            raise GitHubAPIError("HTTP 403 from POST comments", status=403)
        return self.add_comment(body)

    def delete_comment(self, owner, repo, comment_id):
        self.calls.append(("delete_comment", comment_id))
        if comment_id in self.fail_deletes:
            raise GitHubAPIError("HTTP 500 from DELETE comment", status=500)
        self.comments = [c for c in self.comments if c["id"] != comment_id]

    def get_org_property(self, owner, repo, property_name):
        self.calls.append(("get_org_property", property_name))
        return self.properties.get(property_name)

    def comments_containing(self, text: str) -> list[dict]:
        return [c for c in self.comments if text in c["body"]]


@pytest.fixture
def fake_repo() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def clock():
    return lambda: NOW
