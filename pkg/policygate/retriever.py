"""Finding retrieval and age classification.

Retrieval failures are never skipped: a dropped page would turn into a false pass.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Iterable, Sequence

from . import actions
from .errors import NotFoundError, RetrievalError
from .github import DEFAULT_PAGE_SIZE, GitHubAPIError, RepositoryService
from .refs import RefMode, RefStrategy

if TYPE_CHECKING:
    from .config import PolicyConfig

Clock = Callable[[], datetime]

ONE_DAY = timedelta(days=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Finding:
    """Data class for a classified code scanning alert."""
    id: object
    url: str
    created_at: datetime
    age_days: int
    exceeds_threshold: bool
    severity: str | None = None
    ref: str | None = None


@dataclass(frozen=True)
class Analysis:
    """Data class for the most recent analysis on a ref."""
    id: object
    ref: str
    created_at: datetime
    age_days: float
    url: str = ""

    def is_fresh(self, max_age_days: int) -> bool:
        return self.age_days <= max_age_days


def parse_timestamp(value: object) -> datetime:
    """Parse an ISO 8601 API timestamp into an aware UTC datetime."""
    if not isinstance(value, str) or not value.strip():
        raise RetrievalError(f"malformed response: missing created_at ({value!r})")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise RetrievalError(f"malformed response: invalid created_at '{value}'") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def age_in_days(created_at: datetime, now: datetime) -> int:
    """Whole days elapsed, floored."""
    return (now - created_at) // ONE_DAY


def classify(
    raw: object,
    *,
    max_age_days: int,
    now: datetime,
    severity: str | None = None,
    ref: str | None = None,
) -> Finding:
    if not isinstance(raw, dict):
        raise RetrievalError("malformed response: finding is not an object")
    identifier = raw.get("number", raw.get("id"))
    if identifier is None:
        raise RetrievalError("malformed response: finding has no number")
    created_at = parse_timestamp(raw.get("created_at"))
    days = age_in_days(created_at, now)
    return Finding(
        id=identifier,
        url=str(raw.get("html_url") or raw.get("url") or ""),
        created_at=created_at,
        age_days=days,
        exceeds_threshold=days > max_age_days,
        severity=severity,
        ref=ref,
    )


def dedupe_findings(findings: Iterable[Finding]) -> list[Finding]:
    """Keep the first finding per identifier, preserving order."""
    seen: set[str] = set()
    out: list[Finding] = []
    for finding in findings:
        key = str(finding.id)
        if key in seen:
            continue
        seen.add(key)
        out.append(finding)
    return out


class FindingRetriever:
    def __init__(
        self,
        client: RepositoryService,
        owner: str,
        repo: str,
        *,
        max_age_days: int,
        clock: Clock = utcnow,
        page_size: int = DEFAULT_PAGE_SIZE,
        dedupe: bool = False,
    ) -> None:
        self._client = client
        self.owner = owner
        self.repo = repo
        self.max_age_days = max_age_days
        self._clock = clock
        self.page_size = page_size
        self.dedupe = dedupe

    def _list_alerts(self, ref: str, severity: str) -> list[dict]:
        try:
            return list(
                self._client.list_findings(self.owner, self.repo, ref, severity, self.page_size)
            )
        except NotFoundError:
            raise
        except (GitHubAPIError, OSError) as exc:
            raise RetrievalError(
                f"Failed to retrieve code scanning alerts for {self.owner}/{self.repo}@{ref} "
                f"({severity}): {exc}"
            ) from exc

    def retrieve(
        self,
        refs: Sequence[str],
        severities: Sequence[str],
        created_since: datetime | None = None,
    ) -> list[Finding]:
        """Fetch and classify findings for every (severity, ref) pair.

        Severities are the outer loop and refs the inner loop; each pair keeps the
        remote's pagination order. Findings created before ``created_since`` are dropped.
        """
        now = self._clock()
        findings: list[Finding] = []
        for severity in severities:
            for ref in refs:
                actions.info(f"Retrieving {severity} alerts for ref {ref}")
                for raw in self._list_alerts(ref, severity):
                    finding = classify(
                        raw,
                        max_age_days=self.max_age_days,
                        now=now,
                        severity=severity,
                        ref=ref,
                    )
                    if created_since is not None and finding.created_at < created_since:
                        continue
                    findings.append(finding)
        return dedupe_findings(findings) if self.dedupe else findings

    def collect(
        self,
        strategy: RefStrategy,
        config: "PolicyConfig",
        severities: Sequence[str],
        created_since: datetime | None = None,
    ) -> list[Finding]:
        """Retrieve findings across the refs the strategy selects for this run."""
        refs = strategy.ref_set(config)
        if strategy.mode is not RefMode.FALLBACK or len(refs) == 1:
            return self.retrieve(refs, severities, created_since)

        resolution = strategy.probe(
            config, lambda ref: self.retrieve((ref,), severities, created_since)
        )
        if resolution.found:
            actions.info(f"Using findings from ref {resolution.ref}")
        elif resolution.missing and set(resolution.missing) == set(refs):
            raise NotFoundError(
                f"none of the refs {list(refs)} exist for {self.owner}/{self.repo}"
            )
        return resolution.items

    def most_recent_analysis(self, strategy: RefStrategy, config: "PolicyConfig") -> Analysis | None:
        """Return the newest analysis for ``config.tool_name``, or None when no ref has one."""

        def query(ref: str) -> list[dict]:
            actions.info(f"Retrieving most recent {config.tool_name} analysis for ref {ref}")
            try:
                items = self._client.list_recent_analyses(
                    self.owner, self.repo, ref, config.tool_name, 1
                )
            except NotFoundError:
                raise
            except (GitHubAPIError, OSError) as exc:
                raise RetrievalError(
                    f"Failed to retrieve most recent analysis for {self.owner}/{self.repo}@{ref}: {exc}"
                ) from exc
            return list(items)[:1]

        resolution = strategy.probe(config, query)
        if not resolution.found:
            return None
        raw = resolution.items[0]
        if not isinstance(raw, dict):
            raise RetrievalError("malformed response: analysis is not an object")
        created_at = parse_timestamp(raw.get("created_at"))
        elapsed = self._clock() - created_at
        return Analysis(
            id=raw.get("id"),
            ref=str(resolution.ref),
            created_at=created_at,
            age_days=elapsed / ONE_DAY,
            url=str(raw.get("url") or ""),
        )
