"""Policy gates.

Each gate runs: resolve refs -> retrieve -> decide -> replace the PR report. A gate
never fails silently: failing outcomes post a comment, and fatal retrieval errors make
one best-effort attempt to say so on the PR before propagating.
"""

from __future__ import annotations

from typing import Any

from . import actions
from .config import BASE_REQUIRED, PolicyConfig
from .errors import NotFoundError, PolicyGateError, ReportError, RetrievalError
from .github import GitHubAPIError, RepositoryService
from .refs import RefStrategy
from .report import REPORT_HEADING, Report, ReportLifecycle
from .retriever import Clock, FindingRetriever, utcnow
from .severity import resolve
from .verdict import GateResult, Outcome, decide


class PolicyGate:
    name = "policy"
    heading = "Policy Check"
    default_marker = ""
    required_inputs: frozenset[str] = BASE_REQUIRED

    def __init__(
        self,
        client: RepositoryService,
        config: PolicyConfig,
        *,
        strategy: RefStrategy | None = None,
        clock: Clock = utcnow,
        reports: ReportLifecycle | None = None,
    ) -> None:
        self.client = client
        self.config = config
        self.strategy = strategy or RefStrategy.for_config(config)
        self.clock = clock
        self.reports = reports or ReportLifecycle(
            client, config.org, config.repo, author=config.report_author
        )

    @property
    def marker(self) -> str:
        return self.config.report_marker or self.default_marker

    def evaluate(self) -> GateResult:
        raise NotImplementedError

    def run(self) -> GateResult:
        """Evaluate the gate. Fatal retrieval errors are reported on the PR, then re-raised."""
        try:
            return self.evaluate()
        except (NotFoundError, RetrievalError) as exc:
            self._report_failure(exc)
            raise

    def _report_failure(self, exc: PolicyGateError) -> None:
        body = (
            f"# {self.heading}\n\n"
            f"The {self.name} policy check could not complete ({exc.kind.value}): {exc}\n"
        )
        try:
            self.reports.replace(self.config.pull_request, self.marker, body)
        except ReportError as report_exc:
            actions.warning(f"Unable to report failure on the pull request: {report_exc}")

    def _post(self, body: str) -> None:
        self.reports.replace(self.config.pull_request, self.marker, body)


class CodeScanningGate(PolicyGate):
    """Fail when open alerts at or above the threshold are older than the allowed age."""

    name = "code-scanning"
    heading = REPORT_HEADING
    default_marker = REPORT_HEADING
    required_inputs = BASE_REQUIRED | {
        "default_branch",
        "threshold",
        "max_age_days",
        "visibility",
        "message",
    }

    def evaluate(self) -> GateResult:
        cfg = self.config
        severities = resolve(cfg.threshold or "")
        refs = self.strategy.ref_set(cfg)
        actions.info(
            f"Retrieving code scanning alerts for {cfg.full_name}/pull/{cfg.pull_request} "
            f"with refs {list(refs)}"
        )
        retriever = FindingRetriever(
            self.client,
            cfg.org,
            cfg.repo,
            max_age_days=cfg.max_age_days,
            clock=self.clock,
            dedupe=cfg.dedupe,
        )
        verdict = decide(retriever.collect(self.strategy, cfg, severities))

        if not verdict.findings:
            reason = f"No alerts found for {cfg.full_name}"
            actions.info(reason)
            return GateResult(self.name, verdict.outcome, reason, verdict=verdict)

        actions.info(
            f"Found {len(verdict.findings)} alerts for {cfg.full_name} with {cfg.threshold} threshold"
        )
        report = Report(
            message=cfg.message,
            findings=verdict.findings,
            visibility=cfg.visibility,
            heading=self.heading,
            marker=self.marker,
        )
        self._post(report.render())

        if verdict.passed:
            reason = f"No code scanning policy violations among {len(verdict.findings)} alerts for {cfg.full_name}"
        else:
            reason = f"Found {len(verdict.violations)} code scanning policy violations for {cfg.full_name}"
        return GateResult(self.name, verdict.outcome, reason, verdict=verdict, report_posted=True)


class AnalysisFreshnessGate(PolicyGate):
    """Fail when the most recent analysis is missing or older than ``max_age_days``."""

    name = "codeql"
    heading = "Code Scanning Analysis Policy"
    default_marker = "Code Scanning Analysis Policy"
    required_inputs = BASE_REQUIRED | {"default_branch", "max_age_days", "message"}

    def evaluate(self) -> GateResult:
        cfg = self.config
        retriever = FindingRetriever(
            self.client, cfg.org, cfg.repo, max_age_days=cfg.max_age_days, clock=self.clock
        )
        analysis = retriever.most_recent_analysis(self.strategy, cfg)
        if analysis is None:
            self._post(cfg.message)
            return GateResult(
                self.name,
                Outcome.NO_ANALYSIS,
                "No analysis found, setting status to failed",
                report_posted=True,
            )
        if not analysis.is_fresh(cfg.max_age_days):
            self._post(cfg.message)
            return GateResult(
                self.name,
                Outcome.STALE_ANALYSIS,
                f"Most recent analysis is older than {cfg.max_age_days} days, setting status to failed",
                analysis=analysis,
                report_posted=True,
            )
        return GateResult(
            self.name,
            Outcome.PASSED,
            f"Analysis is within {cfg.max_age_days} days, setting status to success",
            analysis=analysis,
        )


def parse_maintainers(value: Any) -> list[str]:
    """Split a comma separated (or multi-select) property value into trimmed entries."""
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple)) else str(value).split(",")
    return [str(item).strip() for item in items if str(item).strip()]


class RequiredPropertiesGate(PolicyGate):
    """Fail when the repository has no usable ``security_maintainers`` custom property."""

    name = "required-properties"
    heading = "Policy: Required Security Maintainers"
    default_marker = "Policy: Required Security Maintainers"
    property_name = "security_maintainers"
    required_inputs = BASE_REQUIRED | {"message"}

    def evaluate(self) -> GateResult:
        cfg = self.config
        self.reports.clear(cfg.pull_request, self.marker)

        actions.info(f"Checking for required properties for {cfg.full_name}")
        try:
            value = self.client.get_org_property(cfg.org, cfg.repo, self.property_name)
        except NotFoundError:
            raise
        except (GitHubAPIError, OSError) as exc:
            raise RetrievalError(
                f"Failed to retrieve repository properties for {cfg.full_name}: {exc}"
            ) from exc

        if value is None:
            self._post(cfg.message)
            return GateResult(
                self.name,
                Outcome.MISSING_PROPERTY,
                "Security Maintainers property not found",
                report_posted=True,
            )
        maintainers = parse_maintainers(value)
        if not any("@" in maintainer for maintainer in maintainers):
            self._post(cfg.message)
            return GateResult(
                self.name,
                Outcome.INVALID_PROPERTY,
                "Security Maintainers property is empty or does not contain any valid email addresses",
                report_posted=True,
            )
        return GateResult(self.name, Outcome.PASSED, "Security Maintainers property found")


GATES: dict[str, type[PolicyGate]] = {
    CodeScanningGate.name: CodeScanningGate,
    AnalysisFreshnessGate.name: AnalysisFreshnessGate,
    RequiredPropertiesGate.name: RequiredPropertiesGate,
}
