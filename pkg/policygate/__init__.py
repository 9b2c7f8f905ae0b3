"""Code scanning policy gates for pull requests."""

from .config import PolicyConfig
from .errors import ConfigError, ErrorKind, NotFoundError, PolicyGateError, ReportError, RetrievalError
from .gates import GATES, AnalysisFreshnessGate, CodeScanningGate, PolicyGate, RequiredPropertiesGate
from .github import GitHubAPIError, GitHubClient, RateLimitError, RepositoryService
from .refs import RefMode, RefResolution, RefStrategy
from .report import Report, ReportLifecycle
from .retriever import Analysis, Finding, FindingRetriever
from .severity import SEVERITY_CASCADE, resolve
from .verdict import GateResult, Outcome, Verdict, decide

__version__ = "0.1.0"

__all__ = [
    "Analysis",
    "AnalysisFreshnessGate",
    "CodeScanningGate",
    "ConfigError",
    "ErrorKind",
    "Finding",
    "FindingRetriever",
    "GATES",
    "GateResult",
    "GitHubAPIError",
    "GitHubClient",
    "NotFoundError",
    "Outcome",
    "PolicyConfig",
    "PolicyGate",
    "PolicyGateError",
    "RateLimitError",
    "RefMode",
    "RefResolution",
    "RefStrategy",
    "Report",
    "ReportError",
    "ReportLifecycle",
    "RepositoryService",
    "RequiredPropertiesGate",
    "RetrievalError",
    "SEVERITY_CASCADE",
    "Verdict",
    "decide",
    "resolve",
]
