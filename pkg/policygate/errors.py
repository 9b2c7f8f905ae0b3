"""Error taxonomy for policy gates.

Callers branch on ``exc.kind`` rather than on message text.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    CONFIG = "config"
    NOT_FOUND = "not_found"
    RETRIEVAL = "retrieval"
    REPORT = "report"


class PolicyGateError(RuntimeError):
    """Base class for every error a gate run can surface."""

    kind: ErrorKind = ErrorKind.RETRIEVAL


class ConfigError(PolicyGateError):
    """Missing or invalid input. Raised before any network call."""

    kind = ErrorKind.CONFIG


class NotFoundError(PolicyGateError):
    """The queried ref (or resource) does not exist on the remote."""

    kind = ErrorKind.NOT_FOUND


class RetrievalError(PolicyGateError):
    """Listing findings or analyses failed for a reason other than a missing ref."""

    kind = ErrorKind.RETRIEVAL


class ReportError(PolicyGateError):
    """Posting or deleting a PR comment failed."""

    kind = ErrorKind.REPORT
