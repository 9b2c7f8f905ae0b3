"""Severity cascade: a configured threshold selects itself plus every more severe level."""

from __future__ import annotations

from .errors import ConfigError

SEVERITY_ORDER: tuple[str, ...] = (
    "critical",
    "high",
    "medium",
    "low",
    "warning",
    "note",
    "error",
)

SEVERITY_CASCADE: dict[str, tuple[str, ...]] = {
    level: SEVERITY_ORDER[: index + 1] for index, level in enumerate(SEVERITY_ORDER)
}


def is_threshold(value: object) -> bool:
    return isinstance(value, str) and value.strip().lower() in SEVERITY_CASCADE


def resolve(threshold: str) -> tuple[str, ...]:
    """Return the ordered severities to fetch for ``threshold``.

    Raises:
        ConfigError: threshold is not a key of the cascade.
    """
    key = str(threshold or "").strip().lower()
    try:
        return SEVERITY_CASCADE[key]
    except KeyError:
        raise ConfigError(
            f"threshold must be one of {list(SEVERITY_ORDER)}, got '{threshold}'"
        ) from None
