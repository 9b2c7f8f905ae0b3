"""Per-run gate configuration.

Inputs arrive as strings (CLI flags, ``INPUT_*`` env vars) or as native YAML values;
``PolicyConfig.from_dict`` coerces both into one immutable object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml

from .errors import ConfigError
from .github import DEFAULT_API_URL
from .refs import RefMode
from .severity import SEVERITY_ORDER, is_threshold

DEFAULT_REPORT_AUTHOR = "github-actions[bot]"
DEFAULT_TOOL_NAME = "CodeQL"
VISIBILITIES = {"public", "private"}

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}

# Canonical field name -> accepted input spellings, first match wins.
INPUT_ALIASES: dict[str, tuple[str, ...]] = {
    "org": ("org", "owner"),
    "repo": ("repo",),
    "pull_request": ("pull_request", "pr"),
    "token": ("token",),
    "default_branch": ("default_branch",),
    "threshold": ("threshold",),
    "max_age_days": ("max_age_days", "age", "period"),
    "attempt": ("attempt",),
    "visibility": ("visibility",),
    "message": ("message",),
    "report_marker": ("report_marker", "marker"),
    "ref_mode": ("ref_mode",),
    "dedupe": ("dedupe",),
    "tool_name": ("tool_name",),
    "report_author": ("report_author",),
    "api_url": ("api_url",),
}

BASE_REQUIRED = frozenset({"org", "repo", "pull_request", "token"})


def _pick(raw: Mapping[str, Any], name: str) -> Any:
    for key in INPUT_ALIASES[name]:
        value = raw.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _coerce_str(value: Any, field_name: str) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ConfigError(f"{field_name} must be a string")
    normalized = str(value).strip()
    if not normalized:
        raise ConfigError(f"{field_name} cannot be empty")
    return normalized


def _coerce_optional_str(value: Any, field_name: str, default: str) -> str:
    if value is None:
        return default
    return _coerce_str(value, field_name)


def _coerce_int(value: Any, field_name: str, *, minimum: int) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{field_name} must be an integer")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            raise ConfigError(f"{field_name} must be an integer, got '{value}'") from None
    else:
        raise ConfigError(f"{field_name} must be an integer")
    if parsed < minimum:
        raise ConfigError(f"{field_name} must be >= {minimum}")
    return parsed


def _coerce_bool(value: Any, field_name: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ConfigError(f"{field_name} must be a boolean, got '{value}'")


def _coerce_choice(value: Any, field_name: str, choices: Iterable[str], default: str) -> str:
    if value is None:
        return default
    text = str(value).strip().lower()
    allowed = sorted(choices)
    if text not in allowed:
        raise ConfigError(f"{field_name} must be one of {allowed}, got '{value}'")
    return text


def _coerce_threshold(value: Any) -> str | None:
    if value is None:
        return None
    if not is_threshold(value):
        raise ConfigError(f"threshold must be one of {list(SEVERITY_ORDER)}, got '{value}'")
    return str(value).strip().lower()


def _coerce_message(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "\n".join(str(line).strip() for line in value)
    return str(value).strip()


@dataclass(frozen=True)
class PolicyConfig:
    """Immutable configuration for one gate run."""

    org: str
    repo: str
    pull_request: int
    token: str = field(default="", repr=False)
    default_branch: str = ""
    threshold: str | None = None
    max_age_days: int = 0
    attempt: int = 1
    visibility: str = "private"
    message: str = ""
    report_marker: str = ""
    ref_mode: RefMode = RefMode.SINGLE
    dedupe: bool = False
    tool_name: str = DEFAULT_TOOL_NAME
    report_author: str = DEFAULT_REPORT_AUTHOR
    api_url: str = DEFAULT_API_URL

    @property
    def full_name(self) -> str:
        return f"{self.org}/{self.repo}"

    @classmethod
    def from_dict(
        cls,
        raw: Mapping[str, Any],
        *,
        required: Iterable[str] = BASE_REQUIRED,
    ) -> "PolicyConfig":
        """Build a config from raw inputs.

        ``required`` names canonical fields (see ``INPUT_ALIASES``) that must be present.

        Raises:
            ConfigError: a required input is missing or any input is invalid.
        """
        if not isinstance(raw, Mapping):
            raise ConfigError("configuration must be a mapping")

        values = {name: _pick(raw, name) for name in INPUT_ALIASES}
        missing = sorted(name for name in set(required) if values.get(name) is None)
        if missing:
            raise ConfigError(f"Failed to retrieve input variables: missing {', '.join(missing)}")

        ref_mode = _coerce_choice(
            values["ref_mode"], "ref_mode", (m.value for m in RefMode), RefMode.SINGLE.value
        )
        max_age = values["max_age_days"]
        return cls(
            org=_coerce_str(values["org"], "org"),
            repo=_coerce_str(values["repo"], "repo"),
            pull_request=_coerce_int(values["pull_request"], "pull_request", minimum=1),
            token=_coerce_optional_str(values["token"], "token", ""),
            default_branch=_coerce_optional_str(values["default_branch"], "default_branch", ""),
            threshold=_coerce_threshold(values["threshold"]),
            max_age_days=0 if max_age is None else _coerce_int(max_age, "max_age_days", minimum=0),
            attempt=1 if values["attempt"] is None else _coerce_int(values["attempt"], "attempt", minimum=1),
            visibility=_coerce_choice(values["visibility"], "visibility", VISIBILITIES, "private"),
            message=_coerce_message(values["message"]),
            report_marker=_coerce_optional_str(values["report_marker"], "report_marker", ""),
            ref_mode=RefMode(ref_mode),
            dedupe=_coerce_bool(values["dedupe"], "dedupe"),
            tool_name=_coerce_optional_str(values["tool_name"], "tool_name", DEFAULT_TOOL_NAME),
            report_author=_coerce_optional_str(
                values["report_author"], "report_author", DEFAULT_REPORT_AUTHOR
            ),
            api_url=_coerce_optional_str(values["api_url"], "api_url", DEFAULT_API_URL).rstrip("/"),
        )


def load_config_file(path: Path) -> dict[str, Any]:
    """Load a YAML inputs file. An empty file yields an empty mapping."""
    try:
        raw = yaml.safe_load(path.read_text())
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {path}") from exc
    except OSError as exc:
        raise ConfigError(f"unable to read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected mapping at top level")
    return raw


def merge_inputs(*layers: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge input layers into canonical keys; later layers win, blank values never override."""
    merged: dict[str, Any] = {}
    for layer in layers:
        if not layer:
            continue
        for name in INPUT_ALIASES:
            value = _pick(layer, name)
            if value is not None:
                merged[name] = value
    return merged
