"""Command-line entry for the policy gates.

Inputs are merged from, lowest precedence first: ``--config`` YAML file, ``INPUT_*``
environment variables (as set by the Actions runner), command-line flags.

Exit codes:
    0  Gate passed.
    1  Gate failed, or a fatal retrieval/report error occurred.
    2  Invalid or missing configuration (no network call was made).
"""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from . import actions
from .config import INPUT_ALIASES, PolicyConfig, load_config_file, merge_inputs
from .errors import ConfigError, PolicyGateError
from .gates import GATES, PolicyGate
from .github import GitHubClient, RepositoryService
from .retriever import Clock, utcnow
from .verdict import GateResult

ClientFactory = Callable[[PolicyConfig], RepositoryService]

FLAG_HELP = {
    "org": "organization or owner login",
    "repo": "repository name",
    "pull_request": "pull request number",
    "token": "API token (prefer INPUT_TOKEN)",
    "default_branch": "default branch ref probed on the first attempt",
    "threshold": "severity threshold (critical..error)",
    "max_age_days": "maximum allowed age in days (alias inputs: age, period)",
    "attempt": "workflow run attempt number",
    "visibility": "public or private; controls link rendering",
    "message": "free text placed at the top of the report",
    "report_marker": "string identifying this gate's own comments",
    "ref_mode": "single, all or fallback",
    "dedupe": "drop duplicate alert numbers across refs",
    "tool_name": "analysis tool name for the freshness gate",
    "report_author": "login that authors the gate's comments",
    "api_url": "GitHub API base URL (default: $API_URL or https://api.github.com)",
}


def build_parser(gate_name: str) -> argparse.ArgumentParser:
    gate = GATES[gate_name]
    parser = argparse.ArgumentParser(
        prog=f"enforce-{gate_name}",
        description=(gate.__doc__ or gate_name).strip(),
    )
    parser.add_argument("--config", type=Path, help="YAML file with gate inputs")
    parser.add_argument(
        "--github-output",
        default="",
        help="Path to GITHUB_OUTPUT file. If omitted, writes JSON to stdout.",
    )
    for name in INPUT_ALIASES:
        parser.add_argument(f"--{name.replace('_', '-')}", dest=name, default=None, help=FLAG_HELP[name])
    return parser


def env_inputs(env: Mapping[str, str]) -> dict[str, Any]:
    """Collect every known input spelling from ``INPUT_*`` variables."""
    out: dict[str, Any] = {}
    for spellings in INPUT_ALIASES.values():
        for key in spellings:
            value = actions.get_input(key, env=env)
            if value is not None:
                out[key] = value
    if "api_url" not in out and env.get("API_URL", "").strip():
        out["api_url"] = env["API_URL"].strip()
    return out


def load_config(gate: type[PolicyGate], args: argparse.Namespace, env: Mapping[str, str]) -> PolicyConfig:
    file_inputs = load_config_file(args.config) if args.config else None
    cli_inputs = {name: getattr(args, name, None) for name in INPUT_ALIASES}
    merged = merge_inputs(file_inputs, env_inputs(env), cli_inputs)
    return PolicyConfig.from_dict(merged, required=gate.required_inputs)


def default_client(config: PolicyConfig) -> RepositoryService:
    return GitHubClient(config.token, base_url=config.api_url)


def result_payload(result: GateResult) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "gate": result.gate,
        "outcome": result.outcome.value,
        "passed": result.passed,
        "reason": result.reason,
        "report_posted": result.report_posted,
    }
    if result.verdict is not None:
        payload["findings"] = len(result.verdict.findings)
        payload["violations"] = [str(f.id) for f in result.verdict.violations]
    if result.analysis is not None:
        payload["analysis_ref"] = result.analysis.ref
        payload["analysis_age_days"] = round(result.analysis.age_days, 2)
    return payload


def write_result(result: GateResult, github_output: str) -> None:
    if github_output:
        path = Path(github_output)
        actions.set_output(path, "outcome", result.outcome.value)
        actions.set_output(path, "passed", "true" if result.passed else "false")
        actions.set_output(path, "reason", result.reason)
        return
    print(json.dumps(result_payload(result), indent=2))


def main(
    gate_name: str,
    argv: Sequence[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    client_factory: ClientFactory = default_client,
    clock: Clock = utcnow,
) -> int:
    gate_cls = GATES[gate_name]
    args = build_parser(gate_name).parse_args(argv)
    source = os.environ if env is None else env

    try:
        config = load_config(gate_cls, args, source)
        result = gate_cls(client_factory(config), config, clock=clock).run()
    except ConfigError as exc:
        actions.error(str(exc))
        return 2
    except PolicyGateError as exc:
        actions.error(f"{exc.kind.value}: {exc}")
        return 1

    write_result(result, args.github_output or source.get("GITHUB_OUTPUT", ""))
    if result.passed:
        actions.notice(result.reason)
    else:
        actions.error(result.reason)
    return result.exit_code


def code_scanning_main() -> int:
    return main("code-scanning")


def codeql_main() -> int:
    return main("codeql")


def required_properties_main() -> int:
    return main("required-properties")
