#!/usr/bin/env python3
"""Enforce that a recent CodeQL analysis exists for a pull request.

Usage:
    python3 scripts/enforce-codeql.py [--config gate.yml] [--org ORG --repo REPO ...]

Env:
    INPUT_ORG, INPUT_REPO, INPUT_PULL_REQUEST, INPUT_TOKEN, INPUT_DEFAULT_BRANCH,
    INPUT_PERIOD, INPUT_ATTEMPT, INPUT_MESSAGE
    API_URL  GitHub API base URL (GitHub Enterprise Server).

Exit codes:
    0  Gate passed.
    1  Gate failed, or a fatal API error occurred.
    2  Invalid or missing inputs.
"""
from __future__ import annotations

import sys
from pathlib import Path

# Allow running from a checkout without installing the package.
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pkg.policygate.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main("codeql"))
