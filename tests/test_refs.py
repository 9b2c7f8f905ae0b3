"""Tests for ref selection and fallback probing."""
from __future__ import annotations

import pytest

from conftest import DEFAULT_BRANCH, HEAD_REF, MERGE_REF, make_config
from pkg.policygate.errors import ConfigError, NotFoundError, RetrievalError
from pkg.policygate.refs import RefMode, RefStrategy, pr_head_ref, pr_merge_ref


def _query(answers: dict[str, object], seen: list[str]):
    def query(ref: str):
        seen.append(ref)
        answer = answers.get(ref, [])
        if isinstance(answer, Exception):
            raise answer
        return answer

    return query


class TestRefSet:
    @pytest.mark.parametrize("mode", list(RefMode))
    def test_first_attempt_uses_default_branch(self, mode):
        config = make_config(attempt=1)
        assert RefStrategy(mode).ref_set(config) == (DEFAULT_BRANCH,)

    def test_first_attempt_without_default_branch_is_config_error(self):
        config = make_config(attempt=1, default_branch="")
        with pytest.raises(ConfigError, match="default_branch"):
            RefStrategy().ref_set(config)

    def test_single_retry_uses_merge_ref(self):
        config = make_config(attempt=2)
        assert RefStrategy(RefMode.SINGLE).ref_set(config) == (MERGE_REF,)

    def test_all_retry_uses_head_then_merge(self):
        config = make_config(attempt=3)
        assert RefStrategy(RefMode.ALL).ref_set(config) == (HEAD_REF, MERGE_REF)

    def test_fallback_retry_chain(self):
        config = make_config(attempt=2)
        assert RefStrategy("fallback").ref_set(config) == (MERGE_REF, HEAD_REF, DEFAULT_BRANCH)

    def test_fallback_chain_without_default_branch(self):
        config = make_config(attempt=2, default_branch="")
        assert RefStrategy("fallback").ref_set(config) == (MERGE_REF, HEAD_REF)

    def test_for_config_reads_mode(self):
        config = make_config(ref_mode=RefMode.ALL)
        assert RefStrategy.for_config(config).mode is RefMode.ALL

    def test_pr_ref_helpers(self):
        assert pr_merge_ref(12) == "refs/pull/12/merge"
        assert pr_head_ref(12) == "refs/pull/12/head"


class TestProbe:
    def test_single_mode_not_found_propagates(self):
        config = make_config(attempt=2)
        seen: list[str] = []
        query = _query({MERGE_REF: NotFoundError("no merge ref")}, seen)
        with pytest.raises(NotFoundError):
            RefStrategy(RefMode.SINGLE).probe(config, query)
        assert seen == [MERGE_REF]

    def test_fallback_moves_past_missing_merge_ref(self):
        config = make_config(attempt=2)
        seen: list[str] = []
        query = _query({MERGE_REF: NotFoundError("no merge ref"), HEAD_REF: ["a1"]}, seen)

        resolution = RefStrategy(RefMode.FALLBACK).probe(config, query)

        assert resolution.found
        assert resolution.ref == HEAD_REF
        assert resolution.items == ["a1"]
        assert resolution.missing == (MERGE_REF,)
        assert seen == [MERGE_REF, HEAD_REF]

    def test_fallback_stops_at_first_non_empty_ref(self):
        config = make_config(attempt=2)
        seen: list[str] = []
        query = _query({MERGE_REF: ["m1"], HEAD_REF: ["h1"]}, seen)

        resolution = RefStrategy(RefMode.FALLBACK).probe(config, query)

        assert resolution.ref == MERGE_REF
        assert seen == [MERGE_REF]

    def test_fallback_skips_default_branch_when_nothing_was_missing(self):
        config = make_config(attempt=2)
        seen: list[str] = []
        query = _query({DEFAULT_BRANCH: ["d1"]}, seen)

        resolution = RefStrategy(RefMode.FALLBACK).probe(config, query)

        assert not resolution.found
        assert resolution.items == []
        assert seen == [MERGE_REF, HEAD_REF]

    def test_fallback_reaches_default_branch_after_missing_ref(self):
        config = make_config(attempt=2)
        seen: list[str] = []
        query = _query({MERGE_REF: NotFoundError("no merge ref"), DEFAULT_BRANCH: ["d1"]}, seen)

        resolution = RefStrategy(RefMode.FALLBACK).probe(config, query)

        assert resolution.ref == DEFAULT_BRANCH
        assert resolution.items == ["d1"]
        assert seen == [MERGE_REF, HEAD_REF, DEFAULT_BRANCH]

    def test_fallback_does_not_swallow_other_errors(self):
        config = make_config(attempt=2)
        query = _query({MERGE_REF: RetrievalError("HTTP 500")}, [])
        with pytest.raises(RetrievalError):
            RefStrategy(RefMode.FALLBACK).probe(config, query)

    def test_all_refs_missing_reports_each_one(self):
        config = make_config(attempt=2)
        missing = NotFoundError("gone")
        query = _query({MERGE_REF: missing, HEAD_REF: missing, DEFAULT_BRANCH: missing}, [])

        resolution = RefStrategy(RefMode.FALLBACK).probe(config, query)

        assert not resolution.found
        assert resolution.missing == (MERGE_REF, HEAD_REF, DEFAULT_BRANCH)

    def test_fallback_logs_missing_ref_as_warning(self, capsys):
        config = make_config(attempt=2)
        query = _query({MERGE_REF: NotFoundError("no merge ref"), HEAD_REF: ["a1"]}, [])

        RefStrategy(RefMode.FALLBACK).probe(config, query)

        assert f"::warning::Ref {MERGE_REF} not found" in capsys.readouterr().err
