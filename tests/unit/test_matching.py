"""Tests for pattern sets and category matching."""

import logging

from ci_weather.config import SubprojectConfig
from ci_weather.matching import CategoryMatcher, PatternSet, contains_any


class TestPatternSet:

    def test_search_semantics(self):
        patterns = PatternSet(["k8s", "^run-cri"])
        assert patterns.matches("run-k8s-tests (ubuntu)")
        assert patterns.matches("run-cri-containerd")
        assert not patterns.matches("build-kata-static")
        assert not patterns.matches(None)

    def test_malformed_pattern_skipped(self, caplog):
        with caplog.at_level(logging.WARNING):
            patterns = PatternSet(["^Run tests", "([unclosed"], kind="fatal step")
        assert len(patterns) == 1
        assert patterns.matches("Run tests")
        assert "Skipping malformed fatal step regex" in caplog.text

    def test_from_config_accepts_dicts(self):
        patterns = PatternSet.from_config(["^Run tests", {"pattern": "^Run e2e"}])
        assert len(patterns) == 2
        assert patterns.matches("Run e2e suite")

    def test_from_config_default(self):
        patterns = PatternSet.from_config([], default=("^Run tests",))
        assert patterns.matches("Run tests on qemu")

    def test_from_config_default_when_all_malformed(self):
        patterns = PatternSet.from_config(["(["], default=("^Run tests",))
        assert len(patterns) == 1


class TestCategoryMatcher:

    def test_first_match_wins(self):
        matcher = CategoryMatcher([
            ("k8s", contains_any(["k8s"])),
            ("qemu", contains_any(["qemu"])),
        ])
        assert matcher.match("run-k8s-tests (qemu)") == "k8s"
        assert matcher.match("run-cri (qemu)") == "qemu"
        assert matcher.match("static-checks") is None

    def test_case_insensitive(self):
        assert contains_any(["NYDUS"])("run-nydus-tests")

    def test_categorize_leaves_out_unmatched(self):
        matcher = CategoryMatcher.from_config([
            {"id": "k8s", "patterns": ["k8s"]},
            SubprojectConfig(id="cri", name="CRI", patterns=["cri"]),
        ])
        groups = matcher.categorize(["run-k8s-a", "run-cri-b", "docs"])
        assert groups == {"k8s": ["run-k8s-a"], "cri": ["run-cri-b"]}
        assert matcher.categories == ["k8s", "cri"]

    def test_empty_patterns_ignored(self):
        matcher = CategoryMatcher.from_config([{"id": "none", "patterns": []}])
        assert matcher.categories == []
