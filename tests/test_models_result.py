"""Tests for result models and run totals."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from skilleval.models.cases import ActivationTestCase, QualityTestCase, TestCaseSource
from skilleval.models.result import (
    ActivationResult,
    CaseMetrics,
    CaseStatus,
    QualityResult,
    RunTotals,
)


def _activation(passed: bool, metrics: CaseMetrics | None = None) -> ActivationResult:
    return ActivationResult(
        test_id="t",
        status=CaseStatus.passed if passed else CaseStatus.failed,
        passed=passed,
        metrics=metrics,
    )


class TestRunTotals:
    """Test the run-level accumulator."""

    def test_counts_and_sums(self) -> None:
        totals = RunTotals()
        totals.add(_activation(True, CaseMetrics(input_tokens=10, output_tokens=5, latency_ms=100, estimated_cost_usd=0.5)))
        totals.add(_activation(False, CaseMetrics(input_tokens=20, cache_read_tokens=4, latency_ms=300, estimated_cost_usd=0.25)))
        totals.finalize()

        assert totals.total == 2
        assert totals.passed == 1
        assert totals.failed == 1
        assert totals.input_tokens == 30
        assert totals.output_tokens == 5
        assert totals.cache_read_tokens == 4
        assert totals.latency_ms == 400
        assert totals.avg_latency_ms == pytest.approx(200.0)
        assert totals.cost_usd == pytest.approx(0.75)

    def test_cases_without_metrics_still_count(self) -> None:
        """A case with no metrics adds to the counts but not the sums."""
        totals = RunTotals()
        totals.add(_activation(True))
        totals.add(_activation(True, CaseMetrics(latency_ms=50)))
        totals.finalize()
        assert totals.total == 2
        assert totals.passed == 2
        assert totals.latency_ms == 50
        assert totals.avg_latency_ms == pytest.approx(25.0)

    def test_unpriced_case_adds_usage_but_not_cost(self) -> None:
        totals = RunTotals()
        totals.add(_activation(True, CaseMetrics(input_tokens=100, latency_ms=80, estimated_cost_usd=None)))
        totals.add(_activation(True, CaseMetrics(input_tokens=10, latency_ms=20, estimated_cost_usd=0.5)))
        totals.finalize()
        assert totals.input_tokens == 110
        assert totals.avg_latency_ms == pytest.approx(50.0)
        assert totals.cost_usd == pytest.approx(0.5)

    def test_empty_run_has_zero_average(self) -> None:
        totals = RunTotals().finalize()
        assert totals.total == 0
        assert totals.avg_latency_ms == 0.0

    def test_passed_plus_failed_is_total(self) -> None:
        totals = RunTotals()
        for passed in (True, False, False, True, True):
            totals.add(_activation(passed))
        totals.finalize()
        assert totals.passed + totals.failed == totals.total == 5


class TestCaseModels:
    """Test case validation rules."""

    def test_activation_defaults(self) -> None:
        case = ActivationTestCase(id="a", query="q", expected_skill="s")
        assert case.should_activate is True
        assert case.test_case_source == TestCaseSource.synthetic
        assert case.session_context is None

    def test_empty_query_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ActivationTestCase(id="a", query="", expected_skill="s")

    def test_unknown_source_rejected(self) -> None:
        with pytest.raises(ValidationError):
            QualityTestCase(id="q", skill="s", query="q", test_case_source="scraped")

    def test_quality_lists_default_empty(self) -> None:
        case = QualityTestCase(id="q", skill="s", query="q")
        assert case.expected_facts == []
        assert case.must_not_contain == []


class TestResultSerialization:
    """Test JSON-mode dumps used by --json output."""

    def test_quality_result_dump(self) -> None:
        result = QualityResult(
            test_id="q",
            status=CaseStatus.failed,
            passed=False,
            missing_facts=["$derived"],
        )
        data = result.model_dump(mode="json")
        assert data["status"] == "failed"
        assert data["missing_facts"] == ["$derived"]
        assert data["test_case_source"] == "synthetic"
        assert data["metrics"] is None
