"""Result data models for skill evaluation outputs.

These models encode the per-case execution contract (what the caller
gets back for every case in a batch) and the run-level accumulator
that becomes the run record's aggregates.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from pydantic import BaseModel, Field

from skilleval.models.cases import TestCaseSource


@dataclass
class UsageCounters:
    """Token counters accumulated across one agent call.

    A plain dataclass: the interpreter mutates it once per message.
    """

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    thinking_tokens: int = 0


class CaseStatus(str, Enum):
    """Outcome of a single case."""

    passed = "passed"
    failed = "failed"
    error = "error"
    rejected = "rejected"


class CaseMetrics(BaseModel):
    """Usage, latency and cost snapshot for one case.

    estimated_cost_usd is None when the model has no pricing entry; the
    counters and latency are still measured.
    """

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    thinking_tokens: int = 0
    total_tokens: int = 0
    latency_ms: int = 0
    estimated_cost_usd: float | None = 0.0


class ActivationResult(BaseModel):
    """Result of one activation case."""

    test_id: str
    query: str = ""
    expected_skill: str = ""
    activated_skill: str | None = None
    should_activate: bool = True
    status: CaseStatus
    passed: bool
    error: str | None = None
    metrics_error: str | None = None
    test_case_source: TestCaseSource = TestCaseSource.synthetic
    session_context: str | None = None
    metrics: CaseMetrics | None = None
    logs: list[str] = Field(default_factory=list)


class QualityResult(BaseModel):
    """Result of one quality case."""

    test_id: str
    query: str = ""
    skill: str = ""
    status: CaseStatus
    passed: bool
    missing_facts: list[str] = Field(default_factory=list)
    forbidden_content: list[str] = Field(default_factory=list)
    response_preview: str = ""
    response_full_text: str | None = None
    error: str | None = None
    metrics_error: str | None = None
    test_case_source: TestCaseSource = TestCaseSource.synthetic
    session_context: str | None = None
    metrics: CaseMetrics | None = None
    logs: list[str] = Field(default_factory=list)


CaseResult = Union[ActivationResult, QualityResult]


class RunTotals(BaseModel):
    """Running aggregates for a batch, written to the run record once.

    Only cases that carry metrics contribute to token and latency totals,
    and only priced cases contribute to cost. Every attempted case
    contributes to the counts and to the average latency denominator.
    """

    total: int = 0
    passed: int = 0
    failed: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    latency_ms: int = 0
    cost_usd: float = 0.0
    avg_latency_ms: float = 0.0

    def add(self, result: CaseResult) -> None:
        """Fold one attempted case into the totals."""
        self.total += 1
        if result.passed:
            self.passed += 1
        metrics = result.metrics
        if metrics is None:
            return
        self.input_tokens += metrics.input_tokens
        self.output_tokens += metrics.output_tokens
        self.cache_read_tokens += metrics.cache_read_tokens
        self.latency_ms += metrics.latency_ms
        if metrics.estimated_cost_usd is not None:
            self.cost_usd += metrics.estimated_cost_usd

    def finalize(self) -> RunTotals:
        """Derive failed count and average latency. Returns self."""
        self.failed = self.total - self.passed
        self.avg_latency_ms = self.latency_ms / self.total if self.total > 0 else 0.0
        return self
