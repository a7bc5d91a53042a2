"""BatchRunner: drives an ordered batch of cases through an agent.

Sequence per batch: validate cases, hash the skills, open a run record
and then record the skill versions, execute valid cases one at a time
(persisting each result), then write the run's aggregates and its
skill-version links. Storage problems never stop a batch: if the run
record cannot be created the batch runs degraded with nothing persisted.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Union

from pydantic import BaseModel, ValidationError

from skilleval.adapters.base import AgentOptions, BaseAgent
from skilleval.execution.cases import execute_activation_case, execute_quality_case
from skilleval.execution.revision import current_commit
from skilleval.models.cases import ActivationTestCase, QualityTestCase, TestType
from skilleval.models.config import ProjectConfig
from skilleval.models.result import (
    ActivationResult,
    CaseResult,
    CaseStatus,
    QualityResult,
    RunTotals,
)
from skilleval.models.run import SkillVersion
from skilleval.storage.base import ResultRepository
from skilleval.versions import SkillVersionTracker

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, CaseResult], None]
RawCase = Union[BaseModel, Mapping[str, Any]]


class RunState(str, Enum):
    """Lifecycle of a batch. degraded replaces running when storage is unavailable."""

    created = "created"
    running = "running"
    degraded = "degraded"
    finalized = "finalized"


@dataclass
class BatchOutcome:
    """What a batch returns to its caller.

    results holds one entry per case in input order (rejected cases
    included); totals only count the cases that were attempted.
    """

    test_type: TestType
    model: str
    results: list[CaseResult] = field(default_factory=list)
    totals: RunTotals = field(default_factory=RunTotals)
    run_id: str | None = None
    degraded: bool = False
    cancelled: bool = False
    skill_versions: list[SkillVersion] = field(default_factory=list)

    @property
    def all_errored(self) -> bool:
        attempted = [r for r in self.results if r.status != CaseStatus.rejected]
        return bool(attempted) and all(r.status == CaseStatus.error for r in attempted)


def _rejected_result(test_type: TestType, raw: RawCase, position: int, error: str) -> CaseResult:
    data = raw if isinstance(raw, Mapping) else {}
    test_id = data.get("id") if isinstance(data.get("id"), str) and data.get("id") else f"case-{position}"
    query = data.get("query") if isinstance(data.get("query"), str) else ""
    if test_type == TestType.quality:
        skill = data.get("skill") if isinstance(data.get("skill"), str) else ""
        return QualityResult(
            test_id=test_id, query=query, skill=skill,
            status=CaseStatus.rejected, passed=False, error=error,
        )
    expected = data.get("expected_skill") if isinstance(data.get("expected_skill"), str) else ""
    return ActivationResult(
        test_id=test_id, query=query, expected_skill=expected,
        status=CaseStatus.rejected, passed=False, error=error,
    )


def _error_result(test_type: TestType, case: BaseModel, error: str) -> CaseResult:
    if test_type == TestType.quality:
        return QualityResult(
            test_id=case.id, query=case.query, skill=case.skill,
            test_case_source=case.test_case_source, session_context=case.session_context,
            status=CaseStatus.error, passed=False, error=error,
        )
    return ActivationResult(
        test_id=case.id, query=case.query, expected_skill=case.expected_skill,
        should_activate=case.should_activate,
        test_case_source=case.test_case_source, session_context=case.session_context,
        status=CaseStatus.error, passed=False, error=error,
    )


class BatchRunner:
    """Runs activation or quality batches sequentially against one agent.

    Args:
        agent: The agent under test.
        repository: Where results are persisted; None runs without storage.
        config: Project configuration (tools, skills dir, preview length).
        project_root: Directory the agent runs in and skills are read from.
        on_result: Called as (position, total, result) after every case.
    """

    def __init__(
        self,
        agent: BaseAgent,
        repository: ResultRepository | None = None,
        *,
        config: ProjectConfig | None = None,
        project_root: Path | None = None,
        on_result: ProgressCallback | None = None,
    ) -> None:
        self.agent = agent
        self.repository = repository
        self.config = config or ProjectConfig()
        self.project_root = project_root
        self.on_result = on_result
        self.state = RunState.created
        self._cancelled = False

    def cancel(self) -> None:
        """Stop starting new cases; the case in flight completes."""
        self._cancelled = True

    @property
    def skills_dir(self) -> Path:
        skills_dir = Path(self.config.skills_dir)
        if self.project_root is not None and not skills_dir.is_absolute():
            return self.project_root / skills_dir
        return skills_dir

    def _options(self, model: str) -> AgentOptions:
        return AgentOptions(
            model=model,
            cwd=str(self.project_root) if self.project_root is not None else None,
            allowed_tools=list(self.config.allowed_tools),
            setting_sources=list(self.config.setting_sources),
        )

    async def run_activation(
        self,
        cases: Sequence[RawCase],
        model: str | None = None,
    ) -> BatchOutcome:
        """Run activation cases in order and return their results."""
        options = self._options(model or self.config.default_model)

        async def execute(case: ActivationTestCase) -> CaseResult:
            return await execute_activation_case(
                self.agent, case, options, activation_tool=self.config.activation_tool
            )

        return await self._run(TestType.activation, ActivationTestCase, cases, options.model, execute)

    async def run_quality(
        self,
        cases: Sequence[RawCase],
        model: str | None = None,
    ) -> BatchOutcome:
        """Run quality cases in order and return their results."""
        options = self._options(model or self.config.default_model)

        async def execute(case: QualityTestCase) -> CaseResult:
            return await execute_quality_case(
                self.agent, case, options, preview_chars=self.config.response_preview_chars
            )

        return await self._run(TestType.quality, QualityTestCase, cases, options.model, execute)

    def _validate(
        self,
        test_type: TestType,
        model_cls: type[BaseModel],
        cases: Sequence[RawCase],
    ) -> list[BaseModel | CaseResult]:
        """Validate every case, replacing invalid ones with rejected results."""
        validated: list[BaseModel | CaseResult] = []
        for position, raw in enumerate(cases, start=1):
            try:
                if isinstance(raw, model_cls):
                    case = model_cls.model_validate(raw.model_dump())
                else:
                    case = model_cls.model_validate(raw)
            except ValidationError as exc:
                rejected = _rejected_result(test_type, raw, position, str(exc))
                logger.warning("Rejected %s case %s: %s", test_type.value, rejected.test_id, exc)
                validated.append(rejected)
                continue
            validated.append(case)
        return validated

    def _open_run(self, test_type: TestType, model: str, valid_count: int, outcome: BatchOutcome) -> None:
        if self.repository is None:
            return
        tracker = SkillVersionTracker(self.skills_dir)
        try:
            snapshots = tracker.snapshot()
            outcome.run_id = self.repository.create_run(
                model=model,
                test_type=test_type,
                total_tests=valid_count,
                git_commit_hash=current_commit(self.project_root),
            )
            logger.info("Created test run %s", outcome.run_id)
        except Exception as exc:
            logger.error("Failed to initialize result storage: %s. Continuing without storage.", exc)
            outcome.run_id = None
            outcome.degraded = True
            return

        # Versions are only written once the run record exists.
        try:
            outcome.skill_versions = tracker.capture(self.repository, snapshots)
        except Exception as exc:
            logger.error("Failed to record skill versions for run %s: %s", outcome.run_id, exc)
            outcome.skill_versions = []

    def _persist(self, run_id: str, result: CaseResult) -> None:
        try:
            if isinstance(result, QualityResult):
                self.repository.store_quality_result(run_id, result)
            else:
                self.repository.store_activation_result(run_id, result)
        except Exception as exc:
            logger.error("Failed to store result for test %s: %s", result.test_id, exc)

    def _finalize(self, outcome: BatchOutcome) -> None:
        outcome.totals.finalize()
        if outcome.run_id is not None:
            try:
                self.repository.finalize_run(outcome.run_id, outcome.totals)
                self.repository.link_run_to_skill_versions(
                    outcome.run_id, [version.id for version in outcome.skill_versions]
                )
                logger.info("Results stored in database (run_id: %s)", outcome.run_id)
            except Exception as exc:
                logger.error("Failed to finalize test run %s: %s", outcome.run_id, exc)
        self.state = RunState.finalized

    async def _run(
        self,
        test_type: TestType,
        model_cls: type[BaseModel],
        cases: Sequence[RawCase],
        model: str,
        execute: Callable[[Any], Awaitable[CaseResult]],
    ) -> BatchOutcome:
        self.state = RunState.created
        self._cancelled = False
        outcome = BatchOutcome(test_type=test_type, model=model)

        validated = self._validate(test_type, model_cls, cases)
        valid_count = sum(1 for item in validated if isinstance(item, model_cls))
        logger.info("Starting %d %s test(s) on %s", valid_count, test_type.value, model)

        self._open_run(test_type, model, valid_count, outcome)
        self.state = RunState.degraded if outcome.degraded else RunState.running

        total = len(validated)
        for position, item in enumerate(validated, start=1):
            if self._cancelled:
                outcome.cancelled = True
                logger.warning("Batch cancelled after %d of %d case(s)", position - 1, total)
                break

            if isinstance(item, model_cls):
                logger.info("Test %d/%d: %s", position, total, item.id)
                try:
                    result = await execute(item)
                except Exception as exc:
                    logger.error("Test %s failed unexpectedly: %s", item.id, exc)
                    result = _error_result(test_type, item, f"{type(exc).__name__}: {exc}")
                outcome.totals.add(result)
                if outcome.run_id is not None:
                    self._persist(outcome.run_id, result)
            else:
                result = item

            outcome.results.append(result)
            if self.on_result is not None:
                self.on_result(position, total, result)

        self._finalize(outcome)
        logger.info(
            "Completed. Passed: %d/%d. Total cost: $%.4f",
            outcome.totals.passed,
            outcome.totals.total,
            outcome.totals.cost_usd,
        )
        return outcome
