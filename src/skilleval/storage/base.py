"""Abstract result repository interface.

The run orchestrator only talks to this interface, so batches can be
driven against SQLite, an in-memory fake, or nothing at all.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from skilleval.models.cases import TestType
from skilleval.models.result import ActivationResult, QualityResult, RunTotals
from skilleval.models.run import SkillSnapshot, SkillVersion, TestRun


class StorageError(Exception):
    """A repository operation failed.

    Attributes:
        operation: Name of the repository method that failed.
    """

    def __init__(self, message: str, operation: str = "") -> None:
        self.operation = operation
        prefix = f"{operation}: " if operation else ""
        super().__init__(f"{prefix}{message}")


class ResultRepository(ABC):
    """Persistence collaborator for runs, results, logs, and skill versions.

    Writes are issued by a single orchestrator, one at a time; each write
    is its own transaction.
    """

    # -- write side -------------------------------------------------------

    @abstractmethod
    def create_run(
        self,
        model: str,
        test_type: TestType,
        total_tests: int,
        git_commit_hash: str | None = None,
    ) -> str:
        """Insert a run record with zeroed aggregates. Returns the run id."""
        ...

    @abstractmethod
    def finalize_run(self, run_id: str, totals: RunTotals) -> None:
        """Write the final aggregates for a run in one update."""
        ...

    @abstractmethod
    def store_activation_result(self, run_id: str, result: ActivationResult) -> str:
        """Insert an activation result and its logs. Returns the result id."""
        ...

    @abstractmethod
    def store_quality_result(self, run_id: str, result: QualityResult) -> str:
        """Insert a quality result, its facts, and its logs. Returns the result id."""
        ...

    @abstractmethod
    def find_or_create_skill_version(self, snapshot: SkillSnapshot) -> SkillVersion:
        """Return the stored version matching (skill_name, content_hash), inserting if new."""
        ...

    @abstractmethod
    def link_run_to_skill_versions(self, run_id: str, version_ids: list[str]) -> None:
        """Associate a run with the skill versions it was evaluated against."""
        ...

    @abstractmethod
    def recompute_run_aggregates(self, run_id: str) -> RunTotals:
        """Rebuild a run's aggregates from its stored result rows."""
        ...

    @abstractmethod
    def delete_run(self, run_id: str) -> bool:
        """Delete a run and everything attached to it. Returns True if it existed."""
        ...

    # -- read side --------------------------------------------------------

    @abstractmethod
    def get_run(self, run_id: str) -> TestRun | None:
        """Load one run, or None if unknown."""
        ...

    @abstractmethod
    def list_runs(self, limit: int = 10, test_type: TestType | None = None) -> list[TestRun]:
        """Most recent runs first, optionally filtered by type."""
        ...

    @abstractmethod
    def get_results(self, run_id: str) -> list[dict[str, Any]]:
        """Result rows for a run in insertion order."""
        ...

    @abstractmethod
    def get_logs(self, result_id: str) -> list[str]:
        """Log lines for one result in the order they were written."""
        ...

    @abstractmethod
    def list_skill_versions(self, skill_name: str | None = None) -> list[SkillVersion]:
        """Stored skill versions, newest first."""
        ...

    @abstractmethod
    def activation_history(self, test_id: str) -> list[dict[str, Any]]:
        """Rows of v_activation_test_history for one test."""
        ...

    @abstractmethod
    def quality_history(self, test_id: str) -> list[dict[str, Any]]:
        """Rows of v_quality_test_history for one test."""
        ...

    @abstractmethod
    def missing_facts_frequency(self, skill: str | None = None) -> list[dict[str, Any]]:
        """Rows of v_missing_facts_frequency, optionally for one skill."""
        ...

    @abstractmethod
    def skill_trends(self, test_type: TestType, skill: str | None = None) -> list[dict[str, Any]]:
        """Pass-rate trends per skill version for activation or quality runs."""
        ...

    @abstractmethod
    def source_comparison(self) -> list[dict[str, Any]]:
        """Pass rates grouped by test case source."""
        ...

    def close(self) -> None:
        """Release any held resources."""
