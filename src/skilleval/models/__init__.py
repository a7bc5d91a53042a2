"""skilleval data models - re-exports all public model classes."""

from skilleval.models.cases import (
    ActivationTestCase,
    QualityTestCase,
    TestCaseSource,
    TestType,
)
from skilleval.models.config import ProjectConfig
from skilleval.models.result import (
    ActivationResult,
    CaseMetrics,
    CaseResult,
    CaseStatus,
    QualityResult,
    RunTotals,
    UsageCounters,
)
from skilleval.models.run import SkillFile, SkillSnapshot, SkillVersion, TestRun

__all__ = [
    "ActivationResult",
    "ActivationTestCase",
    "CaseMetrics",
    "CaseResult",
    "CaseStatus",
    "ProjectConfig",
    "QualityResult",
    "QualityTestCase",
    "RunTotals",
    "SkillFile",
    "SkillSnapshot",
    "SkillVersion",
    "TestCaseSource",
    "TestRun",
    "TestType",
    "UsageCounters",
]
