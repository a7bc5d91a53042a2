"""Test case models for skill evaluations.

These models encode the catalog contract: the query sent to the agent
and the expectations a response is scored against.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class TestType(str, Enum):
    """Kind of evaluation batch."""

    __test__ = False

    activation = "activation"
    quality = "quality"
    anti_pattern = "anti-pattern"


class TestCaseSource(str, Enum):
    """Where a test case came from."""

    __test__ = False

    synthetic = "synthetic"
    real_session = "real_session"
    regression = "regression"
    user_reported = "user_reported"


class ActivationTestCase(BaseModel):
    """A query that should make the agent load a specific skill."""

    model_config = {"extra": "forbid"}

    id: str = Field(min_length=1)
    query: str = Field(min_length=1)
    expected_skill: str = Field(min_length=1)
    should_activate: bool = True
    description: str = ""
    test_case_source: TestCaseSource = TestCaseSource.synthetic
    session_context: str | None = None


class QualityTestCase(BaseModel):
    """A query whose response must mention some facts and avoid others.

    Matching is case-insensitive substring containment.
    """

    model_config = {"extra": "forbid"}

    id: str = Field(min_length=1)
    skill: str = Field(min_length=1)
    query: str = Field(min_length=1)
    expected_facts: list[str] = Field(default_factory=list)
    must_not_contain: list[str] = Field(default_factory=list)
    description: str = ""
    test_case_source: TestCaseSource = TestCaseSource.synthetic
    session_context: str | None = None
