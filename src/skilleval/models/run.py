"""Run-level and skill-version records as read back from storage."""

from __future__ import annotations

import json
from datetime import datetime

from pydantic import BaseModel, Field

from skilleval.models.cases import TestType


class TestRun(BaseModel):
    """One evaluation batch."""

    __test__ = False

    id: str
    run_timestamp: datetime
    model: str
    git_commit_hash: str | None = None
    test_type: TestType
    total_tests: int = 0
    passed_tests: int = 0
    failed_tests: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cache_read_tokens: int = 0
    total_latency_ms: int = 0
    total_cost_usd: float = 0.0
    avg_latency_ms: float = 0.0
    created_at: datetime


class SkillFile(BaseModel):
    """One hashed file in a skill's manifest."""

    sha256: str
    size: int


class SkillSnapshot(BaseModel):
    """In-memory fingerprint of a skill's files, not yet stored."""

    skill_name: str
    content_hash: str
    files: dict[str, SkillFile] = Field(default_factory=dict)

    def files_json(self) -> str:
        """Serialize the manifest deterministically (sorted keys)."""
        return json.dumps(
            {path: entry.model_dump() for path, entry in sorted(self.files.items())},
            sort_keys=True,
        )


class SkillVersion(BaseModel):
    """A stored, immutable skill fingerprint."""

    id: str
    skill_name: str
    content_hash: str
    files_json: str
    created_at: datetime
