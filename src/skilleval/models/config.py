"""Project configuration model for skilleval.

Captures skilleval.yaml fields with sensible defaults for the agent,
model, skills directory, catalog, and results database.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field

CONFIG_FILENAME = "skilleval.yaml"

# Environment variable that overrides database_path (custom deployments).
DB_PATH_ENV = "SKILLEVAL_DB_PATH"


class ProjectConfig(BaseModel):
    """Project-level configuration loaded from skilleval.yaml."""

    model_config = {"extra": "forbid"}

    default_model: str = "claude-sonnet-4-5-20250929"
    agent: str = "claude-agent-sdk"
    skills_dir: str = ".claude/skills"
    catalog: str = "evals/cases.yaml"
    database_path: str = "data/evals.db"
    allowed_tools: list[str] = Field(default_factory=lambda: ["Skill", "Read"])
    setting_sources: list[str] = Field(default_factory=lambda: ["project"])
    activation_tool: str = "Skill"
    response_preview_chars: int = Field(default=200, ge=0)

    def resolve_database_path(self, project_root: Path) -> Path:
        """Return the results database path, honoring SKILLEVAL_DB_PATH."""
        override = os.environ.get(DB_PATH_ENV)
        path = Path(override) if override else Path(self.database_path)
        return path if path.is_absolute() else project_root / path


def find_project_root(start: Path | None = None) -> Path:
    """Walk up from start (default: cwd) looking for skilleval.yaml or .claude/.

    Args:
        start: Starting path (file or directory). Defaults to cwd.

    Returns:
        Path to the first directory containing skilleval.yaml or .claude/,
        or cwd if neither is found.
    """
    current = (start or Path.cwd()).resolve()
    if current.is_file():
        current = current.parent
    while current != current.parent:
        if (current / CONFIG_FILENAME).exists() or (current / ".claude").is_dir():
            return current
        current = current.parent
    return Path.cwd()


def load_project_config(project_root: Path | None = None) -> ProjectConfig:
    """Load ProjectConfig from skilleval.yaml. Returns defaults if not found.

    Args:
        project_root: Path to the project root directory. If None,
            uses find_project_root() to locate it.

    Returns:
        Validated ProjectConfig instance.
    """
    if project_root is None:
        project_root = find_project_root()
    config_path = project_root / CONFIG_FILENAME
    if not config_path.exists():
        return ProjectConfig()
    import yaml

    raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if raw is None:
        return ProjectConfig()
    return ProjectConfig.model_validate(raw)
