"""Tests for git revision lookup."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch

from skilleval.execution.revision import current_commit


class TestCurrentCommit:
    """Test current_commit."""

    def test_returns_stripped_hash(self, tmp_path: Path) -> None:
        with patch("subprocess.check_output", return_value="abc123\n") as check_output:
            assert current_commit(tmp_path) == "abc123"
        assert check_output.call_args.args[0] == ["git", "rev-parse", "HEAD"]
        assert check_output.call_args.kwargs["cwd"] == tmp_path

    def test_not_a_repository(self, tmp_path: Path) -> None:
        error = subprocess.CalledProcessError(128, ["git", "rev-parse", "HEAD"])
        with patch("subprocess.check_output", side_effect=error):
            assert current_commit(tmp_path) is None

    def test_git_not_installed(self) -> None:
        with patch("subprocess.check_output", side_effect=FileNotFoundError("git")):
            assert current_commit() is None
