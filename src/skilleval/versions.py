"""Skill version tracking.

Fingerprints every skill directory so each run can be tied to the exact
skill content it was evaluated against. A skill's content hash covers
its whole file set (relative paths plus per-file SHA-256), so edits to
reference files or scripts change the version, not only SKILL.md.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from skilleval.models.run import SkillFile, SkillSnapshot, SkillVersion
from skilleval.storage.base import ResultRepository

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def _file_sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _is_hidden(relative: Path) -> bool:
    return any(part.startswith(".") for part in relative.parts)


def hash_skill_dir(skill_dir: Path) -> SkillSnapshot:
    """Fingerprint one skill directory.

    Files are keyed by POSIX relative path and sorted before hashing,
    so the result is independent of filesystem iteration order and
    platform path separators. Hidden files and directories are skipped.

    Args:
        skill_dir: Directory holding the skill's files.

    Returns:
        SkillSnapshot named after the directory.
    """
    files: dict[str, SkillFile] = {}
    for path in skill_dir.rglob("*"):
        relative = path.relative_to(skill_dir)
        if _is_hidden(relative) or not path.is_file():
            continue
        files[relative.as_posix()] = SkillFile(
            sha256=_file_sha256(path),
            size=path.stat().st_size,
        )

    digest = hashlib.sha256()
    for rel_path in sorted(files):
        digest.update(rel_path.encode("utf-8"))
        digest.update(b"\0")
        digest.update(files[rel_path].sha256.encode("ascii"))
        digest.update(b"\n")

    return SkillSnapshot(
        skill_name=skill_dir.name,
        content_hash=digest.hexdigest(),
        files=dict(sorted(files.items())),
    )


def snapshot_skills(skills_dir: Path) -> list[SkillSnapshot]:
    """Fingerprint every skill under skills_dir, sorted by name.

    A missing skills directory yields an empty list.
    """
    if not skills_dir.is_dir():
        logger.warning("Skills directory %s not found; no skill versions captured", skills_dir)
        return []
    return [
        hash_skill_dir(child)
        for child in sorted(skills_dir.iterdir())
        if child.is_dir() and not child.name.startswith(".")
    ]


class SkillVersionTracker:
    """Capture the current skill versions into a repository.

    All skills are hashed before anything is written, so a read error
    leaves the repository untouched.
    """

    def __init__(self, skills_dir: Path) -> None:
        self.skills_dir = skills_dir

    def snapshot(self) -> list[SkillSnapshot]:
        """Hash the tracked skills without writing anything."""
        return snapshot_skills(self.skills_dir)

    def capture(
        self,
        repository: ResultRepository,
        snapshots: list[SkillSnapshot] | None = None,
    ) -> list[SkillVersion]:
        """Store (or reuse) one version per tracked skill.

        Args:
            repository: Where versions are recorded.
            snapshots: Previously taken snapshots; taken now when omitted.

        Returns:
            One SkillVersion per skill directory, in name order.
        """
        if snapshots is None:
            snapshots = self.snapshot()
        versions = [repository.find_or_create_skill_version(snapshot) for snapshot in snapshots]
        logger.info("Captured %d skill version(s) from %s", len(versions), self.skills_dir)
        return versions
