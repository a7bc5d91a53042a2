"""Test-case catalog loading and per-case validation.

A catalog is one YAML file with top-level `activation:` and `quality:`
lists. Loading only checks the file's shape; each case is validated on
its own so that one malformed case never hides the rest.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from skilleval.loader.yaml_parser import CatalogError, parse_file_with_positions, parse_with_positions
from skilleval.models.cases import ActivationTestCase, QualityTestCase, TestType

SECTIONS: dict[TestType, type[BaseModel]] = {
    TestType.activation: ActivationTestCase,
    TestType.quality: QualityTestCase,
}


@dataclass
class CaseIssue:
    """One validation problem in one catalog case.

    Attributes:
        test_type: Section the case lives in.
        index: 0-indexed position within its section.
        test_id: The case's id if it has a usable one.
        field: Dotted field path within the case.
        message: Human-readable error description.
        line: 1-indexed source line, or None if unknown.
        suggestion: 'Did you mean X?' hint for unknown fields.
    """

    test_type: TestType
    index: int
    test_id: str | None
    field: str
    message: str
    line: int | None = None
    suggestion: str | None = None


@dataclass
class Catalog:
    """Raw catalog cases plus the source position of every key."""

    filename: str
    activation: list[Any] = field(default_factory=list)
    quality: list[Any] = field(default_factory=list)
    positions: dict[str, tuple[int, int]] = field(default_factory=dict)

    def cases(self, test_type: TestType) -> list[Any]:
        if test_type == TestType.activation:
            return self.activation
        if test_type == TestType.quality:
            return self.quality
        raise ValueError(f"Catalogs have no '{test_type.value}' section")

    def line_of(self, test_type: TestType, index: int, field_path: str = "") -> int | None:
        """Best-known line for a case, or for a field inside it."""
        parts = [test_type.value, str(index)]
        if field_path:
            parts.extend(field_path.split("."))
        while len(parts) >= 2:
            position = self.positions.get(".".join(parts))
            if position is not None:
                return position[0]
            parts.pop()
        return None


def _build_catalog(data: Any, positions: dict[str, tuple[int, int]], filename: str) -> Catalog:
    if data is None:
        return Catalog(filename=filename, positions=positions)
    if not isinstance(data, dict):
        raise CatalogError("catalog must be a mapping with 'activation' and/or 'quality' lists", filename=filename)

    unknown = sorted(str(key) for key in data if key not in {t.value for t in SECTIONS})
    if unknown:
        line = positions.get(unknown[0], (None, None))[0]
        raise CatalogError(f"unknown catalog section(s): {', '.join(unknown)}", line=line, filename=filename)

    sections: dict[str, list[Any]] = {}
    for test_type in SECTIONS:
        value = data.get(test_type.value)
        if value is None:
            value = []
        if not isinstance(value, list):
            line = positions.get(test_type.value, (None, None))[0]
            raise CatalogError(f"'{test_type.value}' must be a list of cases", line=line, filename=filename)
        sections[test_type.value] = value

    return Catalog(
        filename=filename,
        activation=sections["activation"],
        quality=sections["quality"],
        positions=positions,
    )


def load_catalog(path: Path) -> Catalog:
    """Load a catalog file without validating individual cases.

    Raises:
        CatalogError: If the file is unreadable, not YAML, or has the
            wrong top-level shape.
    """
    data, positions = parse_file_with_positions(path)
    return _build_catalog(data, positions, str(path))


def load_catalog_string(source: str, filename: str = "<string>") -> Catalog:
    """Load a catalog from YAML text. See load_catalog()."""
    data, positions = parse_with_positions(source, filename=filename)
    return _build_catalog(data, positions, filename)


def _suggest(field_name: str, model_cls: type[BaseModel]) -> str | None:
    matches = difflib.get_close_matches(field_name, list(model_cls.model_fields), n=1, cutoff=0.6)
    if matches:
        return f"Did you mean '{matches[0]}'?"
    return None


def validate_catalog(catalog: Catalog) -> list[CaseIssue]:
    """Validate every case and collect all problems.

    Also flags duplicate ids within a section, since results are
    tracked over time by test id.

    Returns:
        Issues in file order; empty when every case is valid.
    """
    issues: list[CaseIssue] = []
    for test_type, model_cls in SECTIONS.items():
        seen: dict[str, int] = {}
        for index, raw in enumerate(catalog.cases(test_type)):
            test_id = raw.get("id") if isinstance(raw, dict) and isinstance(raw.get("id"), str) else None
            try:
                model_cls.model_validate(raw)
            except ValidationError as e:
                for err in e.errors():
                    loc = err.get("loc", ())
                    field_path = ".".join(str(part) for part in loc)
                    suggestion = None
                    if err.get("type") == "extra_forbidden" and loc:
                        suggestion = _suggest(str(loc[0]), model_cls)
                    issues.append(
                        CaseIssue(
                            test_type=test_type,
                            index=index,
                            test_id=test_id,
                            field=field_path or "(case)",
                            message=err.get("msg", "Validation error"),
                            line=catalog.line_of(test_type, index, field_path),
                            suggestion=suggestion,
                        )
                    )
                continue

            if test_id in seen:
                issues.append(
                    CaseIssue(
                        test_type=test_type,
                        index=index,
                        test_id=test_id,
                        field="id",
                        message=f"duplicate id (first used by case #{seen[test_id]})",
                        line=catalog.line_of(test_type, index, "id"),
                    )
                )
            else:
                seen[test_id] = index
    return issues


def select_cases(
    cases: list[Any],
    only: list[str] | None = None,
    skill: str | None = None,
) -> list[Any]:
    """Filter raw cases by id and by target skill, preserving order.

    Cases that are not mappings are kept so validation can reject them.
    """
    selected = []
    for raw in cases:
        if not isinstance(raw, dict):
            selected.append(raw)
            continue
        if only and raw.get("id") not in only:
            continue
        if skill and skill not in (raw.get("expected_skill"), raw.get("skill")):
            continue
        selected.append(raw)
    return selected
