"""skilleval catalog loader - YAML parsing with positions and per-case validation."""

from skilleval.loader.catalog import (
    Catalog,
    CaseIssue,
    load_catalog,
    load_catalog_string,
    select_cases,
    validate_catalog,
)
from skilleval.loader.yaml_parser import CatalogError, parse_with_positions

__all__ = [
    "CaseIssue",
    "Catalog",
    "CatalogError",
    "load_catalog",
    "load_catalog_string",
    "parse_with_positions",
    "select_cases",
    "validate_catalog",
]
