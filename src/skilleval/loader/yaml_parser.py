"""YAML parser that remembers where every key and list item came from.

Catalog problems are reported per case with a line number, so the
loader records a (line, column) position for each dotted key path
(e.g. "quality.2.expected_facts") and for each sequence item
(e.g. "activation.0").
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


class CatalogError(Exception):
    """Raised when a catalog file cannot be read or has the wrong shape.

    Attributes:
        message: Human-readable description of the problem.
        line: 1-indexed line number, if known.
        column: 1-indexed column number, if known.
        filename: Name of the file being parsed, or '<string>'.
    """

    def __init__(
        self,
        message: str,
        line: int | None = None,
        column: int | None = None,
        filename: str = "<string>",
    ) -> None:
        self.message = message
        self.line = line
        self.column = column
        self.filename = filename
        location = f"{filename}:{line}" if line is not None else filename
        super().__init__(f"{location}: {message}")


class PositionLoader(yaml.SafeLoader):
    """SafeLoader that fills position_map while constructing the document."""

    def __init__(self, stream: str) -> None:
        super().__init__(stream)
        self.position_map: dict[str, tuple[int, int]] = {}
        self._path: list[str] = []

    def _record(self, key: str, node: yaml.Node) -> None:
        if node.start_mark is None:
            return
        full_key = ".".join([*self._path, key])
        self.position_map[full_key] = (node.start_mark.line + 1, node.start_mark.column + 1)

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> dict[str, Any]:
        self.flatten_mapping(node)
        result: dict[Any, Any] = {}
        for key_node, value_node in node.value:
            key = self.construct_object(key_node, deep=deep)
            if isinstance(key, str):
                self._record(key, key_node)
                if isinstance(value_node, (yaml.MappingNode, yaml.SequenceNode)):
                    self._path.append(key)
                    result[key] = self.construct_object(value_node, deep=deep)
                    self._path.pop()
                    continue
            result[key] = self.construct_object(value_node, deep=deep)
        return result

    def construct_sequence(self, node: yaml.SequenceNode, deep: bool = False) -> list[Any]:
        items = []
        for idx, child in enumerate(node.value):
            self._record(str(idx), child)
            if isinstance(child, (yaml.MappingNode, yaml.SequenceNode)):
                self._path.append(str(idx))
                items.append(self.construct_object(child, deep=deep))
                self._path.pop()
            else:
                items.append(self.construct_object(child, deep=deep))
        return items

    def construct_yaml_map(self, node: yaml.MappingNode) -> Any:
        yield self.construct_mapping(node, deep=True)

    def construct_yaml_seq(self, node: yaml.SequenceNode) -> Any:
        yield self.construct_sequence(node, deep=True)


PositionLoader.add_constructor("tag:yaml.org,2002:map", PositionLoader.construct_yaml_map)
PositionLoader.add_constructor("tag:yaml.org,2002:seq", PositionLoader.construct_yaml_seq)


def parse_with_positions(
    source: str,
    filename: str = "<string>",
) -> tuple[Any, dict[str, tuple[int, int]]]:
    """Parse YAML text and return (data, position_map).

    Raises:
        CatalogError: If the YAML contains syntax errors.
    """
    loader = PositionLoader(source)
    try:
        data = loader.get_single_data()
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        raise CatalogError(
            f"YAML syntax error: {e}",
            line=mark.line + 1 if mark is not None else None,
            column=mark.column + 1 if mark is not None else None,
            filename=filename,
        ) from e
    finally:
        loader.dispose()
    return data, loader.position_map


def parse_file_with_positions(filepath: Path) -> tuple[Any, dict[str, tuple[int, int]]]:
    """Read and parse a YAML file.

    Raises:
        CatalogError: If the file is missing, unreadable, or malformed.
    """
    try:
        source = filepath.read_text(encoding="utf-8")
    except OSError as e:
        raise CatalogError(f"cannot read catalog: {e.strerror or e}", filename=str(filepath)) from e
    return parse_with_positions(source, filename=str(filepath))
