"""Filesystem discovery of natural-language test definitions (JSON / YAML)."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from shortest.errors import InvalidConfidenceLevel, TestDefinitionError
from shortest.models.config import resolve_env_reference
from shortest.models.test_definition import AssertionHint, Step, TestDefinition

logger = logging.getLogger(__name__)

TEST_FILE_SUFFIXES = (".json", ".yaml", ".yml")
_IGNORED_DIRS = {".git", "node_modules", ".venv", "venv", "__pycache__"}


def _resolve_params(raw: Any, where: str, path: str) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise TestDefinitionError(f"{where}: params must be a mapping", path)
    params = {}
    for key, value in raw.items():
        try:
            params[str(key)] = str(resolve_env_reference(value))
        except ValueError as e:
            raise TestDefinitionError(f"{where}: parameter '{key}': {e}", path) from e
    return params


def _parse_assertion(raw: Any, where: str, path: str) -> AssertionHint | None:
    if raw is None:
        return None
    if isinstance(raw, dict) and "kind" not in raw and len(raw) == 1:
        # Short form: {"url_contains": "/dashboard"}
        (kind, value), = raw.items()
        raw = {"kind": kind, "value": value}
    try:
        return AssertionHint(**raw) if isinstance(raw, dict) else AssertionHint(kind=raw)
    except (TypeError, ValidationError) as e:
        raise TestDefinitionError(f"{where}: invalid assert: {e}", path) from e


def _parse_step(raw: Any, index: int, test_params: dict[str, str], path: str) -> Step:
    where = f"step {index + 1}"
    if isinstance(raw, str):
        raw = {"intent": raw}
    if not isinstance(raw, dict):
        raise TestDefinitionError(f"{where}: expected a string or mapping", path)

    intent = raw.get("intent") or raw.get("step") or ""
    params = {**test_params, **_resolve_params(raw.get("params"), where, path)}
    try:
        return Step(
            intent=str(intent),
            assertion=_parse_assertion(raw.get("assert"), where, path),
            params=params,
        )
    except ValidationError as e:
        raise TestDefinitionError(f"{where}: {e.errors()[0]['msg']}", path) from e


def parse_test(data: Any, source_path: str, fallback_name: str) -> TestDefinition:
    """Parse one test mapping into a TestDefinition."""
    if not isinstance(data, dict):
        raise TestDefinitionError("Test payload must be a mapping", source_path)

    name = str(data.get("name") or fallback_name)
    raw_steps = data.get("steps")
    if not raw_steps or not isinstance(raw_steps, list):
        raise TestDefinitionError(f"Test '{name}' must define a non-empty 'steps' list", source_path)

    test_params = _resolve_params(data.get("params"), f"test '{name}'", source_path)
    steps = tuple(_parse_step(raw, i, test_params, source_path) for i, raw in enumerate(raw_steps))

    try:
        return TestDefinition(
            source_path=source_path,
            name=name,
            steps=steps,
            confidence=data.get("confidence"),
            skip=bool(data.get("skip", False)),
            skip_reason=data.get("skip_reason"),
        )
    except InvalidConfidenceLevel as e:
        raise TestDefinitionError(f"Test '{name}': {e.message}", source_path) from e
    except ValidationError as e:
        raise TestDefinitionError(f"Test '{name}': {e.errors()[0]['msg']}", source_path) from e


def load_test_file(path: Path, root: Path) -> list[TestDefinition]:
    """Load every test defined in one JSON or YAML file."""
    try:
        source_path = path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        source_path = path.as_posix()

    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise TestDefinitionError(f"Could not read test file: {e}", source_path) from e

    if isinstance(data, dict) and "tests" in data:
        data = data["tests"]
    entries = data if isinstance(data, list) else [data]
    if not entries:
        raise TestDefinitionError("Test file contains no tests", source_path)

    stem = path.name.split(".")[0]
    tests = []
    for i, entry in enumerate(entries):
        fallback = stem if len(entries) == 1 else f"{stem} #{i + 1}"
        tests.append(parse_test(entry, source_path, fallback))
    return tests


def match_files(pattern: str, root: Path, state_dir: str = ".shortest") -> list[Path]:
    """Files matching ``pattern`` under ``root``, sorted, excluding tool directories."""
    direct = Path(pattern) if Path(pattern).is_absolute() else root / pattern
    if direct.is_file():
        return [direct]

    base = Path(Path(pattern).anchor) if Path(pattern).is_absolute() else root
    relative_pattern = str(Path(pattern).relative_to(base)) if base is not root else pattern

    ignored = _IGNORED_DIRS | {Path(state_dir).name}
    files = []
    for path in base.glob(relative_pattern):
        if not path.is_file() or path.suffix not in TEST_FILE_SUFFIXES:
            continue
        if any(part in ignored for part in path.relative_to(base).parts[:-1]):
            continue
        files.append(path)
    return sorted(files)


def discover(
    pattern: str, root: str | Path = ".", state_dir: str = ".shortest"
) -> tuple[list[TestDefinition], list[TestDefinitionError]]:
    """Load all tests matching ``pattern``; malformed files are returned as errors."""
    root = Path(root)
    tests: list[TestDefinition] = []
    errors: list[TestDefinitionError] = []
    files = match_files(pattern, root, state_dir)
    logger.debug("Pattern %r matched %d test files", pattern, len(files))
    for path in files:
        try:
            tests.extend(load_test_file(path, root))
        except TestDefinitionError as e:
            logger.warning("Skipping %s: %s", path, e.message)
            errors.append(e)
    return tests, errors


def find_tests(pattern: str, root: str | Path = ".") -> list[TestDefinition]:
    """Ordered test definitions matching ``pattern`` (zero matches is not an error)."""
    tests, _ = discover(pattern, root)
    return tests
