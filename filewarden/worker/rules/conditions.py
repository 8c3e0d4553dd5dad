"""
Condition evaluation for rules.

Conditions are user data: malformed values, invalid regular expressions and
unreadable files all evaluate to False instead of raising.
"""
import os
import re
import logging
from pathlib import Path
from typing import Iterable, Union

from filewarden.schemas.rules import Condition

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


def evaluate_conditions(conditions: Iterable[Condition], file_path: Union[str, Path]) -> bool:
    """AND over every condition; an empty list matches unconditionally."""
    return all(evaluate_condition(condition, file_path) for condition in conditions)


def evaluate_condition(condition: Condition, file_path: Union[str, Path]) -> bool:
    """Check a single condition against a file path"""
    path = Path(file_path)
    file_name = path.name
    stem = path.stem.lower()
    value = str(condition.value).lower()

    ctype = condition.type
    if ctype == "extension":
        return match_value(path.suffix.lower().lstrip("."), condition)
    if ctype == "name_pattern":
        return match_value(file_name, condition)
    if ctype == "name_contains":
        return value in stem
    if ctype == "name_starts_with":
        return stem.startswith(value)
    if ctype == "name_ends_with":
        return stem.endswith(value)
    if ctype == "size_greater_than_mb":
        return _size_greater_than_mb(path, condition.value)
    if ctype == "path":
        return match_value(str(file_path), condition)

    logger.debug(f"Unsupported condition type: {ctype}")
    return False


def match_value(value: str, condition: Condition) -> bool:
    """Compare a derived file attribute with the condition's value"""
    test_value = value.lower()
    operator = condition.operator

    if operator == "equals":
        return test_value == str(condition.value).lower()
    if operator == "contains":
        return str(condition.value).lower() in test_value
    if operator == "matches":
        try:
            return re.search(str(condition.value), test_value, re.IGNORECASE) is not None
        except re.error as e:
            logger.debug(f"Invalid pattern {condition.value!r}: {e}")
            return False
    if operator == "in":
        if isinstance(condition.value, list):
            return any(str(v).lower() == test_value for v in condition.value)
        return False

    return False


def _size_greater_than_mb(path: Path, threshold) -> bool:
    try:
        size_mb = os.stat(path).st_size / BYTES_PER_MB
        return size_mb > float(threshold)
    except (OSError, ValueError, TypeError):
        return False
