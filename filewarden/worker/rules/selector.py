"""Priority ordering and filtering of rules for a file."""
from pathlib import Path
from typing import List, Sequence, Union

from filewarden.schemas.rules import Rule
from .conditions import evaluate_conditions


def sort_by_priority(rules: Sequence[Rule]) -> List[Rule]:
    """Highest priority first; equal priorities keep their original order."""
    return sorted(rules, key=lambda rule: rule.priority or 0, reverse=True)


def select_rules(rules: Sequence[Rule], file_path: Union[str, Path]) -> List[Rule]:
    """
    Return every enabled rule whose conditions all match the file.

    The caller is expected to pass only rules watching the file's folder.
    Only the first returned rule is executed by the dispatcher.
    """
    return [
        rule for rule in sort_by_priority(rules)
        if rule.enabled and evaluate_conditions(rule.conditions, file_path)
    ]
