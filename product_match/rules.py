"""
Ordered threshold rules.

Classifiers in this package are written as lists of (predicate, label)
pairs evaluated top to bottom; the first predicate that holds decides
the label. Keeping the bands as data makes each threshold visible and
testable on its own.
"""

from typing import Any, Callable, Sequence, Tuple

Rule = Tuple[Callable[[Any], bool], str]


def first_match(rules: Sequence[Rule], value: Any, default: str) -> str:
    """Return the label of the first rule whose predicate accepts value."""
    for predicate, label in rules:
        if predicate(value):
            return label
    return default
