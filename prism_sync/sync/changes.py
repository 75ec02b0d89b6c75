"""
Desired-state diffing.

Reconcilers compute the values a record should have as a plain dict, then
apply it in one step. Only fields whose value differs are written, and the
returned change map drives the decision to persist.
"""

from typing import Any, Dict, Tuple


def diff_fields(current: Any, desired: Dict[str, Any]) -> Dict[str, Tuple[Any, Any]]:
    """Return {field: (old, new)} for every desired field that differs."""
    return {
        name: (getattr(current, name, None), value)
        for name, value in desired.items()
        if getattr(current, name, None) != value
    }


def apply_changes(target: Any, desired: Dict[str, Any]) -> Dict[str, Tuple[Any, Any]]:
    """Write differing fields onto target and return what changed."""
    changes = diff_fields(target, desired)
    for name, (_, value) in changes.items():
        setattr(target, name, value)
    return changes
