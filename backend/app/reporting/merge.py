"""
Override merge for report fields.

    final = merge_final(report_model, overrides)

Mappings recurse key by key; scalars, None and lists in the patch replace
the base value wholesale. Keys whose patch value is ABSENT are skipped,
which is how "no change requested" differs from "set to null".
Inputs are never mutated.
"""

from __future__ import annotations

import copy
from functools import reduce
from typing import Any, Iterable, Mapping, Sequence


class _Absent:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


ABSENT = _Absent()


def _has_changes(patch: Mapping) -> bool:
    return any(value is not ABSENT for value in patch.values())


def merge_final(base: Any, patch: Any) -> Any:
    if not isinstance(patch, Mapping):
        return copy.deepcopy(base)
    if not isinstance(base, Mapping) and not _has_changes(patch):
        return copy.deepcopy(base)

    source = base if isinstance(base, Mapping) else {}
    output = {key: copy.deepcopy(value) for key, value in source.items()}

    for key, value in patch.items():
        if value is ABSENT:
            continue
        if isinstance(value, Mapping):
            current = source.get(key, ABSENT)
            if current is not ABSENT and not isinstance(current, Mapping) and not _has_changes(value):
                continue
            output[key] = merge_final(current if isinstance(current, Mapping) else {}, value)
        else:
            output[key] = copy.deepcopy(value)

    return output


def combine_patches(*patches: Mapping) -> dict:
    """Fold patches left to right into one accumulated override object."""
    return reduce(merge_final, patches, {})


def build_patch(path: Sequence[str], value: Any) -> dict:
    """Smallest nested patch that sets exactly the leaf at `path`."""
    keys = list(path or [])
    if not keys:
        raise ValueError("path must contain at least one key")
    for key in keys:
        if not isinstance(key, str) or not key:
            raise TypeError(f"path keys must be non-empty strings, got {key!r}")

    patch: Any = copy.deepcopy(value)
    for key in reversed(keys):
        patch = {key: patch}
    return patch


def value_at_path(obj: Any, path: Iterable, default: Any = ABSENT) -> Any:
    current = obj
    for key in path:
        if isinstance(current, Mapping) and key in current:
            current = current[key]
        elif isinstance(current, list) and isinstance(key, int) and -len(current) <= key < len(current):
            current = current[key]
        else:
            return default
    return current


def has_override(overrides: Any, path: Iterable) -> bool:
    return value_at_path(overrides, path) is not ABSENT
