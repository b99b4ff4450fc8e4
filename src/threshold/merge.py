"""Bounded-depth merge of parsed configuration documents."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

# Tables nested at depth 0, 1 and 2 are merged key by key; anything deeper is
# replaced by the overriding document's value.
MERGE_DEPTH = 3


def merge_values(base: Any, override: Any, depth: int = MERGE_DEPTH) -> Any:
    """Overlay override onto base, recursing into tables while depth > 0.

    Only mappings are merged. Lists, scalars, mismatched types and anything
    past the depth limit are taken from override wholesale; lists are never
    combined element-wise. Neither argument is mutated.
    """
    if depth > 0 and isinstance(base, Mapping) and isinstance(override, Mapping):
        merged = dict(base)
        for key, value in override.items():
            if key in merged:
                merged[key] = merge_values(merged[key], value, depth - 1)
            else:
                merged[key] = value
        return merged
    return override
