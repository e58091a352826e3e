from __future__ import annotations

import os
import re
from typing import Mapping, Optional

VARIABLE_PATTERN = re.compile(r"\$\{([^}]+)\}")


def has_variable(value: str) -> bool:
    return bool(VARIABLE_PATTERN.search(value or ""))


def substitute(
    text: str,
    mapping: Mapping[str, str],
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """Replace every ``${name}`` from the mapping, then the environment, else ``""``."""
    env = os.environ if environ is None else environ

    def _lookup(match: re.Match) -> str:
        name = match.group(1)
        if name in mapping:
            return mapping[name]
        return env.get(name, "")

    return VARIABLE_PATTERN.sub(_lookup, text)


def resolve_mapping(
    mapping: dict[str, str],
    environ: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    # In place, key order: a value sees the already-resolved values of earlier keys.
    for key, value in mapping.items():
        if has_variable(value):
            mapping[key] = substitute(value, mapping, environ)
    return mapping
