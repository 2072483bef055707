"""
Where am I?  Project-root discovery and environment naming.

The registry namespaces allocations by the project root returned here and by
names produced by `sanitize_name()`.
"""
from __future__ import annotations

import pathlib
import re
from typing import Optional

_WHITESPACE = re.compile(r"\s+")
_INVALID = re.compile(r"[^a-z0-9-]")
_HYPHENS = re.compile(r"-+")


def find_project_root(start=None) -> Optional[str]:
    """Nearest ancestor of *start* (default: cwd) containing `.git`."""
    current = pathlib.Path(start or pathlib.Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / ".git").exists():
            return str(candidate)
    return None


def sanitize_name(text: str) -> str:
    """Lower-case, hyphenate and strip *text* down to `[a-z0-9-]`."""
    name = _WHITESPACE.sub("-", text.lower())
    name = _INVALID.sub("", name)
    name = _HYPHENS.sub("-", name).strip("-")
    if not name:
        raise ValueError(
            f'Invalid name: "{text}" contains no valid characters '
            "for git branches or filesystem paths"
        )
    return name
