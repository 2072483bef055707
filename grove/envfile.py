"""Find the port variables a project declares in its dotenv files."""
from __future__ import annotations

import pathlib
import re
from typing import List, Sequence

from dotenv import dotenv_values

ENV_CANDIDATES = (".env.example", ".env")


def _pattern_regex(pattern: str) -> re.Pattern:
    # `*` is the only wildcard; matching ignores case
    return re.compile(re.escape(pattern).replace(r"\*", ".*"), re.IGNORECASE)


def scan_port_variables(env_path, patterns: Sequence[str]) -> List[str]:
    """Keys of *env_path* matching any of *patterns*, in file order."""
    regexes = [_pattern_regex(p) for p in patterns]
    values = dotenv_values(env_path)
    return [key for key in values if any(rx.fullmatch(key) for rx in regexes)]


def port_variables_for_project(project_root, patterns: Sequence[str]) -> List[str]:
    """Scan `.env.example`, falling back to `.env`; [] when neither exists."""
    root = pathlib.Path(project_root)
    for name in ENV_CANDIDATES:
        candidate = root / name
        if candidate.is_file():
            return scan_port_variables(candidate, patterns)
    return []
