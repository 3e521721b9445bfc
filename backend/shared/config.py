"""
Runtime configuration read from environment variables.
Defaults match the interactive graph view: 500ms layout debounce, solver
skipped on load when more than half of the nodes already have a position.
"""

import os
from pathlib import Path
from typing import Optional


def _float_env(name: str, default: float) -> float:
    v = os.environ.get(name)
    return float(v) if v is not None else default


def _int_env(name: str, default: int) -> int:
    v = os.environ.get(name)
    return int(v) if v is not None else default


def _optional_float_env(name: str) -> Optional[float]:
    v = os.environ.get(name)
    if v is None or not v.strip():
        return None
    return float(v)


def get_db_dir() -> Path:
    """Root folder for project storage. Read on every call so tests can repoint it."""
    v = os.environ.get("FORGE_DB_DIR")
    if v:
        return Path(v)
    return Path(__file__).parent.parent / "db" / "data"


LAYOUT_DEBOUNCE_MS = _int_env("FORGE_LAYOUT_DEBOUNCE_MS", 500)
LAYOUT_COVERAGE_THRESHOLD = _float_env("FORGE_LAYOUT_COVERAGE_THRESHOLD", 0.5)
LAYOUT_SOLVER_TIMEOUT = _optional_float_env("FORGE_LAYOUT_SOLVER_TIMEOUT")
