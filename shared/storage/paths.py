"""
Shared storage path utilities.

This module defines canonical filesystem locations for the
entity database and other disk-backed artifacts.

Design goals:
- Single source of truth for storage paths
- OS-safe, repo-relative resolution
- No side effects on import
"""

from __future__ import annotations

from pathlib import Path

# ----------------------------------------------------------------------
# BASE DIRECTORIES
# ----------------------------------------------------------------------

# Repo root is assumed to be the current working directory
# when the runtime is launched (consistent with core.app)
BASE_DIR = Path.cwd()

DATA_DIR = BASE_DIR / "data"
DEFAULT_DB_PATH = DATA_DIR / "streamalerts.db"


# ----------------------------------------------------------------------
# PATH HELPERS
# ----------------------------------------------------------------------

def resolve_data_path(value: str | Path | None) -> Path:
    """
    Resolve a configured database/data path.

    Relative paths are anchored at BASE_DIR. The parent directory
    is created so sqlite can open the file.
    """

    if value is None or str(value).strip() == "":
        path = DEFAULT_DB_PATH
    else:
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = BASE_DIR / path

    path.parent.mkdir(parents=True, exist_ok=True)
    return path
