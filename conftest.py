# Root-level pytest configuration applied to all tests
# - Ensure the repository root is importable so tests can `from sqlmigrator...`
#   without an editable install

from pathlib import Path
import sys


def _add_repo_root_to_sys_path() -> None:
    repo_root = Path(__file__).resolve().parent
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))


_add_repo_root_to_sys_path()
