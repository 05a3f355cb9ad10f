"""Repository-level integrity checks."""

from __future__ import annotations

import re
import tomllib
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
CONFLICT_PATTERN = re.compile(r"^(<<<<<<<|=======|>>>>>>>)( |$)", re.MULTILINE)
TEXT_SUFFIXES = {".py", ".toml", ".md", ".txt", ".cfg", ".ini"}
IGNORED_PARTS = {".git", "__pycache__", ".mypy_cache", ".pytest_cache", ".venv"}


def test_repository_has_no_merge_conflict_markers() -> None:
    """Ensure no source or config file still contains git conflict markers."""

    offending_files: list[Path] = []
    for path in REPO_ROOT.rglob("*"):
        if not path.is_file() or path.suffix not in TEXT_SUFFIXES:
            continue
        if any(part in IGNORED_PARTS for part in path.parts):
            continue
        contents = path.read_text(encoding="utf-8", errors="ignore")
        if CONFLICT_PATTERN.search(contents):
            offending_files.append(path.relative_to(REPO_ROOT))

    assert not offending_files, (
        "The following files still contain git conflict markers: "
        + ", ".join(str(path) for path in offending_files)
    )


def test_declared_packages_exist() -> None:
    """Every package listed for installation must be importable from the tree."""

    config = tomllib.loads((REPO_ROOT / "pyproject.toml").read_text(encoding="utf-8"))
    packages = config["tool"]["setuptools"]["packages"]

    missing = [
        name
        for name in packages
        if not (REPO_ROOT / name.replace(".", "/") / "__init__.py").is_file()
    ]
    assert not missing, f"Declared packages without __init__.py: {missing}"
