"""Utility helpers for walking the output tree."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

HTML_SUFFIXES = (".html",)
CSS_SUFFIXES = (".css",)


def require_output_dir(root: Path) -> Path:
    """Fail fast when the site build has not produced an output directory."""
    if not root.is_dir():
        raise FileNotFoundError(
            f"Output directory '{root}' does not exist. Run the site build first."
        )
    return root


def collect_files(root: Path, suffixes: Iterable[str]) -> List[Path]:
    """Return every file under ``root`` whose extension is in ``suffixes``."""
    wanted = {suffix.lower() for suffix in suffixes}
    return sorted(
        path
        for path in root.rglob("*")
        if path.is_file() and path.suffix.lower() in wanted
    )


def relative_label(path: Path, root: Path) -> str:
    try:
        return str(path.relative_to(root))
    except ValueError:
        return str(path)


def byte_size(text: str) -> int:
    return len(text.encode("utf-8"))
