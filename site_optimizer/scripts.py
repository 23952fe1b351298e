"""Remove client-side JavaScript from the exported site."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

from bs4 import BeautifulSoup

from .config import OptimizeConfig
from .models import FileOutcome, StageReport
from .utils import HTML_SUFFIXES, byte_size, collect_files, relative_label, require_output_dir

logger = logging.getLogger("site_optimizer.scripts")

_SCRIPT_PRELOAD_SELECTORS = (
    'link[rel~="preload"][as="script"]',
    'link[rel~="modulepreload"]',
)


def _is_event_attribute(name: str) -> bool:
    return name.lower().startswith("on") and len(name) > 2


def strip_scripts(html: str, hydration_element_id: str) -> str:
    """Drop scripts, script preloads, hydration data and inline event handlers."""
    soup = BeautifulSoup(html, "html.parser")

    for tag in soup.find_all("script"):
        tag.decompose()
    for selector in _SCRIPT_PRELOAD_SELECTORS:
        for tag in soup.select(selector):
            tag.decompose()
    if hydration_element_id:
        for tag in soup.find_all(id=hydration_element_id):
            tag.decompose()

    for tag in soup.find_all(True):
        for name in [attr for attr in tag.attrs if _is_event_attribute(attr)]:
            del tag[name]

    return soup.decode()


def strip_file(path: Path, root: Path, config: OptimizeConfig) -> FileOutcome:
    try:
        original = path.read_text(encoding="utf-8")
        cleaned = strip_scripts(original, config.hydration_element_id)
        path.write_text(cleaned, encoding="utf-8")
    except Exception as exc:  # pylint: disable=broad-except
        logger.error("Error processing %s: %s", path, exc)
        return FileOutcome.failure(path, exc)
    logger.info("Processed: %s", relative_label(path, root))
    return FileOutcome.success(path, byte_size(original), byte_size(cleaned))


def delete_script_files(root: Path, suffixes: Iterable[str]) -> List[Path]:
    """Delete every script file under ``root`` and return the removed paths."""
    deleted: List[Path] = []
    for path in collect_files(root, suffixes):
        try:
            path.unlink()
        except OSError as exc:
            logger.warning("Failed to delete %s: %s", path, exc)
            continue
        logger.info("Deleted: %s", relative_label(path, root))
        deleted.append(path)
    return deleted


def strip_tree(config: OptimizeConfig) -> StageReport:
    """Strip JavaScript from every HTML file, then optionally delete script files."""
    root = require_output_dir(config.output_root)
    report = StageReport(stage="strip-scripts")

    logger.info("Starting JavaScript removal process...")
    for path in collect_files(root, HTML_SUFFIXES):
        report.record(strip_file(path, root, config))

    if config.remove_script_files:
        logger.info("Removing JavaScript files...")
        deleted = delete_script_files(root, config.script_suffixes)
        logger.debug("Deleted %d script files", len(deleted))

    logger.info(
        "JavaScript removal complete (%d/%d HTML files succeeded)",
        len(report.succeeded),
        len(report.outcomes),
    )
    return report
