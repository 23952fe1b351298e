"""Compress every HTML file in the output tree."""

from __future__ import annotations

import logging
from pathlib import Path

import minify_html

from .config import OptimizeConfig
from .models import FileOutcome, StageReport
from .utils import HTML_SUFFIXES, byte_size, collect_files, relative_label, require_output_dir

logger = logging.getLogger("site_optimizer.minify")

MINIFY_OPTIONS = {
    "minify_css": True,
    "minify_js": True,
    "remove_processing_instructions": True,
    "remove_bangs": False,
    "keep_closing_tags": False,
    "keep_html_and_head_opening_tags": False,
}


def minify_document(html: str) -> str:
    return minify_html.minify(html, **MINIFY_OPTIONS)


def minify_file(path: Path, root: Path) -> FileOutcome:
    try:
        original = path.read_text(encoding="utf-8")
        minified = minify_document(original)
        path.write_text(minified, encoding="utf-8")
    except Exception as exc:  # pylint: disable=broad-except
        logger.error("Error minifying %s: %s", path, exc)
        return FileOutcome.failure(path, exc)

    outcome = FileOutcome.success(path, byte_size(original), byte_size(minified))
    logger.info(
        "Minified: %s (%d -> %d bytes, %.2f%% reduction)",
        relative_label(path, root),
        outcome.original_bytes,
        outcome.final_bytes,
        outcome.reduction_percent,
    )
    return outcome


def log_summary(report: StageReport) -> None:
    if not report.succeeded:
        logger.info("No files were processed successfully.")
        return
    logger.info("Summary:")
    logger.info("Total original size: %d bytes", report.total_original_bytes)
    logger.info("Total minified size: %d bytes", report.total_final_bytes)
    logger.info("Total reduction: %.2f%%", report.total_reduction_percent)
    logger.info("Average reduction: %.2f%%", report.average_reduction_percent)
    if report.failed:
        logger.warning("%d files could not be minified", len(report.failed))


def minify_tree(config: OptimizeConfig) -> StageReport:
    """Minify all HTML files under the output root and log a size summary."""
    root = require_output_dir(config.output_root)
    logger.info("Starting HTML minification process...")

    html_files = collect_files(root, HTML_SUFFIXES)
    logger.info("Minifying %d HTML files...", len(html_files))

    report = StageReport(stage="minify-html")
    for path in html_files:
        report.record(minify_file(path, root))

    log_summary(report)
    logger.info("HTML minification complete!")
    return report
