"""Purge, minify and inline CSS, then defer the remaining stylesheets."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

import rcssmin
from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import OptimizeConfig
from .critical import CriticalCssExtractor, inline_critical_css
from .models import FileOutcome, StageReport
from .purge import SelectorMatcher, purge_css
from .utils import (
    CSS_SUFFIXES,
    HTML_SUFFIXES,
    byte_size,
    collect_files,
    relative_label,
    require_output_dir,
)

logger = logging.getLogger("site_optimizer.styles")

DEFERRED_MEDIA = "print"
DEFERRED_ONLOAD = "this.media='all'"


class CriticalExtractor(Protocol):
    async def extract(self, html_path: Path) -> str: ...

    async def close(self) -> None: ...


@dataclass
class StyleReport:
    """Outcomes of the three style sub-steps."""

    purge: StageReport
    critical: StageReport
    defer: StageReport


def load_documents(html_files: Sequence[Path]) -> List[BeautifulSoup]:
    documents: List[BeautifulSoup] = []
    for path in html_files:
        try:
            documents.append(BeautifulSoup(path.read_text(encoding="utf-8"), "html.parser"))
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Leaving %s out of the usage corpus: %s", path, exc)
    return documents


def purge_and_minify(
    html_files: Sequence[Path],
    css_files: Sequence[Path],
    root: Path,
    safelist: Sequence[str],
) -> StageReport:
    """Drop selectors no page uses, minify what is left, and rewrite each CSS file."""
    report = StageReport(stage="purge")
    logger.info("Found %d CSS files to optimize", len(css_files))
    matcher = SelectorMatcher(load_documents(html_files), safelist)

    for path in css_files:
        try:
            original = path.read_text(encoding="utf-8")
            purged = purge_css(original, matcher)
            minified = rcssmin.cssmin(purged)
            path.write_text(minified, encoding="utf-8")
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Error optimizing %s: %s", path, exc)
            report.record(FileOutcome.failure(path, exc))
            continue
        outcome = report.record(
            FileOutcome.success(path, byte_size(original), byte_size(minified))
        )
        logger.info(
            "Optimized: %s (%d -> %d bytes)",
            relative_label(path, root),
            outcome.original_bytes,
            outcome.final_bytes,
        )
    return report


async def process_critical_css(
    html_files: Sequence[Path],
    root: Path,
    extractor: CriticalExtractor,
) -> StageReport:
    """Inline the above-the-fold CSS of every page, one page at a time."""
    report = StageReport(stage="critical")
    logger.info("Processing critical CSS for %d HTML files", len(html_files))
    try:
        for path in html_files:
            try:
                css = await extractor.extract(path)
                original = path.read_text(encoding="utf-8")
                updated = inline_critical_css(original, css) if css else original
                if css:
                    path.write_text(updated, encoding="utf-8")
            except PlaywrightTimeoutError as exc:
                logger.error("Timeout while rendering %s: %s", path, exc)
                report.record(FileOutcome.failure(path, exc))
                continue
            except Exception as exc:  # pylint: disable=broad-except
                logger.error("Error processing critical CSS for %s: %s", path, exc)
                report.record(FileOutcome.failure(path, exc))
                continue
            report.record(FileOutcome.success(path, byte_size(original), byte_size(updated)))
            if css:
                logger.info("Inlined critical CSS: %s", relative_label(path, root))
            else:
                logger.info("No critical CSS found for %s", relative_label(path, root))
    finally:
        await extractor.close()
    return report


def defer_stylesheets(html: str) -> str:
    """Load stylesheets without blocking render, with a fallback for no-script clients."""
    soup = BeautifulSoup(html, "html.parser")
    for link in soup.select('link[rel~="stylesheet"]:not([data-inline])'):
        if link.find_parent("noscript") is not None:
            continue
        if link.get("media") == DEFERRED_MEDIA and link.get("onload") == DEFERRED_ONLOAD:
            continue
        href = link.get("href")
        if not href:
            continue
        link["media"] = DEFERRED_MEDIA
        link["onload"] = DEFERRED_ONLOAD

        noscript = soup.new_tag("noscript")
        noscript.append(soup.new_tag("link", attrs={"rel": "stylesheet", "href": href}))
        link.insert_after(noscript)
    return soup.decode()


def update_html_to_load_css_async(html_files: Sequence[Path], root: Path) -> StageReport:
    report = StageReport(stage="defer")
    logger.info("Updating HTML files to load CSS asynchronously")
    for path in html_files:
        try:
            original = path.read_text(encoding="utf-8")
            updated = defer_stylesheets(original)
            path.write_text(updated, encoding="utf-8")
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Error updating %s: %s", path, exc)
            report.record(FileOutcome.failure(path, exc))
            continue
        report.record(FileOutcome.success(path, byte_size(original), byte_size(updated)))
        logger.info("Updated: %s", relative_label(path, root))
    return report


def optimize_styles(
    config: OptimizeConfig,
    extractor: Optional[CriticalExtractor] = None,
) -> StyleReport:
    """Run purge, critical inlining and deferred loading in that order."""
    root = require_output_dir(config.output_root)
    logger.info("Starting CSS optimization process...")

    html_files = collect_files(root, HTML_SUFFIXES)
    css_files = collect_files(root, CSS_SUFFIXES)
    logger.info("Found %d HTML files and %d CSS files", len(html_files), len(css_files))

    purge_report = purge_and_minify(html_files, css_files, root, config.safelist)

    if config.inline_critical:
        if extractor is None:
            extractor = CriticalCssExtractor(root, config.viewports, config.render_timeout)
        critical_report = asyncio.run(process_critical_css(html_files, root, extractor))
    else:
        logger.info("Skipping critical CSS extraction")
        critical_report = StageReport(stage="critical")

    defer_report = update_html_to_load_css_async(html_files, root)

    logger.info("CSS optimization complete!")
    return StyleReport(purge=purge_report, critical=critical_report, defer=defer_report)
